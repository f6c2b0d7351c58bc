"""
Exam countdown: remaining whole seconds until the exam's end time, with a
one-time expiry signal.
"""
import asyncio
import logging
import math
from datetime import datetime
from typing import Callable, Optional

from examhub.models.clock import as_naive_utc, utcnow

logger = logging.getLogger(__name__)


def format_seconds(seconds: int) -> str:
    """65 -> '01:05'; 3725 -> '01:02:05'."""
    hours, rest = divmod(max(0, seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class CountdownTimer:
    """
    Counts down once per tick and calls on_expire exactly once at zero.

    Runs on a single asyncio event loop; cancel() must be called when the
    owner goes away so no callback fires against stale state.
    """

    def __init__(
        self,
        end_time: datetime,
        on_expire: Callable[[], None],
        on_tick: Optional[Callable[[int], None]] = None,
        clock: Callable[[], datetime] = utcnow,
        interval: float = 1.0,
    ):
        self.end_time = as_naive_utc(end_time)
        self.on_expire = on_expire
        self.on_tick = on_tick
        self.clock = clock
        self.interval = interval
        self.remaining: Optional[int] = None
        self.expired = False
        self.cancelled = False

    @property
    def running(self) -> bool:
        return self.remaining is not None and not self.expired and not self.cancelled

    def start(self) -> int:
        """Compute the initial remaining time; fires on_expire at once if already past."""
        if self.remaining is not None:
            return self.remaining
        delta = (self.end_time - self.clock()).total_seconds()
        self.remaining = max(0, math.floor(delta))
        if self.remaining == 0:
            self._expire()
        return self.remaining

    def tick(self) -> int:
        if self.remaining is None:
            self.start()
        if self.expired or self.cancelled:
            return self.remaining
        self.remaining -= 1
        if self.on_tick is not None:
            self.on_tick(self.remaining)
        if self.remaining <= 0:
            self.remaining = 0
            self._expire()
        return self.remaining

    def _expire(self) -> None:
        if self.expired or self.cancelled:
            return
        self.expired = True
        logger.info("Exam time expired")
        self.on_expire()

    def cancel(self) -> None:
        self.cancelled = True

    async def run(self) -> None:
        self.start()
        while self.running:
            await asyncio.sleep(self.interval)
            if self.cancelled:
                break
            self.tick()

    def format_remaining(self) -> str:
        return format_seconds(self.remaining or 0)
