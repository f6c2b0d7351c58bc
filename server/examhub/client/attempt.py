"""
Drives one student's attempt: answer sheet, countdown and the single submission.
"""
import asyncio
import logging
import threading
from datetime import datetime
from typing import Optional

from examhub.client.answers import AnswerSheet
from examhub.client.api import ApiRequestError, ExamApi
from examhub.client.countdown import CountdownTimer
from examhub.models.clock import utcnow

logger = logging.getLogger(__name__)


class ExamAttempt:
    def __init__(self, api: ExamApi, exam_id: int, clock=utcnow, interval: float = 1.0):
        self.api = api
        self.exam_id = exam_id
        self.clock = clock
        self.interval = interval
        self.exam: Optional[dict] = None
        self.questions = []
        self.submission: Optional[dict] = None
        self.sheet: Optional[AnswerSheet] = None
        self.timer: Optional[CountdownTimer] = None
        self.result: Optional[dict] = None
        self.error: Optional[ApiRequestError] = None
        self.forced = False
        self._submit_lock = threading.Lock()

    def open(self) -> "ExamAttempt":
        """
        Load the exam, start (or resume) the submission and arm the timer.
        An attempt opened after the end time is submitted straight away.
        """
        self.exam = self.api.get_exam(self.exam_id)
        self.questions = self.api.get_questions(self.exam_id)
        self.submission = self.api.start(self.exam_id)
        self.sheet = AnswerSheet([q["id"] for q in self.questions])
        self.sheet.load(self.api.get_answers(self.submission["id"]))
        self.timer = CountdownTimer(
            datetime.fromisoformat(self.exam["end_time"]),
            on_expire=self._on_expire,
            clock=self.clock,
            interval=self.interval,
        )
        self.timer.start()
        if self.forced:
            self._forced_submit()
        return self

    @property
    def submitted(self) -> bool:
        return self.result is not None

    def submit(self) -> dict:
        """Send every answer once; later calls return the first result."""
        with self._submit_lock:
            if self.result is not None:
                return self.result
            self.result = self.api.submit(self.exam_id, self.sheet.to_payload())
        if self.timer is not None:
            self.timer.cancel()
        logger.info("Exam %s submitted, score %s", self.exam_id, self.result.get("score"))
        return self.result

    def _on_expire(self) -> None:
        # Runs on the timer's loop; the HTTP call happens in _forced_submit
        if self.result is None:
            self.forced = True
            logger.info("Time expired on exam %s, submitting", self.exam_id)

    def _forced_submit(self) -> Optional[dict]:
        try:
            return self.submit()
        except ApiRequestError as e:
            self.error = e
            logger.error("Forced submission of exam %s failed: %s", self.exam_id, e)
            raise

    async def run(self) -> Optional[dict]:
        """Wait for the timer; expiry forces the submission off the event loop."""
        if self.timer is None:
            await asyncio.to_thread(self.open)
        await self.timer.run()
        if self.forced and not self.submitted:
            await asyncio.to_thread(self._forced_submit)
        return self.result
