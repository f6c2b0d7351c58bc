"""
SSE (Server-Sent Events) connection manager for live exam results.
"""
import asyncio
import logging
from typing import Dict, List

logger = logging.getLogger(__name__)


class SSEConnectionManager:
    """Fans submission events out to every teacher watching an exam."""

    def __init__(self):
        # Map exam_id -> list of queues
        self.active_connections: Dict[int, List[asyncio.Queue]] = {}

    async def connect(self, exam_id: int) -> asyncio.Queue:
        """Create a new connection for an exam."""
        queue: asyncio.Queue = asyncio.Queue()
        self.active_connections.setdefault(exam_id, []).append(queue)
        logger.debug("SSE listener attached to exam %s", exam_id)
        return queue

    def disconnect(self, exam_id: int, queue: asyncio.Queue) -> None:
        """Remove a connection from an exam, dropping the exam entry once empty."""
        queues = self.active_connections.get(exam_id)
        if not queues:
            return
        if queue in queues:
            queues.remove(queue)
        if not queues:
            del self.active_connections[exam_id]

    def listener_count(self, exam_id: int) -> int:
        """Number of open connections for an exam."""
        return len(self.active_connections.get(exam_id, []))

    async def broadcast(self, exam_id: int, message: dict) -> None:
        """Broadcast a message to all connections for an exam."""
        for queue in list(self.active_connections.get(exam_id, [])):
            await queue.put(message)
