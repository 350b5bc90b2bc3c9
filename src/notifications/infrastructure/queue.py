"""
Notification Queue
==================

Volatile multi-producer FIFO of pending NotificationRequests.

Backed by queue.Queue without a size bound, so put() never blocks and is
safe to call from request handlers and worker threads alike. Contents are
lost on restart.
"""

import queue
from typing import Optional

from src.notifications.domain import NotificationRequest


class NotificationQueue:

    def __init__(self):
        self._queue: "queue.Queue[NotificationRequest]" = queue.Queue()

    def put(self, request: NotificationRequest) -> None:
        self._queue.put_nowait(request)

    def get(self) -> Optional[NotificationRequest]:
        """Next request, or None when the queue is empty."""
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def qsize(self) -> int:
        """Approximate depth; sampled without coordination with producers."""
        return self._queue.qsize()

    def __len__(self) -> int:
        return self.qsize()
