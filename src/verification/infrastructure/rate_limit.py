"""
Verification Request Rate Limiting
==================================

In-process sliding-window limiter keyed by (client, email). Keeps abusive
clients from flooding an inbox with codes before the daily limit kicks in.
"""

import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Dict, Optional

from src.shared.infrastructure.clock import Clock, SystemClock
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Accepted requests between full sweeps of idle keys
SWEEP_EVERY = 256


class SlidingWindowRateLimiter:
    """
    Thread-safe sliding-window counter.

    Each key keeps the timestamps of its accepted requests; anything older
    than the window is discarded on the next check. Keys with no hits left
    in the window are dropped, so memory follows active clients only.
    """

    def __init__(
        self,
        window: timedelta = timedelta(minutes=60),
        max_requests: int = 5,
        clock: Optional[Clock] = None
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.window = window
        self.max_requests = max_requests
        self._clock = clock or SystemClock()
        self._hits: Dict[str, Deque[datetime]] = {}
        self._lock = threading.Lock()
        self._since_sweep = 0

    @staticmethod
    def key_for(client: str, email: str) -> str:
        return f"{client}:{email.strip().lower()}"

    def allow(self, key: str) -> bool:
        """Record a request for key; False when the window is already full."""
        now = self._clock.now()
        with self._lock:
            self._since_sweep += 1
            if self._since_sweep >= SWEEP_EVERY:
                self._sweep(now)

            hits = self._hits.setdefault(key, deque())
            self._evict(hits, now)

            if len(hits) >= self.max_requests:
                logger.warning(
                    "Verification rate limit exceeded",
                    extra={"key": key, "max_requests": self.max_requests}
                )
                return False

            hits.append(now)
            return True

    def retry_after_seconds(self, key: str) -> int:
        """Seconds until the oldest hit for key leaves the window."""
        now = self._clock.now()
        with self._lock:
            hits = self._hits.get(key)
            if not hits:
                return 0
            self._evict(hits, now)
            if not hits:
                del self._hits[key]
                return 0
            if len(hits) < self.max_requests:
                return 0
            remaining = (hits[0] + self.window - now).total_seconds()
            return max(1, int(remaining) + 1)

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)

    def __len__(self) -> int:
        """Number of keys currently tracked."""
        return len(self._hits)

    def _sweep(self, now: datetime) -> None:
        for key in list(self._hits):
            hits = self._hits[key]
            self._evict(hits, now)
            if not hits:
                del self._hits[key]
        self._since_sweep = 0

    def _evict(self, hits: Deque[datetime], now: datetime) -> None:
        cutoff = now - self.window
        while hits and hits[0] <= cutoff:
            hits.popleft()
