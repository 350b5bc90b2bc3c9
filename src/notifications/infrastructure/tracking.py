"""
Delivery Tracking & Statistics
==============================

In-memory record of delivery outcomes and the counters reported by the
statistics endpoint. Both live for the lifetime of the process; there is
no eviction.
"""

import threading
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional

from src.notifications.domain import DeliveryResult, StatisticsSnapshot


class DeliveryTracker:
    """
    DeliveryResults keyed by tracking id.

    The first result recorded for a tracking id wins; later writes for the
    same id are ignored so lookups always return the same object.
    """

    def __init__(self):
        self._results: Dict[str, DeliveryResult] = {}
        self._lock = threading.Lock()

    def record(self, result: DeliveryResult) -> bool:
        """Store result; False when the tracking id was already recorded."""
        with self._lock:
            if result.tracking_id in self._results:
                return False
            self._results[result.tracking_id] = result
            return True

    def lookup(self, tracking_id: str) -> Optional[DeliveryResult]:
        return self._results.get(tracking_id)

    def results(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[DeliveryResult]:
        """Recorded results with sent_at inside [start, end]."""
        with self._lock:
            snapshot = list(self._results.values())
        return [
            result for result in snapshot
            if (start is None or result.sent_at >= start)
            and (end is None or result.sent_at <= end)
        ]

    def __len__(self) -> int:
        return len(self._results)


class DeliveryStatistics:
    """
    Monotonic delivery counters.

    total_sent counts transport attempts, so one request retried twice
    before succeeding adds three to total_sent and one to succeeded.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._total_sent = 0
        self._succeeded = 0
        self._failed = 0
        self._abandoned = 0

    def record_attempt(self, success: bool) -> None:
        with self._lock:
            self._total_sent += 1
            if success:
                self._succeeded += 1

    def record_failure(self) -> None:
        """A request that will never be delivered."""
        with self._lock:
            self._failed += 1

    def record_abandoned(self) -> None:
        """A request dropped because it arrived with its retries used up."""
        with self._lock:
            self._abandoned += 1

    @property
    def total_sent(self) -> int:
        return self._total_sent

    @property
    def succeeded(self) -> int:
        return self._succeeded

    @property
    def failed(self) -> int:
        return self._failed

    @property
    def abandoned(self) -> int:
        return self._abandoned

    def snapshot(
        self,
        queue_depth: int,
        generated_at: datetime,
        tracker: Optional[DeliveryTracker] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> StatisticsSnapshot:
        """
        Current counters plus breakdowns measured from the tracker.

        Counters are process-wide; only the per-template and per-day
        breakdowns honour the [start, end] period.
        """
        with self._lock:
            total_sent = self._total_sent
            succeeded = self._succeeded
            failed = self._failed
            abandoned = self._abandoned

        top_templates: Dict[str, int] = {}
        daily: Dict[str, int] = {}
        if tracker is not None:
            results = tracker.results(start, end)
            template_counts = Counter(
                r.template_name for r in results if r.success and r.template_name
            )
            top_templates = dict(template_counts.most_common())
            daily = dict(sorted(Counter(r.sent_at.strftime("%Y-%m-%d") for r in results).items()))

        return StatisticsSnapshot(
            total_sent=total_sent,
            succeeded=succeeded,
            failed=failed,
            abandoned=abandoned,
            pending_in_queue=queue_depth,
            generated_at=generated_at,
            period_start=start,
            period_end=end,
            top_templates=top_templates,
            daily_distribution=daily,
        )
