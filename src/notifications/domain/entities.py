"""
Notification Domain Entities
============================

Pure Python domain entities for queued message delivery.

A NotificationRequest is owned by the queue while pending; once an attempt
reaches a terminal outcome it is summarised as an immutable DeliveryResult.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional


@dataclass(frozen=True)
class Attachment:
    """A file sent along with a message."""
    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class NotificationRequest:
    """
    One message waiting to be delivered.

    Either template_name or subject must be set. When a template is named,
    subject and body are produced by rendering it with template_data.
    """

    to: str
    subject: Optional[str] = None
    body: str = ""
    is_html: bool = False
    template_name: Optional[str] = None
    template_data: Dict[str, str] = field(default_factory=dict)
    attachments: List[Attachment] = field(default_factory=list)
    retry_count: int = 0
    max_retries: int = 3
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    next_attempt_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def is_exhausted(self) -> bool:
        return self.retry_count >= self.max_retries

    def is_due(self, now: datetime) -> bool:
        return self.next_attempt_at is None or self.next_attempt_at <= now


@dataclass(frozen=True)
class DeliveryResult:
    """Terminal outcome of delivering one NotificationRequest."""

    tracking_id: str
    recipient: str
    subject: str
    sent_at: datetime
    success: bool
    error_message: Optional[str] = None
    template_name: Optional[str] = None
    attempts: int = 0

    @classmethod
    def delivered(
        cls,
        request: NotificationRequest,
        subject: str,
        sent_at: datetime,
        attempts: int
    ) -> "DeliveryResult":
        return cls(
            tracking_id=request.id,
            recipient=request.to,
            subject=subject,
            sent_at=sent_at,
            success=True,
            template_name=request.template_name,
            attempts=attempts,
        )

    @classmethod
    def failed(
        cls,
        request: NotificationRequest,
        subject: str,
        sent_at: datetime,
        error_message: str,
        attempts: int
    ) -> "DeliveryResult":
        return cls(
            tracking_id=request.id,
            recipient=request.to,
            subject=subject,
            sent_at=sent_at,
            success=False,
            error_message=error_message,
            template_name=request.template_name,
            attempts=attempts,
        )


@dataclass
class StatisticsSnapshot:
    """Point-in-time view of delivery counters plus tracker breakdowns."""

    total_sent: int
    succeeded: int
    failed: int
    abandoned: int
    pending_in_queue: int
    generated_at: datetime
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    top_templates: Dict[str, int] = field(default_factory=dict)
    daily_distribution: Dict[str, int] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        """Successful deliveries as a percentage of transport attempts."""
        if self.total_sent == 0:
            return 0.0
        return round(self.succeeded / self.total_sent * 100, 2)
