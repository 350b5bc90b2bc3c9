"""
Notification Application DTOs
=============================

Pydantic models for the notification API layer.
"""

import base64
import binascii
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from src.notifications.domain import (
    Attachment,
    DeliveryResult,
    NotificationRequest,
    StatisticsSnapshot,
)


# ========== Request DTOs ==========

class AttachmentDTO(BaseModel):
    """A file attached to a notification, content as base64."""
    filename: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(default="application/octet-stream", max_length=100)
    content_base64: str = Field(..., description="Base64-encoded file content")

    @field_validator("content_base64")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("content_base64 is not valid base64")
        return v

    def to_entity(self) -> Attachment:
        return Attachment(
            filename=self.filename,
            content_type=self.content_type,
            content=base64.b64decode(self.content_base64),
        )


class NotificationCreateRequest(BaseModel):
    """Queue a message for delivery."""
    to: str = Field(..., min_length=3, max_length=254, description="Recipient address")
    subject: Optional[str] = Field(None, max_length=300, description="Required unless template_name is set")
    body: str = Field(default="", description="Message body used when no template is named")
    is_html: bool = Field(default=False)
    template_name: Optional[str] = Field(None, max_length=100)
    template_data: Dict[str, str] = Field(default_factory=dict)
    attachments: List[AttachmentDTO] = Field(default_factory=list)
    max_retries: int = Field(default=3, ge=1, le=10)

    @model_validator(mode="after")
    def require_subject_or_template(self) -> "NotificationCreateRequest":
        if not self.template_name and not self.subject:
            raise ValueError("either subject or template_name is required")
        return self

    def to_entity(self) -> NotificationRequest:
        return NotificationRequest(
            to=self.to,
            subject=self.subject,
            body=self.body,
            is_html=self.is_html,
            template_name=self.template_name,
            template_data=dict(self.template_data),
            attachments=[a.to_entity() for a in self.attachments],
            max_retries=self.max_retries,
        )


class BulkNotificationRequest(BaseModel):
    """Queue the same message to several recipients."""
    recipients: List[str] = Field(..., min_length=1, max_length=500)
    subject: str = Field(..., min_length=1, max_length=300)
    body: str
    is_html: bool = False


# ========== Response DTOs ==========

class EnqueueResponse(BaseModel):
    tracking_ids: List[str]
    pending_in_queue: int


class ProcessQueueResponse(BaseModel):
    processed_count: int
    pending_in_queue: int


class DeliveryResultResponse(BaseModel):
    """Outcome of one delivery."""
    tracking_id: str
    recipient: str
    subject: str
    sent_at: datetime
    success: bool
    error_message: Optional[str] = None
    template_name: Optional[str] = None
    attempts: int

    @classmethod
    def from_entity(cls, result: DeliveryResult) -> "DeliveryResultResponse":
        return cls(
            tracking_id=result.tracking_id,
            recipient=result.recipient,
            subject=result.subject,
            sent_at=result.sent_at,
            success=result.success,
            error_message=result.error_message,
            template_name=result.template_name,
            attempts=result.attempts,
        )


class DeliveryStatisticsResponse(BaseModel):
    total_sent: int
    succeeded: int
    failed: int
    abandoned: int
    pending_in_queue: int
    success_rate: float
    top_templates: Dict[str, int] = Field(default_factory=dict)
    daily_distribution: Dict[str, int] = Field(default_factory=dict)
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    generated_at: datetime

    @classmethod
    def from_entity(cls, snapshot: StatisticsSnapshot) -> "DeliveryStatisticsResponse":
        return cls(
            total_sent=snapshot.total_sent,
            succeeded=snapshot.succeeded,
            failed=snapshot.failed,
            abandoned=snapshot.abandoned,
            pending_in_queue=snapshot.pending_in_queue,
            success_rate=snapshot.success_rate,
            top_templates=snapshot.top_templates,
            daily_distribution=snapshot.daily_distribution,
            period_start=snapshot.period_start,
            period_end=snapshot.period_end,
            generated_at=snapshot.generated_at,
        )
