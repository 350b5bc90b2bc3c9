"""
Notification Domain Layer
=========================

Contains:
- Entities: NotificationRequest, DeliveryResult, StatisticsSnapshot, Attachment
- Value Objects: EmailTemplate, RenderedMessage, RetryPolicy

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from src.notifications.domain.entities import (
    Attachment,
    NotificationRequest,
    DeliveryResult,
    StatisticsSnapshot,
)
from src.notifications.domain.value_objects import (
    EmailTemplate,
    RenderedMessage,
    RetryPolicy,
)

__all__ = [
    # Entities
    "Attachment",
    "NotificationRequest",
    "DeliveryResult",
    "StatisticsSnapshot",
    # Value Objects
    "EmailTemplate",
    "RenderedMessage",
    "RetryPolicy",
]
