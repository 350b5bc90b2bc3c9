"""
Notification Application Layer
==============================

Contains:
- Services: NotificationService (queue producer API and delivery worker)
- DTOs: Data transfer objects for API serialization
- INotificationTransport, implemented by the infrastructure layer
"""

from src.notifications.application.dto import (
    AttachmentDTO,
    NotificationCreateRequest,
    BulkNotificationRequest,
    EnqueueResponse,
    ProcessQueueResponse,
    DeliveryResultResponse,
    DeliveryStatisticsResponse,
)
from src.notifications.application.services import (
    NotificationService,
    INotificationTransport,
)

__all__ = [
    # DTOs
    "AttachmentDTO",
    "NotificationCreateRequest",
    "BulkNotificationRequest",
    "EnqueueResponse",
    "ProcessQueueResponse",
    "DeliveryResultResponse",
    "DeliveryStatisticsResponse",
    # Services
    "NotificationService",
    # Interfaces
    "INotificationTransport",
]
