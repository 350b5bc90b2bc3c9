"""
Notification Infrastructure Layer
=================================

Infrastructure implementations for message delivery:
- Queue: volatile in-memory FIFO
- Templates: file-backed template registry
- Blacklist: blocked recipient addresses
- Tracking: delivery results and counters
- Transport: mock, SMTP and HTTP relay senders
- External: APScheduler queue drain
"""

from src.notifications.infrastructure.blacklist import BlacklistFilter
from src.notifications.infrastructure.queue import NotificationQueue
from src.notifications.infrastructure.templates import TemplateRegistry, BUILTIN_TEMPLATES, FALLBACK_TEMPLATE
from src.notifications.infrastructure.tracking import DeliveryTracker, DeliveryStatistics
from src.notifications.infrastructure.transport import (
    MockTransport,
    SMTPTransport,
    HttpRelayTransport,
    build_transport,
)
from src.notifications.infrastructure.external import NotificationScheduler

__all__ = [
    "BlacklistFilter",
    "NotificationQueue",
    "TemplateRegistry",
    "BUILTIN_TEMPLATES",
    "FALLBACK_TEMPLATE",
    "DeliveryTracker",
    "DeliveryStatistics",
    "MockTransport",
    "SMTPTransport",
    "HttpRelayTransport",
    "build_transport",
    "NotificationScheduler",
]
