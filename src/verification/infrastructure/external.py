"""
Verification External Integrations
==================================

Adapters that connect the verification module to other bounded contexts.
"""

from typing import Optional

from src.notifications.application.services import NotificationService
from src.notifications.domain import NotificationRequest
from src.verification.application.services import IVerificationNotifier


class QueuedVerificationNotifier(IVerificationNotifier):
    """
    Hands verification emails to the notification queue.

    The message is delivered by the next queue drain; enqueueing never
    blocks the request that issued the code.
    """

    def __init__(self, notification_service: NotificationService):
        self._notifications = notification_service

    def notify(self, email: str, subject: str, body: str) -> Optional[str]:
        request = NotificationRequest(
            to=email,
            subject=subject,
            body=body,
            is_html=True,
            max_retries=self._notifications.retry_policy.max_retries,
        )
        return self._notifications.enqueue(request)
