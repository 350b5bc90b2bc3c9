"""
Notification Application Services
=================================

The delivery worker and its producer-facing API.

Producers call enqueue() from request handlers; it validates the recipient
and returns immediately. A scheduler calls process_queue() periodically to
render, filter, send and retry queued messages.

Concurrent drains are safe for the shared state (queue, tracker, counters)
but are not coordinated with each other, so two overlapping drains may send
the same retried message twice.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, List, Mapping, Optional, Sequence

from src.config import BLACKLISTED_ERROR_MESSAGE
from src.core import (
    ApplicationException,
    ConfigurationException,
    InvalidRecipientException,
    ValidationException,
)
from src.notifications.domain import (
    Attachment,
    DeliveryResult,
    NotificationRequest,
    RenderedMessage,
    RetryPolicy,
    StatisticsSnapshot,
)
from src.shared.infrastructure.clock import Clock, SystemClock, ensure_utc
from src.shared.infrastructure.logging import get_logger, log_latency
from src.shared.validators import is_valid_email_address

if TYPE_CHECKING:
    from src.notifications.infrastructure.blacklist import BlacklistFilter
    from src.notifications.infrastructure.queue import NotificationQueue
    from src.notifications.infrastructure.templates import TemplateRegistry
    from src.notifications.infrastructure.tracking import DeliveryStatistics, DeliveryTracker

logger = get_logger(__name__)

INVALID_RECIPIENT_ERROR_MESSAGE = "invalid recipient address"
DATE_FORMAT = "%Y-%m-%d %H:%M UTC"


# ========== Transport Interface (Dependency Inversion) ==========

class INotificationTransport(ABC):
    """Delivers one rendered message."""

    name = "transport"

    @abstractmethod
    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        is_html: bool = False,
        attachments: Sequence[Attachment] = ()
    ) -> None:
        """
        Send the message.

        Raises:
            ConfigurationException: transport is missing credentials or endpoint
            ExternalServiceException: transient failure worth retrying
        """

    async def check_health(self) -> bool:
        return True

    async def close(self) -> None:
        """Release connections held by the transport."""


# ========== Application Services ==========

class NotificationService:
    """
    Queue producer API plus the delivery worker.

    All collaborators are injected so each test (and each process) gets
    isolated queue, tracker and counters.
    """

    def __init__(
        self,
        queue: "NotificationQueue",
        transport: INotificationTransport,
        templates: "TemplateRegistry",
        blacklist: "BlacklistFilter",
        tracker: "DeliveryTracker",
        statistics: "DeliveryStatistics",
        retry_policy: Optional[RetryPolicy] = None,
        clock: Optional[Clock] = None,
    ):
        self._queue = queue
        self._transport = transport
        self._templates = templates
        self._blacklist = blacklist
        self._tracker = tracker
        self._statistics = statistics
        self._retry_policy = retry_policy or RetryPolicy()
        self._clock = clock or SystemClock()

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    @property
    def blacklist(self) -> "BlacklistFilter":
        return self._blacklist

    @property
    def template_count(self) -> int:
        return len(self._templates)

    async def close(self) -> None:
        await self._transport.close()

    # ---------- Producers ----------

    def enqueue(self, request: NotificationRequest) -> str:
        """
        Validate and queue a request; returns its tracking id.

        Never blocks. Delivery failures are only visible later through
        lookup() and the statistics.

        Raises:
            InvalidRecipientException: the address is syntactically invalid
            ValidationException: neither a template nor a subject was given
        """
        self._validate(request)
        self._queue.put(request)

        logger.info(
            "Notification queued",
            extra={
                "tracking_id": request.id,
                "to": request.to,
                "template_name": request.template_name,
            }
        )
        return request.id

    def enqueue_bulk(
        self,
        recipients: Iterable[str],
        subject: str,
        body: str,
        is_html: bool = False
    ) -> List[str]:
        """Queue one message per recipient; nothing is queued if any address is invalid."""
        requests = [
            NotificationRequest(
                to=recipient,
                subject=subject,
                body=body,
                is_html=is_html,
                max_retries=self._retry_policy.max_retries,
            )
            for recipient in recipients
        ]
        for request in requests:
            self._validate(request)
        return [self.enqueue(request) for request in requests]

    def _validate(self, request: NotificationRequest) -> None:
        if not is_valid_email_address(request.to):
            logger.warning("Rejected notification for invalid recipient", extra={"to": request.to})
            raise InvalidRecipientException(request.to)
        if not request.template_name and not request.subject:
            raise ValidationException(
                "A notification needs either a template name or a subject",
                {"tracking_id": request.id}
            )

    # ---------- Delivery worker ----------

    async def process_queue(self) -> int:
        """
        Drain the requests present when the call starts.

        Requests still waiting out their retry delay are put back and not
        counted. Requests re-queued by this pass wait for the next one.

        Returns:
            Number of due requests handled
        """
        pending = self._queue.qsize()
        if pending == 0:
            return 0

        processed = 0
        deferred: List[NotificationRequest] = []

        with log_latency(logger, "notification_queue_drain", pending=pending):
            try:
                for _ in range(pending):
                    request = self._queue.get()
                    if request is None:
                        break

                    now = self._clock.now()
                    if not request.is_due(now):
                        deferred.append(request)
                        continue

                    processed += 1
                    await self._process_request(request, now)
            finally:
                for request in deferred:
                    self._queue.put(request)

        if processed:
            logger.info(
                "Notification queue processed",
                extra={"processed_count": processed, "deferred": len(deferred)}
            )
        return processed

    async def _process_request(self, request: NotificationRequest, now: datetime) -> None:
        if request.is_exhausted:
            self._statistics.record_abandoned()
            logger.warning(
                "Notification dropped, retries already exhausted",
                extra={"tracking_id": request.id, "retry_count": request.retry_count}
            )
            return

        message = self._render(request)

        if self._blacklist.is_blocked(request.to):
            self._record_permanent_failure(request, message, now, BLACKLISTED_ERROR_MESSAGE)
            return

        try:
            await self._send(request, message)
        except ConfigurationException as e:
            self._record_permanent_failure(request, message, now, e.message)
            return
        except ApplicationException as e:
            self._handle_transient_failure(request, message, now, e.message)
            return
        except Exception as e:
            logger.exception(
                "Unexpected transport error",
                extra={"tracking_id": request.id, "transport": self._transport.name}
            )
            self._handle_transient_failure(request, message, now, str(e))
            return

        self._statistics.record_attempt(success=True)
        self._tracker.record(
            DeliveryResult.delivered(request, message.subject, now, attempts=request.retry_count + 1)
        )
        logger.info(
            "Notification delivered",
            extra={"tracking_id": request.id, "to": request.to, "attempts": request.retry_count + 1}
        )

    def _handle_transient_failure(
        self,
        request: NotificationRequest,
        message: RenderedMessage,
        now: datetime,
        error: str
    ) -> None:
        self._statistics.record_attempt(success=False)
        request.retry_count += 1

        if request.retry_count < request.max_retries:
            request.next_attempt_at = self._retry_policy.next_attempt_at(now, request.retry_count)
            self._queue.put(request)
            logger.warning(
                "Notification delivery failed, re-queued",
                extra={
                    "tracking_id": request.id,
                    "retry_count": request.retry_count,
                    "next_attempt_at": request.next_attempt_at.isoformat() if request.next_attempt_at else None,
                    "error": error,
                }
            )
            return

        self._statistics.record_failure()
        self._tracker.record(
            DeliveryResult.failed(request, message.subject, now, error, attempts=request.retry_count)
        )
        logger.error(
            "Notification delivery failed permanently",
            extra={"tracking_id": request.id, "retry_count": request.retry_count, "error": error}
        )

    def _record_permanent_failure(
        self,
        request: NotificationRequest,
        message: RenderedMessage,
        now: datetime,
        error: str
    ) -> None:
        self._statistics.record_failure()
        self._tracker.record(
            DeliveryResult.failed(request, message.subject, now, error, attempts=request.retry_count)
        )
        logger.warning(
            "Notification not delivered",
            extra={"tracking_id": request.id, "to": request.to, "error": error}
        )

    def _render(self, request: NotificationRequest) -> RenderedMessage:
        if request.template_name:
            return self._templates.render(request.template_name, request.template_data)
        return RenderedMessage(subject=request.subject or "", body=request.body)

    async def _send(self, request: NotificationRequest, message: RenderedMessage) -> None:
        await self._transport.send(
            request.to,
            message.subject,
            message.body,
            is_html=request.is_html or bool(request.template_name),
            attachments=request.attachments,
        )

    # ---------- Immediate sends ----------

    async def send_with_tracking(
        self,
        to: str,
        subject: str,
        body: str,
        is_html: bool = False,
        tracking_id: Optional[str] = None
    ) -> DeliveryResult:
        """
        Send right away, bypassing the queue, and track the outcome.

        Never raises for delivery problems; the returned result says what
        happened. No retries are attempted.
        """
        request = NotificationRequest(
            to=to,
            subject=subject,
            body=body,
            is_html=is_html,
            max_retries=1,
            id=tracking_id or str(uuid.uuid4()),
        )
        message = RenderedMessage(subject=subject, body=body)
        now = self._clock.now()

        if not is_valid_email_address(to):
            self._record_permanent_failure(request, message, now, INVALID_RECIPIENT_ERROR_MESSAGE)
        elif self._blacklist.is_blocked(to):
            self._record_permanent_failure(request, message, now, BLACKLISTED_ERROR_MESSAGE)
        else:
            try:
                await self._send(request, message)
            except ConfigurationException as e:
                self._record_permanent_failure(request, message, now, e.message)
            except ApplicationException as e:
                self._statistics.record_attempt(success=False)
                request.retry_count = 1
                self._record_permanent_failure(request, message, now, e.message)
            else:
                self._statistics.record_attempt(success=True)
                self._tracker.record(DeliveryResult.delivered(request, subject, now, attempts=1))
                logger.info("Tracked email sent", extra={"tracking_id": request.id, "to": to})

        return self._tracker.lookup(request.id)

    # ---------- Queries ----------

    def lookup(self, tracking_id: str) -> Optional[DeliveryResult]:
        return self._tracker.lookup(tracking_id)

    def get_statistics(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> StatisticsSnapshot:
        start_date = ensure_utc(start_date) if start_date else None
        end_date = ensure_utc(end_date) if end_date else None
        if start_date and end_date and start_date > end_date:
            raise ValidationException("start_date must not be after end_date")
        return self._statistics.snapshot(
            queue_depth=self._queue.qsize(),
            generated_at=self._clock.now(),
            tracker=self._tracker,
            start=start_date,
            end=end_date,
        )

    async def is_healthy(self) -> bool:
        try:
            return await self._transport.check_health()
        except ApplicationException as e:
            logger.error("Email transport health check failed", extra={"error": e.message})
            return False

    # ---------- Ticket workflow notifications ----------

    def notify_service_request_created(
        self,
        customer_email: str,
        customer_name: str,
        request_id: str,
        request_title: str,
        category: str,
        priority: str,
        created_at: datetime
    ) -> str:
        return self._enqueue_template(
            customer_email,
            "service-request-created",
            {
                "CustomerName": customer_name,
                "RequestId": request_id,
                "RequestTitle": request_title,
                "Category": category,
                "Priority": priority,
                "CreatedDate": created_at.strftime(DATE_FORMAT),
            }
        )

    def notify_technician_assigned(
        self,
        customer_email: str,
        customer_name: str,
        request_id: str,
        request_title: str,
        technician_name: str,
        technician_specialization: str
    ) -> str:
        return self._enqueue_template(
            customer_email,
            "technician-assigned",
            {
                "CustomerName": customer_name,
                "RequestId": request_id,
                "RequestTitle": request_title,
                "TechnicianName": technician_name,
                "TechnicianSpecialization": technician_specialization,
            }
        )

    def notify_service_completed(
        self,
        customer_email: str,
        customer_name: str,
        request_id: str,
        request_title: str,
        technician_name: str,
        resolution: str,
        completed_at: datetime
    ) -> str:
        return self._enqueue_template(
            customer_email,
            "service-completed",
            {
                "CustomerName": customer_name,
                "RequestId": request_id,
                "RequestTitle": request_title,
                "TechnicianName": technician_name,
                "Resolution": resolution,
                "CompletedDate": completed_at.strftime(DATE_FORMAT),
            }
        )

    def notify_urgent_request(
        self,
        recipients: Iterable[str],
        customer_name: str,
        request_id: str,
        request_title: str,
        category: str,
        description: str
    ) -> List[str]:
        """Alert every recipient (usually managers) about a critical request."""
        data = {
            "CustomerName": customer_name,
            "RequestId": request_id,
            "RequestTitle": request_title,
            "Category": category,
            "Description": description,
        }
        return [self._enqueue_template(r, "urgent-request", data) for r in recipients]

    def _enqueue_template(self, to: str, template_name: str, data: Mapping[str, str]) -> str:
        return self.enqueue(
            NotificationRequest(
                to=to,
                template_name=template_name,
                template_data=dict(data),
                is_html=True,
                max_retries=self._retry_policy.max_retries,
            )
        )
