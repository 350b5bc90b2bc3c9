"""
Notification Controllers (API Routes)
=====================================

FastAPI routes for queueing messages and inspecting delivery.

Queueing returns 202: delivery happens on the next queue drain, and its
outcome is visible through the tracking and statistics endpoints.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status

from src.core import ResourceNotFoundException
from src.notifications.application import (
    BulkNotificationRequest,
    DeliveryResultResponse,
    DeliveryStatisticsResponse,
    EnqueueResponse,
    NotificationCreateRequest,
    NotificationService,
    ProcessQueueResponse,
)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


# ========== Dependencies ==========

def get_notification_service(request: Request) -> NotificationService:
    """The process-wide NotificationService built at startup."""
    return request.app.state.notification_service


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=EnqueueResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a notification",
    description="""
    Queue one email for asynchronous delivery.

    Either `subject` (with `body`) or `template_name` (with `template_data`)
    is required. Built-in templates: `service-request-created`,
    `technician-assigned`, `service-completed`, `urgent-request`.
    Unknown template names fall back to a generic template that renders
    the `Message` value.
    """
)
async def enqueue_notification(
    payload: NotificationCreateRequest,
    service: NotificationService = Depends(get_notification_service)
):
    tracking_id = service.enqueue(payload.to_entity())
    return EnqueueResponse(tracking_ids=[tracking_id], pending_in_queue=service.pending_count)


@router.post(
    "/bulk",
    response_model=EnqueueResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a notification to several recipients",
    description="Nothing is queued when any recipient address is invalid."
)
async def enqueue_bulk(
    payload: BulkNotificationRequest,
    service: NotificationService = Depends(get_notification_service)
):
    tracking_ids = service.enqueue_bulk(
        payload.recipients, payload.subject, payload.body, is_html=payload.is_html
    )
    return EnqueueResponse(tracking_ids=tracking_ids, pending_in_queue=service.pending_count)


@router.post(
    "/process",
    response_model=ProcessQueueResponse,
    summary="Drain the queue now",
    description="Process every due notification currently queued, without waiting for the scheduler."
)
async def process_queue(
    service: NotificationService = Depends(get_notification_service)
):
    processed = await service.process_queue()
    return ProcessQueueResponse(processed_count=processed, pending_in_queue=service.pending_count)


@router.get(
    "/statistics",
    response_model=DeliveryStatisticsResponse,
    summary="Get delivery statistics",
    description="""
    Process-wide delivery counters plus per-template and per-day breakdowns
    of tracked results inside the optional period.
    """
)
async def get_statistics(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    service: NotificationService = Depends(get_notification_service)
):
    snapshot = service.get_statistics(start_date, end_date)
    return DeliveryStatisticsResponse.from_entity(snapshot)


@router.get(
    "/tracking/{tracking_id}",
    response_model=DeliveryResultResponse,
    summary="Look up a delivery",
    description="Final outcome of a queued notification. 404 while it is still pending."
)
async def get_delivery(
    tracking_id: str,
    service: NotificationService = Depends(get_notification_service)
):
    result = service.lookup(tracking_id)
    if result is None:
        raise ResourceNotFoundException("DeliveryResult", tracking_id)
    return DeliveryResultResponse.from_entity(result)


# Export router for inclusion in main app
notifications_router = router
