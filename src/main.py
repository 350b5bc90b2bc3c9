"""
Service Desk Core - Main Application
====================================

Verification codes and asynchronous email delivery for the service desk.

Modules:
- Verification: one-time codes gating registration and account flows
- Notifications: queued, templated, retried email delivery

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, mail transports, scheduler

Every piece of shared state (queue, tracker, counters, templates,
blacklist) is built here and handed to the services that use it.
"""

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

# Configuration
from src.config import Settings, get_settings

# Infrastructure
from src.infrastructure.database import init_database, close_database, create_tables
from src.shared.infrastructure.clock import Clock, SystemClock

# Notifications module
from src.notifications.application import NotificationService, INotificationTransport
from src.notifications.domain import RetryPolicy
from src.notifications.infrastructure import (
    BlacklistFilter,
    DeliveryStatistics,
    DeliveryTracker,
    NotificationQueue,
    NotificationScheduler,
    TemplateRegistry,
    build_transport,
)
from src.notifications.interfaces import notifications_router

# Verification module
from src.verification.domain import VerificationPolicy
from src.verification.infrastructure import SlidingWindowRateLimiter
from src.verification.infrastructure.external import QueuedVerificationNotifier
from src.verification.interfaces import verification_router

# Shared
from src.shared.api.middleware import install_middleware
from src.shared.infrastructure.logging import setup_logging, get_logger

logger = get_logger(__name__)


def build_notification_service(
    settings: Settings,
    clock: Clock,
    transport: Optional[INotificationTransport] = None,
) -> NotificationService:
    """Wire the queue, templates, blacklist, tracker and transport together."""
    templates = TemplateRegistry(settings.email_templates_path)
    templates.load()

    return NotificationService(
        queue=NotificationQueue(),
        transport=transport or build_transport(settings),
        templates=templates,
        blacklist=BlacklistFilter.from_file(settings.email_blacklist_path),
        tracker=DeliveryTracker(),
        statistics=DeliveryStatistics(),
        retry_policy=RetryPolicy(
            max_retries=settings.notification_max_retries,
            backoff_seconds=settings.notification_retry_backoff_seconds,
            backoff_max_seconds=settings.notification_retry_backoff_max_seconds,
        ),
        clock=clock,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load templates and blacklist, pick the mail transport
    4. Build verification policy, notifier and rate limiter
    5. Start the queue drain scheduler

    SHUTDOWN:
    1. Stop the scheduler (queued notifications are dropped)
    2. Close the transport
    3. Close database connections
    """
    settings: Settings = app.state.settings
    clock: Clock = getattr(app.state, "clock", None) or SystemClock()

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Service Desk Core", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database(settings.database_url)

    # Create tables (for development - use migrations in production)
    # Without a database the service still queues and sends notifications
    logger.info("Creating database tables")
    try:
        await create_tables()
    except (OSError, SQLAlchemyError) as e:
        logger.warning(f"Database not available - running in degraded mode: {e}")

    notification_service = build_notification_service(
        settings, clock, transport=getattr(app.state, "transport", None)
    )

    app.state.clock = clock
    app.state.notification_service = notification_service
    app.state.blacklist = notification_service.blacklist
    app.state.verification_notifier = QueuedVerificationNotifier(notification_service)
    app.state.verification_policy = VerificationPolicy(
        expiry_minutes=settings.verification_code_expiry_minutes,
        max_retries=settings.verification_max_retries,
        daily_limit=settings.verification_daily_limit,
        resend_cooldown_seconds=settings.verification_resend_cooldown_seconds,
    )
    app.state.verification_rate_limiter = SlidingWindowRateLimiter(
        window=timedelta(minutes=settings.verification_rate_limit_window_minutes),
        max_requests=settings.verification_rate_limit_max_requests,
        clock=clock,
    )

    scheduler = NotificationScheduler(interval_seconds=settings.notification_process_interval)
    await scheduler.start(notification_service.process_queue)
    app.state.notification_scheduler = scheduler

    logger.info("Service Desk Core started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Service Desk Core")

    await scheduler.stop()

    pending = notification_service.pending_count
    if pending:
        logger.warning(
            "Notifications still queued at shutdown are lost",
            extra={"pending_in_queue": pending}
        )

    await notification_service.close()
    await close_database()

    logger.info("Service Desk Core shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    transport: Optional[INotificationTransport] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    clock and transport override the production collaborators; tests use
    them to control time and delivery outcomes.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Service Desk Core API",
        description="""
    ## Verification & Notification Core

    ### Verification
    - `POST /verification/codes` - Issue a six-digit code and email it
    - `POST /verification/verify` - Check a submitted code
    - `POST /verification/resend` - Issue a fresh code
    - `DELETE /verification/codes` - Cancel active codes
    - `GET /verification/active` / `history` / `statistics`

    Codes expire after 15 minutes and allow 3 wrong attempts by default.

    ### Notifications
    - `POST /notifications` - Queue an email (plain or templated)
    - `POST /notifications/bulk` - Queue one email to many recipients
    - `POST /notifications/process` - Drain the queue now
    - `GET /notifications/statistics` - Delivery counters
    - `GET /notifications/tracking/{id}` - Outcome of one delivery

    Failed deliveries are retried with exponential backoff; blacklisted
    recipients are never retried.
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.clock = clock
    app.state.transport = transport

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware & Error Handlers (from shared) ===
    install_middleware(app)

    # === Include Module Routers ===
    app.include_router(verification_router)
    app.include_router(notifications_router)

    # === Health Check Endpoint ===

    @app.get("/health", tags=["Health"], responses={
        200: {
            "description": "Service health",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "environment": "development",
                        "checks": {
                            "email_transport": "available",
                            "notification_scheduler": "running",
                            "pending_notifications": 0,
                            "email_templates": 4
                        }
                    }
                }
            }
        }
    })
    async def health_check(request: Request):
        """
        Health check endpoint for load balancers and orchestrators.

        Reports transport availability, scheduler state and queue depth.
        """
        service: NotificationService = request.app.state.notification_service
        scheduler: NotificationScheduler = request.app.state.notification_scheduler
        transport_ok = await service.is_healthy()

        return {
            "status": "healthy" if transport_ok else "degraded",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": {
                "email_transport": "available" if transport_ok else "unavailable",
                "notification_scheduler": "running" if scheduler.is_running else "stopped",
                "pending_notifications": service.pending_count,
                "email_templates": service.template_count,
            }
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": "Service Desk Core",
            "version": settings.app_version,
            "architecture": "Clean Architecture / Modular Monolith",
            "docs": "/docs",
            "health": "/health",
            "modules": {
                "verification": {
                    "prefix": "/verification",
                    "endpoints": [
                        "POST /verification/codes - Issue code",
                        "POST /verification/verify - Verify code",
                        "POST /verification/resend - Resend code",
                        "DELETE /verification/codes - Cancel codes",
                        "GET /verification/active - Active code metadata",
                        "GET /verification/history - Code history",
                        "GET /verification/statistics - Verification statistics"
                    ]
                },
                "notifications": {
                    "prefix": "/notifications",
                    "endpoints": [
                        "POST /notifications - Queue notification",
                        "POST /notifications/bulk - Queue bulk notification",
                        "POST /notifications/process - Drain queue",
                        "GET /notifications/statistics - Delivery statistics",
                        "GET /notifications/tracking/{tracking_id} - Delivery outcome"
                    ]
                }
            }
        }

    return app


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.environment == "development",
        log_level="info"
    )
