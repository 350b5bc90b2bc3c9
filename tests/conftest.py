"""
Test configuration and fixtures for the Service Desk Core API.

Provides a controllable clock, a scripted mail transport, an isolated
SQLite database per test and fully wired services.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncGenerator, Generator, List, Optional, Sequence

# Settings are read at import time, so the environment must be ready first
_tmp_root = Path(tempfile.mkdtemp(prefix="service-desk-tests-"))
os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_tmp_root / 'import.db'}"
os.environ["EMAIL_TEMPLATES_PATH"] = str(_tmp_root / "templates")
os.environ["EMAIL_BLACKLIST_PATH"] = str(_tmp_root / "blacklist.txt")
os.environ["NOTIFICATION_PROCESS_INTERVAL"] = "0"
os.environ["USE_MOCK_EMAIL"] = "true"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.config import Settings
from src.core import DeliveryException
from src.infrastructure.database import Base
from src.notifications.application import INotificationTransport, NotificationService
from src.notifications.domain import Attachment, RetryPolicy
from src.notifications.infrastructure import (
    BlacklistFilter,
    DeliveryStatistics,
    DeliveryTracker,
    NotificationQueue,
    TemplateRegistry,
)
from src.verification.application import VerificationService
from src.verification.domain import VerificationPolicy
from src.verification.infrastructure import SQLAlchemyVerificationCodeRepository
import src.verification.infrastructure.models  # noqa: F401

START_TIME = datetime(2025, 3, 14, 10, 0, tzinfo=timezone.utc)
BLOCKED_ADDRESS = "blocked@example.com"


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START_TIME):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class SentMessage:
    def __init__(self, to: str, subject: str, body: str, is_html: bool, attachments: Sequence[Attachment]):
        self.to = to
        self.subject = subject
        self.body = body
        self.is_html = is_html
        self.attachments = list(attachments)


class ScriptedTransport(INotificationTransport):
    """
    Transport whose outcomes are queued up front.

    Each send() pops the next outcome: None succeeds, an exception instance
    is raised. Once the script runs out every send succeeds.
    """

    name = "scripted"

    def __init__(self, outcomes: Optional[List[Optional[Exception]]] = None):
        self.outcomes: List[Optional[Exception]] = list(outcomes or [])
        self.attempts: List[SentMessage] = []
        self.delivered: List[SentMessage] = []
        self.healthy = True

    def fail_next(self, count: int = 1, error: Optional[Exception] = None) -> None:
        for _ in range(count):
            self.outcomes.append(error or DeliveryException("connection refused"))

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        is_html: bool = False,
        attachments: Sequence[Attachment] = ()
    ) -> None:
        message = SentMessage(to, subject, body, is_html, attachments)
        self.attempts.append(message)
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if outcome is not None:
            raise outcome
        self.delivered.append(message)

    async def check_health(self) -> bool:
        return self.healthy


# ========== Domain fixtures ==========

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


# ========== Database fixtures ==========

@pytest.fixture
async def db_session(tmp_path) -> AsyncGenerator[AsyncSession, None]:
    """A session on a fresh SQLite file with the schema created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'codes.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def repository(db_session) -> SQLAlchemyVerificationCodeRepository:
    return SQLAlchemyVerificationCodeRepository(db_session)


@pytest.fixture
def verification_service(repository, clock) -> VerificationService:
    return VerificationService(
        repository,
        policy=VerificationPolicy(),
        clock=clock,
        blocklist=BlacklistFilter([BLOCKED_ADDRESS]),
    )


# ========== Notification fixtures ==========

@pytest.fixture
def templates() -> TemplateRegistry:
    registry = TemplateRegistry()
    registry.load()
    return registry


@pytest.fixture
def notification_service(transport, templates, clock) -> NotificationService:
    return NotificationService(
        queue=NotificationQueue(),
        transport=transport,
        templates=templates,
        blacklist=BlacklistFilter([BLOCKED_ADDRESS]),
        tracker=DeliveryTracker(),
        statistics=DeliveryStatistics(),
        retry_policy=RetryPolicy(max_retries=3, backoff_seconds=30, backoff_max_seconds=900),
        clock=clock,
    )


# ========== API fixtures ==========

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    blacklist = tmp_path / "blacklist.txt"
    blacklist.write_text(f"# blocked recipients\n{BLOCKED_ADDRESS}\n", encoding="utf-8")
    return Settings(
        environment="testing",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        email_templates_path=tmp_path / "templates",
        email_blacklist_path=blacklist,
        notification_process_interval=0,
        notification_retry_backoff_seconds=0,
        verification_resend_cooldown_seconds=60,
        verification_rate_limit_max_requests=5,
        use_mock_email=True,
        log_level="WARNING",
    )


@pytest.fixture
def client(test_settings, clock, transport) -> Generator[TestClient, None, None]:
    """
    A TestClient around an application wired with the fake clock and the
    scripted transport. Entering the client runs the lifespan.
    """
    from src.main import create_app

    app = create_app(settings=test_settings, clock=clock, transport=transport)
    with TestClient(app) as test_client:
        yield test_client
