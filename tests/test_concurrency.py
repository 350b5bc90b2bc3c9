"""
Tests for shared state touched by more than one caller at a time.

Covers producer threads feeding the queue and counters, overlapping queue
drains on one event loop, and racing wrong-code submissions against one
SQLite database.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from src.config import VerificationType
from src.infrastructure.database import Base
from src.notifications.application import NotificationService
from src.notifications.domain import DeliveryResult, NotificationRequest, RetryPolicy
from src.notifications.infrastructure import (
    BlacklistFilter,
    DeliveryStatistics,
    DeliveryTracker,
    NotificationQueue,
)
from src.verification.application import VerificationService
from src.verification.domain import CodeGenerator
from src.verification.infrastructure import SQLAlchemyVerificationCodeRepository

from tests.conftest import ScriptedTransport

WORKERS = 8
PER_WORKER = 50
EMAIL = "race@example.com"
REGISTRATION = VerificationType.CUSTOMER_REGISTRATION


class FixedCodeGenerator(CodeGenerator):
    def generate(self, length: int = 6) -> str:
        return "123456"


class YieldingTransport(ScriptedTransport):
    """Gives the event loop a turn before every send."""

    async def send(self, to, subject, body, is_html=False, attachments=()):
        await asyncio.sleep(0)
        await super().send(to, subject, body, is_html, attachments)


class TestProducerThreads:

    def test_enqueue_from_many_threads(self, notification_service):
        def produce(worker: int) -> None:
            for n in range(PER_WORKER):
                notification_service.enqueue(
                    NotificationRequest(to=f"user{worker}.{n}@example.com", subject="Hi", body="x")
                )

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            list(pool.map(produce, range(WORKERS)))

        assert notification_service.pending_count == WORKERS * PER_WORKER

    def test_statistics_counters_from_many_threads(self):
        statistics = DeliveryStatistics()

        def record(worker: int) -> None:
            for n in range(PER_WORKER):
                statistics.record_attempt(success=n % 2 == 0)
                statistics.record_failure()

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            list(pool.map(record, range(WORKERS)))

        assert statistics.total_sent == WORKERS * PER_WORKER
        assert statistics.succeeded == WORKERS * PER_WORKER // 2
        assert statistics.failed == WORKERS * PER_WORKER

    def test_tracker_keeps_first_result(self, clock):
        tracker = DeliveryTracker()

        def record(worker: int) -> bool:
            return tracker.record(
                DeliveryResult(
                    tracking_id="shared",
                    recipient=f"user{worker}@example.com",
                    subject="Hi",
                    success=True,
                    sent_at=clock.now(),
                    attempts=1,
                )
            )

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            outcomes = list(pool.map(record, range(WORKERS * 4)))

        assert outcomes.count(True) == 1
        assert len(tracker) == 1


@pytest.mark.asyncio
class TestOverlappingDrains:

    async def test_each_request_handled_once(self, templates, clock):
        transport = YieldingTransport()
        notification_service = NotificationService(
            queue=NotificationQueue(),
            transport=transport,
            templates=templates,
            blacklist=BlacklistFilter(),
            tracker=DeliveryTracker(),
            statistics=DeliveryStatistics(),
            retry_policy=RetryPolicy(),
            clock=clock,
        )
        for n in range(20):
            notification_service.enqueue(NotificationRequest(to=f"user{n}@example.com", subject="Hi", body="x"))

        first, second = await asyncio.gather(
            notification_service.process_queue(),
            notification_service.process_queue(),
        )

        assert first + second == 20
        assert first > 0 and second > 0
        assert len({m.to for m in transport.delivered}) == 20
        assert len(transport.attempts) == 20
        assert notification_service.pending_count == 0
        assert notification_service.get_statistics().succeeded == 20


@pytest.mark.asyncio
class TestRacingVerification:

    async def test_wrong_codes_each_consume_an_attempt(self, tmp_path, clock):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        session_maker = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)

        def service_for(session) -> VerificationService:
            return VerificationService(
                SQLAlchemyVerificationCodeRepository(session),
                clock=clock,
                code_generator=FixedCodeGenerator(),
            )

        async with session_maker() as session:
            issued = await service_for(session).issue_code(EMAIL, REGISTRATION)
            await session.commit()

        async def submit_wrong_code():
            async with session_maker() as session:
                result = await service_for(session).verify_code(EMAIL, "000000", REGISTRATION)
                await session.commit()
                return result

        try:
            results = await asyncio.gather(submit_wrong_code(), submit_wrong_code())

            assert all(not r.success for r in results)
            assert sorted(r.remaining_attempts for r in results) == [1, 2]

            async with session_maker() as session:
                stored = await SQLAlchemyVerificationCodeRepository(session).get_by_id(issued.id)
            assert stored.retry_count == 2
            assert not stored.used
        finally:
            await engine.dispose()
