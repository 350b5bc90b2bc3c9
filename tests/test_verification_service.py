"""
Tests for VerificationService against the SQLite-backed repository.
"""

from datetime import timedelta
from typing import List, Optional

import pytest

from src.config import VerificationError, VerificationType
from src.core import (
    ResendCooldownException,
    ResourceNotFoundException,
    ValidationException,
    VerificationNotAllowedException,
)
from src.verification.application import IVerificationNotifier, VerificationService
from src.verification.domain import CodeGenerator, VerificationPolicy

from tests.conftest import BLOCKED_ADDRESS

EMAIL = "jane.doe@example.com"
REGISTRATION = VerificationType.CUSTOMER_REGISTRATION


class SequenceCodeGenerator(CodeGenerator):
    """Hands out known codes so tests can submit right and wrong ones."""

    def __init__(self, codes: List[str]):
        self._codes = list(codes)

    def generate(self, length: int = 6) -> str:
        return self._codes.pop(0)


class RecordingNotifier(IVerificationNotifier):
    def __init__(self):
        self.messages = []

    def notify(self, email: str, subject: str, body: str) -> Optional[str]:
        self.messages.append((email, subject, body))
        return f"tracking-{len(self.messages)}"


def build_service(repository, clock, codes, **kwargs) -> VerificationService:
    return VerificationService(
        repository,
        policy=kwargs.pop("policy", VerificationPolicy()),
        clock=clock,
        code_generator=SequenceCodeGenerator(codes),
        **kwargs,
    )


@pytest.mark.asyncio
class TestIssueCode:

    async def test_issue_code_defaults(self, repository, clock):
        service = build_service(repository, clock, ["123456"])

        code = await service.issue_code(EMAIL, REGISTRATION, purpose="signup")

        assert code.id is not None
        assert code.code == "123456"
        assert code.email == EMAIL
        assert code.expires_at == clock.now() + timedelta(minutes=15)
        assert code.max_retries == 3
        assert code.retry_count == 0
        assert not code.used
        assert code.purpose == "signup"

    async def test_issue_code_normalizes_address(self, repository, clock):
        service = build_service(repository, clock, ["123456"])

        code = await service.issue_code("  Jane.Doe@Example.COM ", REGISTRATION)

        assert code.email == EMAIL
        stored = await repository.get_latest(EMAIL, REGISTRATION)
        assert stored.id == code.id

    async def test_generated_codes_are_six_digits(self, verification_service):
        code = await verification_service.issue_code(EMAIL, REGISTRATION)

        assert len(code.code) == 6
        assert code.code.isdigit()

    async def test_invalid_address_rejected(self, verification_service):
        with pytest.raises(ValidationException):
            await verification_service.issue_code("not-an-address", REGISTRATION)

    async def test_non_positive_limits_rejected(self, verification_service):
        with pytest.raises(ValidationException):
            await verification_service.issue_code(EMAIL, REGISTRATION, expiry_minutes=0)
        with pytest.raises(ValidationException):
            await verification_service.issue_code(EMAIL, REGISTRATION, max_retries=0)

    async def test_new_code_supersedes_previous(self, repository, clock):
        service = build_service(repository, clock, ["111111", "222222"])

        first = await service.issue_code(EMAIL, REGISTRATION)
        second = await service.issue_code(EMAIL, REGISTRATION)

        stored_first = await repository.get_by_id(first.id)
        assert stored_first.superseded
        assert (await repository.get_latest(EMAIL, REGISTRATION)).id == second.id

        # The superseded code no longer redeems anything
        result = await service.verify_code(EMAIL, "111111", REGISTRATION)
        assert not result.success
        assert result.error == VerificationError.INVALID_CODE

        result = await service.verify_code(EMAIL, "222222", REGISTRATION)
        assert result.success

    async def test_supersession_is_scoped_by_type(self, repository, clock):
        service = build_service(repository, clock, ["111111", "222222"])

        registration = await service.issue_code(EMAIL, REGISTRATION)
        await service.issue_code(EMAIL, VerificationType.PASSWORD_RESET)

        assert not (await repository.get_by_id(registration.id)).superseded

    async def test_blacklisted_address_refused(self, verification_service):
        with pytest.raises(VerificationNotAllowedException):
            await verification_service.issue_code(BLOCKED_ADDRESS.upper(), REGISTRATION)

    async def test_daily_limit(self, repository, clock):
        policy = VerificationPolicy(daily_limit=3)
        service = build_service(repository, clock, ["100000", "200000", "300000", "400000"], policy=policy)

        for _ in range(3):
            await service.issue_code(EMAIL, REGISTRATION)

        with pytest.raises(VerificationNotAllowedException) as exc_info:
            await service.issue_code(EMAIL, REGISTRATION)
        assert "daily" in exc_info.value.reason

        clock.advance(days=1)
        code = await service.issue_code(EMAIL, REGISTRATION)
        assert code.code == "400000"

    async def test_notifier_receives_code(self, repository, clock):
        notifier = RecordingNotifier()
        service = build_service(repository, clock, ["654321"], notifier=notifier)

        await service.issue_code(EMAIL, VerificationType.PASSWORD_RESET)

        assert len(notifier.messages) == 1
        to, subject, body = notifier.messages[0]
        assert to == EMAIL
        assert "Password reset" in subject
        assert "654321" in body
        assert "15 minutes" in body


@pytest.mark.asyncio
class TestVerifyCode:

    async def test_correct_code_verifies_once(self, repository, clock):
        service = build_service(repository, clock, ["123456"])
        issued = await service.issue_code(EMAIL, REGISTRATION)

        first = await service.verify_code(EMAIL, "123456", REGISTRATION)
        second = await service.verify_code(EMAIL, "123456", REGISTRATION)

        assert first.success
        assert not second.success
        assert second.error == VerificationError.ALREADY_USED

        stored = await repository.get_by_id(issued.id)
        assert stored.used
        assert stored.used_at == clock.now()

    async def test_address_is_normalized_on_verify(self, repository, clock):
        service = build_service(repository, clock, ["123456"])
        await service.issue_code(EMAIL, REGISTRATION)

        result = await service.verify_code("JANE.DOE@example.com ", "123456", REGISTRATION)

        assert result.success

    async def test_wrong_code_consumes_attempt(self, repository, clock):
        service = build_service(repository, clock, ["123456"])
        issued = await service.issue_code(EMAIL, REGISTRATION)

        result = await service.verify_code(EMAIL, "000000", REGISTRATION)

        assert not result.success
        assert result.error == VerificationError.INVALID_CODE
        assert result.remaining_attempts == 2
        assert result.can_retry
        assert (await repository.get_by_id(issued.id)).retry_count == 1

    async def test_exhaustion_blocks_correct_code(self, repository, clock):
        service = build_service(repository, clock, ["123456"])
        await service.issue_code(EMAIL, REGISTRATION)

        results = [await service.verify_code(EMAIL, "000000", REGISTRATION) for _ in range(3)]

        assert [r.remaining_attempts for r in results] == [2, 1, 0]
        assert results[-1].retry_exhausted
        assert not results[-1].can_retry

        after = await service.verify_code(EMAIL, "123456", REGISTRATION)
        assert not after.success
        assert after.error == VerificationError.RETRY_EXHAUSTED
        assert after.retry_exhausted

    async def test_exhaustion_reported_before_expiry(self, repository, clock):
        service = build_service(repository, clock, ["123456"])
        await service.issue_code(EMAIL, REGISTRATION, max_retries=1)
        await service.verify_code(EMAIL, "000000", REGISTRATION)

        clock.advance(hours=1)
        result = await service.verify_code(EMAIL, "123456", REGISTRATION)

        assert result.error == VerificationError.RETRY_EXHAUSTED

    async def test_expired_code_rejected(self, repository, clock):
        service = build_service(repository, clock, ["123456"])
        await service.issue_code(EMAIL, REGISTRATION)

        clock.advance(minutes=15)
        assert (await service.verify_code(EMAIL, "000000", REGISTRATION)).error == VerificationError.INVALID_CODE

        clock.advance(seconds=1)
        result = await service.verify_code(EMAIL, "123456", REGISTRATION)

        assert not result.success
        assert result.error == VerificationError.EXPIRED

    async def test_unknown_address(self, verification_service):
        result = await verification_service.verify_code("nobody@example.com", "123456", REGISTRATION)

        assert not result.success
        assert result.error == VerificationError.NOT_FOUND

    async def test_code_for_other_type_not_accepted(self, repository, clock):
        service = build_service(repository, clock, ["123456"])
        await service.issue_code(EMAIL, REGISTRATION)

        result = await service.verify_code(EMAIL, "123456", VerificationType.PASSWORD_RESET)

        assert result.error == VerificationError.NOT_FOUND

    @pytest.mark.parametrize("code", ["12345", "1234567", "12a456", "", "١٢٣٤٥٦"])
    async def test_malformed_code_rejected(self, verification_service, code):
        await verification_service.issue_code(EMAIL, REGISTRATION)

        with pytest.raises(ValidationException):
            await verification_service.verify_code(EMAIL, code, REGISTRATION)

    async def test_lost_race_is_retried(self, repository, clock):
        service = build_service(repository, clock, ["123456"])
        issued = await service.issue_code(EMAIL, REGISTRATION)

        # Another request consumed an attempt after this one read the record
        stale = await repository.get_latest(EMAIL, REGISTRATION)
        assert await repository.increment_retry_count(issued.id, stale.retry_count)
        assert not await repository.increment_retry_count(issued.id, stale.retry_count)
        assert not await repository.mark_used(issued.id, clock.now(), stale.retry_count)

        result = await service.verify_code(EMAIL, "000000", REGISTRATION)
        assert result.remaining_attempts == 1


@pytest.mark.asyncio
class TestResendCode:

    async def test_resend_reuses_purpose_and_payload(self, repository, clock):
        service = build_service(repository, clock, ["111111", "222222"])
        first = await service.issue_code(
            EMAIL, REGISTRATION, purpose="signup", max_retries=5, additional_data='{"plan": "pro"}'
        )

        second = await service.resend_code(EMAIL, REGISTRATION)

        assert second.id != first.id
        assert second.code == "222222"
        assert second.purpose == "signup"
        assert second.additional_data == '{"plan": "pro"}'
        assert second.max_retries == 5
        assert (await repository.get_by_id(first.id)).superseded

    async def test_resend_without_previous_code(self, verification_service):
        with pytest.raises(ResourceNotFoundException):
            await verification_service.resend_code(EMAIL, REGISTRATION)

    async def test_resend_cooldown(self, repository, clock):
        policy = VerificationPolicy(resend_cooldown_seconds=60)
        service = build_service(repository, clock, ["111111", "222222"], policy=policy)
        await service.issue_code(EMAIL, REGISTRATION)

        clock.advance(seconds=20)
        with pytest.raises(ResendCooldownException) as exc_info:
            await service.resend_code(EMAIL, REGISTRATION)
        assert exc_info.value.retry_after_seconds == 40

        clock.advance(seconds=40)
        code = await service.resend_code(EMAIL, REGISTRATION)
        assert code.code == "222222"


@pytest.mark.asyncio
class TestQueries:

    async def test_active_code(self, repository, clock):
        service = build_service(repository, clock, ["123456"])
        issued = await service.issue_code(EMAIL, REGISTRATION)

        active = await service.get_active_code(EMAIL, REGISTRATION)
        assert active.id == issued.id

        await service.verify_code(EMAIL, "123456", REGISTRATION)
        assert await service.get_active_code(EMAIL, REGISTRATION) is None

    async def test_cancel_codes(self, repository, clock):
        service = build_service(repository, clock, ["111111", "222222"])
        await service.issue_code(EMAIL, REGISTRATION)
        await service.issue_code(EMAIL, VerificationType.EMAIL_CHANGE)

        assert await service.cancel_codes(EMAIL, REGISTRATION) == 1
        assert await service.get_active_code(EMAIL, REGISTRATION) is None
        assert await service.get_active_code(EMAIL, VerificationType.EMAIL_CHANGE) is not None

        assert await service.cancel_codes(EMAIL) == 1
        assert await service.cancel_codes(EMAIL) == 0

    async def test_history_newest_first(self, repository, clock):
        service = build_service(repository, clock, ["111111", "222222", "333333"])
        for _ in range(3):
            await service.issue_code(EMAIL, REGISTRATION)
            clock.advance(minutes=1)

        history = await service.get_history(EMAIL, limit=2)

        assert [c.code for c in history] == ["333333", "222222"]

    async def test_statistics(self, repository, clock):
        service = build_service(repository, clock, ["111111", "222222", "333333", "444444"])

        await service.issue_code(EMAIL, REGISTRATION)              # superseded
        await service.issue_code(EMAIL, REGISTRATION)              # verified
        await service.verify_code(EMAIL, "222222", REGISTRATION)
        await service.issue_code("other@example.com", REGISTRATION, max_retries=1)   # exhausted
        await service.verify_code("other@example.com", "000000", REGISTRATION)
        await service.issue_code(EMAIL, VerificationType.PASSWORD_RESET)             # expires

        clock.advance(hours=1)
        stats = await service.get_statistics()

        assert stats.total_issued == 4
        assert stats.verified == 1
        assert stats.superseded == 1
        assert stats.exhausted == 1
        assert stats.expired_unused == 1
        assert stats.by_type == {"customer_registration": 3, "password_reset": 1}
        assert stats.success_rate == 25.0

    async def test_statistics_rejects_inverted_period(self, verification_service, clock):
        with pytest.raises(ValidationException):
            await verification_service.get_statistics(
                start_date=clock.now(), end_date=clock.now() - timedelta(days=1)
            )
