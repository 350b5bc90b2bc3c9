"""
Verification Application Services
=================================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: VerificationService owns the code state machine
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

import math
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import List, Optional, Protocol

from src.config import VerificationError, VerificationType
from src.core import (
    ApplicationException,
    RepositoryException,
    ResendCooldownException,
    ResourceNotFoundException,
    ValidationException,
    VerificationNotAllowedException,
)
from src.shared.infrastructure.clock import Clock, SystemClock, ensure_utc
from src.shared.infrastructure.logging import get_logger
from src.shared.validators import is_valid_email_address, normalize_email
from src.verification.domain import (
    CodeGenerator,
    VerificationCode,
    VerificationEmail,
    VerificationPolicy,
    VerificationResult,
    VerificationStatistics,
)

logger = get_logger(__name__)

# Re-reads allowed when a compare-and-swap loses a race
MAX_CONCURRENT_UPDATE_ATTEMPTS = 5


# ========== Repository Interfaces (Dependency Inversion) ==========

class IVerificationCodeRepository(ABC):
    """Interface for verification code persistence (the Code Store)."""

    @abstractmethod
    async def create(self, code: VerificationCode) -> VerificationCode:
        """Persist a new code and return it with its generated id."""

    @abstractmethod
    async def get_by_id(self, code_id: str) -> Optional[VerificationCode]:
        """Get a code by id."""

    @abstractmethod
    async def get_latest(
        self,
        email: str,
        type: VerificationType
    ) -> Optional[VerificationCode]:
        """Most recently issued code for (email, type)."""

    @abstractmethod
    async def increment_retry_count(self, code_id: str, expected_retry_count: int) -> bool:
        """Add one failed attempt if retry_count still equals expected_retry_count."""

    @abstractmethod
    async def mark_used(
        self,
        code_id: str,
        used_at: datetime,
        expected_retry_count: int
    ) -> bool:
        """Redeem the code if it is unused and retry_count still equals expected_retry_count."""

    @abstractmethod
    async def supersede_active(
        self,
        email: str,
        type: Optional[VerificationType],
        now: datetime
    ) -> int:
        """Flag every still-valid code for the address (optionally one type) as superseded."""

    @abstractmethod
    async def count_issued_since(self, email: str, since: datetime) -> int:
        """Number of codes issued to the address since the given instant."""

    @abstractmethod
    async def list_history(self, email: str, limit: int = 10) -> List[VerificationCode]:
        """Latest codes for the address, newest first."""

    @abstractmethod
    async def get_statistics(
        self,
        start: datetime,
        end: datetime,
        now: datetime
    ) -> VerificationStatistics:
        """Aggregate issuance/redemption counts for codes created in [start, end]."""


class IVerificationNotifier(ABC):
    """Delivers the verification email to the user."""

    @abstractmethod
    def notify(self, email: str, subject: str, body: str) -> Optional[str]:
        """Hand the message off for delivery; returns a tracking id when available."""


class AddressBlocklist(Protocol):
    def is_blocked(self, address: str) -> bool:
        ...


# ========== Application Services ==========

class VerificationService:
    """
    Issues, validates and retires one-time verification codes.

    Lifecycle failures (not found, expired, used, wrong code, exhausted) come
    back as VerificationResult values. Exceptions are reserved for invalid
    input, eligibility refusals and storage problems.
    """

    def __init__(
        self,
        repository: IVerificationCodeRepository,
        policy: Optional[VerificationPolicy] = None,
        clock: Optional[Clock] = None,
        notifier: Optional[IVerificationNotifier] = None,
        blocklist: Optional[AddressBlocklist] = None,
        code_generator: Optional[CodeGenerator] = None,
    ):
        self._repo = repository
        self._policy = policy or VerificationPolicy()
        self._clock = clock or SystemClock()
        self._notifier = notifier
        self._blocklist = blocklist
        self._generator = code_generator or CodeGenerator()

    @property
    def policy(self) -> VerificationPolicy:
        return self._policy

    # ---------- Issuance ----------

    async def issue_code(
        self,
        email: str,
        type: VerificationType,
        purpose: Optional[str] = None,
        expiry_minutes: Optional[int] = None,
        max_retries: Optional[int] = None,
        additional_data: Optional[str] = None,
    ) -> VerificationCode:
        """
        Mint a new code for (email, type).

        Any still-valid older code for the same pair is marked superseded, so
        only the newest code can ever be redeemed.

        Raises:
            ValidationException: malformed address or non-positive limits
            VerificationNotAllowedException: blacklisted address or daily limit reached
        """
        expiry_minutes = self._policy.expiry_minutes if expiry_minutes is None else expiry_minutes
        max_retries = self._policy.max_retries if max_retries is None else max_retries

        if not is_valid_email_address(email):
            raise ValidationException(
                "Invalid email address",
                {"field": "email", "value": email}
            )
        if expiry_minutes <= 0:
            raise ValidationException("expiry_minutes must be positive", {"field": "expiry_minutes"})
        if max_retries <= 0:
            raise ValidationException("max_retries must be positive", {"field": "max_retries"})

        email = normalize_email(email)
        now = self._clock.now()

        await self._ensure_eligible(email, now)

        superseded = await self._repo.supersede_active(email, type, now)
        if superseded:
            logger.info(
                "Superseded previous verification codes",
                extra={"email": email, "type": type.value, "count": superseded}
            )

        code = VerificationCode.issue(
            email=email,
            code=self._generator.generate(),
            type=type,
            now=now,
            expiry_minutes=expiry_minutes,
            max_retries=max_retries,
            purpose=purpose,
            additional_data=additional_data,
        )
        created = await self._repo.create(code)

        logger.info(
            "Verification code issued",
            extra={
                "email": email,
                "type": type.value,
                "code_id": created.id,
                "expires_at": created.expires_at.isoformat(),
            }
        )

        self._dispatch_email(created, now)
        return created

    async def resend_code(self, email: str, type: VerificationType) -> VerificationCode:
        """
        Issue a fresh code reusing the previous code's purpose and payload.

        The previous code does not need to have expired.

        Raises:
            ResourceNotFoundException: no code was ever issued for (email, type)
            ResendCooldownException: the last code is younger than the cooldown
        """
        email = normalize_email(email)
        previous = await self._repo.get_latest(email, type)
        if previous is None:
            raise ResourceNotFoundException(
                "VerificationCode",
                details={"email": email, "type": type.value}
            )

        cooldown = self._policy.resend_cooldown_seconds
        if cooldown:
            elapsed = (self._clock.now() - previous.created_at).total_seconds()
            if elapsed < cooldown:
                raise ResendCooldownException(email, math.ceil(cooldown - elapsed))

        logger.info("Resending verification code", extra={"email": email, "type": type.value})

        return await self.issue_code(
            email,
            type,
            purpose=previous.purpose,
            max_retries=previous.max_retries,
            additional_data=previous.additional_data,
        )

    # ---------- Verification ----------

    async def verify_code(
        self,
        email: str,
        code: str,
        type: VerificationType
    ) -> VerificationResult:
        """
        Check a submitted code against the latest code for (email, type).

        A wrong code consumes one attempt, so callers must not blindly retry
        this call on transient errors.

        Raises:
            ValidationException: the submitted code is not six ASCII digits
        """
        if not self.is_valid_code_format(code):
            raise ValidationException(
                "Verification code must be 6 digits",
                {"field": "code"}
            )

        email = normalize_email(email)

        for _ in range(MAX_CONCURRENT_UPDATE_ATTEMPTS):
            now = self._clock.now()
            record = await self._repo.get_latest(email, type)

            if record is None:
                logger.warning(
                    "No verification code found",
                    extra={"email": email, "type": type.value}
                )
                return VerificationResult.failed(
                    VerificationError.NOT_FOUND,
                    "No verification code was found. Request a new code."
                )

            reason = record.invalid_reason(now)
            if reason is not None:
                logger.warning(
                    "Verification code is no longer valid",
                    extra={"email": email, "type": type.value, "reason": reason.value}
                )
                return VerificationResult.failed(
                    reason,
                    _INVALID_MESSAGES[reason],
                    remaining_attempts=record.remaining_attempts,
                )

            if record.matches(code):
                if await self._repo.mark_used(record.id, now, record.retry_count):
                    logger.info(
                        "Verification succeeded",
                        extra={"email": email, "type": type.value, "code_id": record.id}
                    )
                    return VerificationResult.ok()
                continue

            if await self._repo.increment_retry_count(record.id, record.retry_count):
                record.register_failed_attempt()
                return self._wrong_code_result(record)

        raise RepositoryException(
            "Verification code was modified concurrently; try again",
            {"email": email, "type": type.value}
        )

    def _wrong_code_result(self, record: VerificationCode) -> VerificationResult:
        remaining = record.remaining_attempts
        logger.warning(
            "Wrong verification code",
            extra={"email": record.email, "type": record.type.value, "remaining_attempts": remaining}
        )
        if remaining == 0:
            return VerificationResult.failed(
                VerificationError.INVALID_CODE,
                "Verification code is incorrect and no attempts are left. Request a new code.",
                remaining_attempts=0,
                retry_exhausted=True,
            )
        return VerificationResult.failed(
            VerificationError.INVALID_CODE,
            f"Verification code is incorrect. Remaining attempts: {remaining}",
            remaining_attempts=remaining,
        )

    # ---------- Queries & housekeeping ----------

    async def get_active_code(
        self,
        email: str,
        type: VerificationType
    ) -> Optional[VerificationCode]:
        """Latest code for (email, type) if it can still be redeemed."""
        record = await self._repo.get_latest(normalize_email(email), type)
        if record is None or not record.is_valid(self._clock.now()):
            return None
        return record

    async def get_history(self, email: str, limit: int = 10) -> List[VerificationCode]:
        return await self._repo.list_history(normalize_email(email), limit)

    async def cancel_codes(self, email: str, type: Optional[VerificationType] = None) -> int:
        """Retire every active code for the address; returns how many were retired."""
        cancelled = await self._repo.supersede_active(normalize_email(email), type, self._clock.now())
        if cancelled:
            logger.info(
                "Verification codes cancelled",
                extra={"email": email, "type": type.value if type else "all", "count": cancelled}
            )
        return cancelled

    async def get_statistics(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> VerificationStatistics:
        now = self._clock.now()
        end = ensure_utc(end_date) if end_date else now
        start = ensure_utc(start_date) if start_date else end - timedelta(days=30)
        if start > end:
            raise ValidationException("start_date must not be after end_date")
        return await self._repo.get_statistics(start, end, now)

    @staticmethod
    def is_valid_code_format(code: str) -> bool:
        return CodeGenerator.is_valid_format(code)

    # ---------- Internals ----------

    async def _ensure_eligible(self, email: str, now: datetime) -> None:
        if self._blocklist is not None and self._blocklist.is_blocked(email):
            logger.warning("Verification refused for blacklisted address", extra={"email": email})
            raise VerificationNotAllowedException(email, "address is blacklisted")

        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        issued_today = await self._repo.count_issued_since(email, start_of_day)
        if issued_today >= self._policy.daily_limit:
            logger.warning(
                "Daily verification limit reached",
                extra={"email": email, "issued_today": issued_today}
            )
            raise VerificationNotAllowedException(email, "daily verification limit reached")

    def _dispatch_email(self, record: VerificationCode, now: datetime) -> None:
        if self._notifier is None:
            return

        message = VerificationEmail.build(
            record.type, record.code, record.expires_at, now, record.max_retries
        )
        try:
            tracking_id = self._notifier.notify(record.email, message.subject, message.body)
        except ApplicationException as e:
            # Issuance stands; the user can ask for a resend
            logger.error(
                "Verification email could not be queued",
                extra={"email": record.email, "code_id": record.id, "error": e.message}
            )
            return

        logger.debug(
            "Verification email queued",
            extra={"email": record.email, "tracking_id": tracking_id}
        )


_INVALID_MESSAGES = {
    VerificationError.ALREADY_USED: "This verification code is no longer usable. Request a new code.",
    VerificationError.RETRY_EXHAUSTED: "Maximum attempts exceeded. Request a new code.",
    VerificationError.EXPIRED: "Verification code has expired. Request a new code.",
}
