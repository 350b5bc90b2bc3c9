"""
Verification Domain Entities
============================

Pure Python domain entities for one-time verification codes.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns. Time is always
passed in so expiry can be evaluated against any clock.
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Optional

from src.config import VerificationError, VerificationType
from src.shared.validators import normalize_email


@dataclass
class VerificationCode:
    """
    A short-lived, retry-limited one-time numeric code.

    Once used, superseded, expired or out of attempts the record is
    terminal: nothing returns it to a valid state.
    """

    id: Optional[str]
    email: str
    code: str
    type: VerificationType
    created_at: datetime
    expires_at: datetime

    purpose: Optional[str] = None
    additional_data: Optional[str] = None
    used: bool = False
    used_at: Optional[datetime] = None
    retry_count: int = 0
    max_retries: int = 3
    superseded: bool = False

    def __post_init__(self):
        if self.expires_at < self.created_at:
            raise ValueError("expires_at cannot be before created_at")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    @property
    def is_exhausted(self) -> bool:
        return self.retry_count >= self.max_retries

    @property
    def remaining_attempts(self) -> int:
        return max(0, self.max_retries - self.retry_count)

    def is_valid(self, now: datetime) -> bool:
        """A code can be redeemed only while unused, current, unexpired and not exhausted."""
        return (
            not self.used
            and not self.superseded
            and not self.is_exhausted
            and not self.is_expired(now)
        )

    def invalid_reason(self, now: datetime) -> Optional[VerificationError]:
        """
        Which invariant a non-valid code broke.

        Checked in order used -> exhausted -> expired, so a code that ran out
        of attempts keeps reporting exhaustion even after it also expires.
        """
        if self.used or self.superseded:
            return VerificationError.ALREADY_USED
        if self.is_exhausted:
            return VerificationError.RETRY_EXHAUSTED
        if self.is_expired(now):
            return VerificationError.EXPIRED
        return None

    def remaining_minutes(self, now: datetime) -> int:
        return max(0, int((self.expires_at - now).total_seconds() // 60))

    def matches(self, candidate: str) -> bool:
        return secrets.compare_digest(self.code.encode(), candidate.encode())

    def mark_used(self, now: datetime) -> None:
        self.used = True
        self.used_at = now

    def register_failed_attempt(self) -> None:
        self.retry_count += 1

    @classmethod
    def issue(
        cls,
        email: str,
        code: str,
        type: VerificationType,
        now: datetime,
        expiry_minutes: int,
        max_retries: int,
        purpose: Optional[str] = None,
        additional_data: Optional[str] = None,
    ) -> "VerificationCode":
        """Build a fresh, valid code for a normalized address."""
        return cls(
            id=None,
            email=normalize_email(email),
            code=code,
            type=type,
            created_at=now,
            expires_at=now + timedelta(minutes=expiry_minutes),
            purpose=purpose,
            additional_data=additional_data,
            max_retries=max_retries,
        )


@dataclass
class VerificationResult:
    """Outcome of a verification attempt, returned as a value rather than raised."""

    success: bool
    message: str
    error: Optional[VerificationError] = None
    remaining_attempts: Optional[int] = None
    retry_exhausted: bool = False

    @property
    def can_retry(self) -> bool:
        """Whether re-entering a code can still succeed (as opposed to requesting a new one)."""
        if self.success or self.retry_exhausted:
            return False
        if self.error == VerificationError.INVALID_CODE:
            return bool(self.remaining_attempts)
        return False

    @classmethod
    def ok(cls) -> "VerificationResult":
        return cls(success=True, message="Verification successful")

    @classmethod
    def failed(
        cls,
        error: VerificationError,
        message: str,
        remaining_attempts: Optional[int] = None,
        retry_exhausted: Optional[bool] = None,
    ) -> "VerificationResult":
        if retry_exhausted is None:
            retry_exhausted = error == VerificationError.RETRY_EXHAUSTED
        return cls(
            success=False,
            message=message,
            error=error,
            remaining_attempts=remaining_attempts,
            retry_exhausted=retry_exhausted,
        )


@dataclass
class VerificationStatistics:
    """Issuance and redemption counts over a reporting period."""

    period_start: datetime
    period_end: datetime
    total_issued: int = 0
    verified: int = 0
    expired_unused: int = 0
    exhausted: int = 0
    superseded: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        if self.total_issued == 0:
            return 0.0
        return round(self.verified / self.total_issued * 100, 2)
