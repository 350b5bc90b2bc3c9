"""
Verification Application DTOs
=============================

Data Transfer Objects for the verification API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses. The code itself never appears in a response.
"""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field

from src.config import VERIFICATION_TYPE_DISPLAY_NAMES, VerificationType
from src.verification.domain import (
    VerificationCode,
    VerificationResult,
    VerificationStatistics,
)


# ========== Request DTOs ==========

class IssueCodeRequest(BaseModel):
    """Request a verification code for an address."""
    email: str = Field(..., min_length=3, max_length=100, description="Address to verify")
    type: VerificationType = Field(..., description="What the code will authorize")
    purpose: Optional[str] = Field(None, max_length=200, description="Free-text label")
    additional_data: Optional[str] = Field(
        None,
        max_length=500,
        description="Opaque payload needed to resume the originating workflow"
    )
    expiry_minutes: Optional[int] = Field(None, ge=1, le=1440, description="Code lifetime")
    max_retries: Optional[int] = Field(None, ge=1, le=10, description="Wrong-code attempts allowed")


class VerifyCodeRequest(BaseModel):
    """Submit a code for verification."""
    email: str = Field(..., min_length=3, max_length=100)
    code: str = Field(..., min_length=1, max_length=12)
    type: VerificationType


class ResendCodeRequest(BaseModel):
    """Ask for a fresh code."""
    email: str = Field(..., min_length=3, max_length=100)
    type: VerificationType


# ========== Response DTOs ==========

class IssueCodeResponse(BaseModel):
    """Acknowledges issuance without revealing the code."""
    success: bool = True
    message: str
    expires_at: datetime
    max_retries: int


class VerificationResultResponse(BaseModel):
    """Outcome of a verification attempt."""
    success: bool
    message: str
    error_code: Optional[str] = Field(None, description="not_found, expired, already_used, invalid_code, retry_exhausted")
    remaining_attempts: Optional[int] = None
    retry_exhausted: bool = False
    can_retry: bool = False

    @classmethod
    def from_result(cls, result: VerificationResult) -> "VerificationResultResponse":
        return cls(
            success=result.success,
            message=result.message,
            error_code=result.error.value if result.error else None,
            remaining_attempts=result.remaining_attempts,
            retry_exhausted=result.retry_exhausted,
            can_retry=result.can_retry,
        )


class VerificationCodeResponse(BaseModel):
    """Public view of a verification code record."""
    id: str
    email: str
    type: VerificationType
    type_display_name: str
    purpose: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    used: bool
    used_at: Optional[datetime] = None
    superseded: bool
    retry_count: int
    max_retries: int
    remaining_attempts: int
    remaining_minutes: int

    @classmethod
    def from_entity(cls, code: VerificationCode, now: datetime) -> "VerificationCodeResponse":
        return cls(
            id=code.id,
            email=code.email,
            type=code.type,
            type_display_name=VERIFICATION_TYPE_DISPLAY_NAMES.get(code.type, code.type.value),
            purpose=code.purpose,
            created_at=code.created_at,
            expires_at=code.expires_at,
            used=code.used,
            used_at=code.used_at,
            superseded=code.superseded,
            retry_count=code.retry_count,
            max_retries=code.max_retries,
            remaining_attempts=code.remaining_attempts,
            remaining_minutes=code.remaining_minutes(now),
        )


class VerificationStatisticsResponse(BaseModel):
    """Verification activity over a period."""
    period_start: datetime
    period_end: datetime
    total_issued: int
    verified: int
    expired_unused: int
    exhausted: int
    superseded: int
    success_rate: float
    by_type: Dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_entity(cls, stats: VerificationStatistics) -> "VerificationStatisticsResponse":
        return cls(
            period_start=stats.period_start,
            period_end=stats.period_end,
            total_issued=stats.total_issued,
            verified=stats.verified,
            expired_unused=stats.expired_unused,
            exhausted=stats.exhausted,
            superseded=stats.superseded,
            success_rate=stats.success_rate,
            by_type=stats.by_type,
        )
