"""
Verification Infrastructure Models
==================================

SQLAlchemy ORM models for the verification module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.config import VerificationType
from src.infrastructure.database import Base


class VerificationCodeModel(Base):
    """
    Database model for the VerificationCode entity.

    Maps to the 'verification_codes' table. Rows are never deleted; they
    stay for audit after they stop being redeemable.
    """
    __tablename__ = "verification_codes"

    # Monotonic key doubles as tie-breaker for codes issued in the same instant
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    email: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    type: Mapped[VerificationType] = mapped_column(String(50), nullable=False)
    purpose: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    additional_data: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Redemption state
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    superseded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Attempt tracking
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    __table_args__ = (
        Index("ix_verification_codes_lookup", "email", "type", "created_at"),
    )
