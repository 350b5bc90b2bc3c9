"""
Verification Infrastructure Layer
=================================

Infrastructure implementations for verification codes:
- Models: SQLAlchemy ORM models
- Repositories: Code Store backed by SQLAlchemy
- Rate limiting: sliding-window request limiter
- External: notification queue adapter
"""

from src.verification.infrastructure.models import VerificationCodeModel
from src.verification.infrastructure.repositories import SQLAlchemyVerificationCodeRepository
from src.verification.infrastructure.rate_limit import SlidingWindowRateLimiter

__all__ = [
    "VerificationCodeModel",
    "SQLAlchemyVerificationCodeRepository",
    "SlidingWindowRateLimiter",
]
