"""
Verification Domain Layer
=========================

Contains:
- Entities: VerificationCode, VerificationResult, VerificationStatistics
- Value Objects: VerificationPolicy, VerificationEmail
- Domain Services: CodeGenerator

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from src.verification.domain.entities import (
    VerificationCode,
    VerificationResult,
    VerificationStatistics,
)
from src.verification.domain.value_objects import (
    CodeGenerator,
    VerificationPolicy,
    VerificationEmail,
)

__all__ = [
    # Entities
    "VerificationCode",
    "VerificationResult",
    "VerificationStatistics",
    # Value Objects & Services
    "CodeGenerator",
    "VerificationPolicy",
    "VerificationEmail",
]
