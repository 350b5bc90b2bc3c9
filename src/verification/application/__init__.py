"""
Verification Application Layer
==============================

Contains:
- Services: VerificationService (the code state machine)
- DTOs: Data transfer objects for API serialization
- Interfaces the infrastructure layer implements

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from src.verification.application.dto import (
    IssueCodeRequest,
    VerifyCodeRequest,
    ResendCodeRequest,
    IssueCodeResponse,
    VerificationResultResponse,
    VerificationCodeResponse,
    VerificationStatisticsResponse,
)
from src.verification.application.services import (
    VerificationService,
    IVerificationCodeRepository,
    IVerificationNotifier,
)

__all__ = [
    # DTOs
    "IssueCodeRequest",
    "VerifyCodeRequest",
    "ResendCodeRequest",
    "IssueCodeResponse",
    "VerificationResultResponse",
    "VerificationCodeResponse",
    "VerificationStatisticsResponse",
    # Services
    "VerificationService",
    # Interfaces
    "IVerificationCodeRepository",
    "IVerificationNotifier",
]
