"""
Verification Controllers (API Routes)
=====================================

FastAPI routes for issuing and checking verification codes.

Controllers are thin - they delegate to VerificationService. Lifecycle
failures (expired, wrong code, ...) are returned as 200 responses with
success=false; only invalid input and refusals become error statuses.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import VerificationType
from src.core import ResourceNotFoundException
from src.infrastructure.database import get_session
from src.shared.infrastructure.logging import get_logger
from src.verification.application import (
    IssueCodeRequest,
    IssueCodeResponse,
    ResendCodeRequest,
    VerificationCodeResponse,
    VerificationResultResponse,
    VerificationService,
    VerificationStatisticsResponse,
    VerifyCodeRequest,
)
from src.verification.domain import VerificationCode
from src.verification.infrastructure import (
    SQLAlchemyVerificationCodeRepository,
    SlidingWindowRateLimiter,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/verification", tags=["Verification"])


# ========== Dependencies ==========

async def get_verification_service(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> VerificationService:
    """Build a VerificationService bound to the request's session."""
    state = request.app.state
    return VerificationService(
        SQLAlchemyVerificationCodeRepository(session),
        policy=state.verification_policy,
        clock=state.clock,
        notifier=getattr(state, "verification_notifier", None),
        blocklist=getattr(state, "blacklist", None),
    )


def enforce_rate_limit(request: Request, email: str) -> None:
    limiter: Optional[SlidingWindowRateLimiter] = getattr(
        request.app.state, "verification_rate_limiter", None
    )
    if limiter is None:
        return

    client = request.client.host if request.client else "unknown"
    key = limiter.key_for(client, email)
    if not limiter.allow(key):
        logger.warning(
            "Verification request refused by rate limit",
            extra={"client": client, "email": email, "path": request.url.path}
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many verification requests. Try again later.",
            headers={"Retry-After": str(limiter.retry_after_seconds(key))},
        )


def _issue_response(code: VerificationCode) -> IssueCodeResponse:
    return IssueCodeResponse(
        message=f"Verification code sent to {code.email}",
        expires_at=code.expires_at,
        max_retries=code.max_retries,
    )


# ========== Route Handlers ==========

@router.post(
    "/codes",
    response_model=IssueCodeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue a verification code",
    description="""
    Generate a six-digit code for the address and email it.

    Any still-valid earlier code for the same address and type stops working.

    **Errors**:
    - 403: address is blacklisted or reached the daily limit
    - 422: malformed address or limits
    - 429: too many requests from this client for the address
    """
)
async def issue_code(
    payload: IssueCodeRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
    service: VerificationService = Depends(get_verification_service)
):
    enforce_rate_limit(request, payload.email)

    code = await service.issue_code(
        payload.email,
        payload.type,
        purpose=payload.purpose,
        expiry_minutes=payload.expiry_minutes,
        max_retries=payload.max_retries,
        additional_data=payload.additional_data,
    )
    await session.commit()
    return _issue_response(code)


@router.post(
    "/verify",
    response_model=VerificationResultResponse,
    summary="Verify a code",
    description="""
    Check a submitted code against the latest code for the address and type.

    A wrong code consumes one attempt. When `retry_exhausted` is true the
    client should offer to resend rather than retry.

    **error_code** values: `not_found`, `expired`, `already_used`,
    `invalid_code`, `retry_exhausted`
    """
)
async def verify_code(
    payload: VerifyCodeRequest,
    session: AsyncSession = Depends(get_session),
    service: VerificationService = Depends(get_verification_service)
):
    result = await service.verify_code(payload.email, payload.code, payload.type)
    await session.commit()
    return VerificationResultResponse.from_result(result)


@router.post(
    "/resend",
    response_model=IssueCodeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Resend a verification code",
    description="Issue a fresh code reusing the previous code's purpose and payload."
)
async def resend_code(
    payload: ResendCodeRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
    service: VerificationService = Depends(get_verification_service)
):
    enforce_rate_limit(request, payload.email)

    code = await service.resend_code(payload.email, payload.type)
    await session.commit()
    return _issue_response(code)


@router.delete(
    "/codes",
    summary="Cancel active codes",
    description="Retire every still-valid code for the address, optionally for one type only."
)
async def cancel_codes(
    email: str = Query(..., min_length=3),
    type: Optional[VerificationType] = Query(None),
    session: AsyncSession = Depends(get_session),
    service: VerificationService = Depends(get_verification_service)
):
    cancelled = await service.cancel_codes(email, type)
    await session.commit()
    return {"cancelled": cancelled}


@router.get(
    "/active",
    response_model=VerificationCodeResponse,
    summary="Get the active code",
    description="Metadata of the code that can currently be redeemed. The code itself is never returned."
)
async def get_active_code(
    request: Request,
    email: str = Query(..., min_length=3),
    type: VerificationType = Query(...),
    service: VerificationService = Depends(get_verification_service)
):
    code = await service.get_active_code(email, type)
    if code is None:
        raise ResourceNotFoundException(
            "VerificationCode",
            details={"email": email, "type": type.value}
        )
    return VerificationCodeResponse.from_entity(code, request.app.state.clock.now())


@router.get(
    "/history",
    response_model=List[VerificationCodeResponse],
    summary="Get code history",
    description="Latest codes issued to the address, newest first."
)
async def get_history(
    request: Request,
    email: str = Query(..., min_length=3),
    limit: int = Query(10, ge=1, le=100),
    service: VerificationService = Depends(get_verification_service)
):
    now = request.app.state.clock.now()
    codes = await service.get_history(email, limit)
    return [VerificationCodeResponse.from_entity(code, now) for code in codes]


@router.get(
    "/statistics",
    response_model=VerificationStatisticsResponse,
    summary="Get verification statistics",
    description="Issued, verified, expired and exhausted counts for codes created in the period (default: last 30 days)."
)
async def get_statistics(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    service: VerificationService = Depends(get_verification_service)
):
    stats = await service.get_statistics(start_date, end_date)
    return VerificationStatisticsResponse.from_entity(stats)


# Export router for inclusion in main app
verification_router = router
