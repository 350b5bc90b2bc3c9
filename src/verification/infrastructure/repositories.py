"""
Verification Infrastructure Repositories
========================================

Concrete implementation of the Code Store using SQLAlchemy.

Attempt counting and redemption are compare-and-swap UPDATEs guarded by
the retry_count the caller read, so two concurrent submissions cannot both
act on the same attempt.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import VerificationType
from src.core import RepositoryException
from src.shared.infrastructure.clock import ensure_utc
from src.verification.application.services import IVerificationCodeRepository
from src.verification.domain import VerificationCode, VerificationStatistics
from src.verification.infrastructure.models import VerificationCodeModel


class SQLAlchemyVerificationCodeRepository(IVerificationCodeRepository):
    """
    SQLAlchemy implementation of the verification code repository.

    Returns domain entities, never ORM models.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, code: VerificationCode) -> VerificationCode:
        """Create new code."""
        model = VerificationCodeModel(
            email=code.email,
            code=code.code,
            type=code.type.value,
            purpose=code.purpose,
            additional_data=code.additional_data,
            created_at=code.created_at,
            expires_at=code.expires_at,
            used=code.used,
            used_at=code.used_at,
            superseded=code.superseded,
            retry_count=code.retry_count,
            max_retries=code.max_retries,
        )

        self._session.add(model)
        await self._session.flush()

        code.id = str(model.id)
        return code

    async def get_by_id(self, code_id: str) -> Optional[VerificationCode]:
        """Get code by internal ID."""
        model_id = self._parse_id(code_id)
        if model_id is None:
            return None

        stmt = (
            select(VerificationCodeModel)
            .where(VerificationCodeModel.id == model_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_latest(
        self,
        email: str,
        type: VerificationType
    ) -> Optional[VerificationCode]:
        """Get the most recently issued code for (email, type)."""
        stmt = (
            select(VerificationCodeModel)
            .where(
                and_(
                    VerificationCodeModel.email == email,
                    VerificationCodeModel.type == type.value,
                )
            )
            .order_by(VerificationCodeModel.created_at.desc(), VerificationCodeModel.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def increment_retry_count(self, code_id: str, expected_retry_count: int) -> bool:
        """Record one failed attempt if nobody else changed the code meanwhile."""
        stmt = (
            update(VerificationCodeModel)
            .where(
                and_(
                    VerificationCodeModel.id == self._require_id(code_id),
                    VerificationCodeModel.retry_count == expected_retry_count,
                    VerificationCodeModel.used.is_(False),
                    VerificationCodeModel.superseded.is_(False),
                )
            )
            .values(retry_count=VerificationCodeModel.retry_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def mark_used(
        self,
        code_id: str,
        used_at: datetime,
        expected_retry_count: int
    ) -> bool:
        """Redeem the code if it is still unused at the expected attempt count."""
        stmt = (
            update(VerificationCodeModel)
            .where(
                and_(
                    VerificationCodeModel.id == self._require_id(code_id),
                    VerificationCodeModel.retry_count == expected_retry_count,
                    VerificationCodeModel.used.is_(False),
                    VerificationCodeModel.superseded.is_(False),
                )
            )
            .values(used=True, used_at=used_at)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def supersede_active(
        self,
        email: str,
        type: Optional[VerificationType],
        now: datetime
    ) -> int:
        """Flag still-valid codes for the address as superseded."""
        conditions = [
            VerificationCodeModel.email == email,
            VerificationCodeModel.used.is_(False),
            VerificationCodeModel.superseded.is_(False),
            VerificationCodeModel.expires_at >= now,
            VerificationCodeModel.retry_count < VerificationCodeModel.max_retries,
        ]
        if type is not None:
            conditions.append(VerificationCodeModel.type == type.value)

        stmt = (
            update(VerificationCodeModel)
            .where(and_(*conditions))
            .values(superseded=True)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def count_issued_since(self, email: str, since: datetime) -> int:
        stmt = (
            select(func.count(VerificationCodeModel.id))
            .where(
                and_(
                    VerificationCodeModel.email == email,
                    VerificationCodeModel.created_at >= since,
                )
            )
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one() or 0)

    async def list_history(self, email: str, limit: int = 10) -> List[VerificationCode]:
        stmt = (
            select(VerificationCodeModel)
            .where(VerificationCodeModel.email == email)
            .order_by(VerificationCodeModel.created_at.desc(), VerificationCodeModel.id.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(model) for model in result.scalars().all()]

    async def get_statistics(
        self,
        start: datetime,
        end: datetime,
        now: datetime
    ) -> VerificationStatistics:
        """Aggregate counts for codes created within [start, end]."""
        model = VerificationCodeModel
        in_period = and_(model.created_at >= start, model.created_at <= end)
        exhausted = and_(model.used.is_(False), model.retry_count >= model.max_retries)
        expired_unused = and_(
            model.used.is_(False),
            model.superseded.is_(False),
            model.retry_count < model.max_retries,
            model.expires_at < now,
        )

        totals_stmt = select(
            func.count(model.id),
            func.sum(case((model.used.is_(True), 1), else_=0)),
            func.sum(case((expired_unused, 1), else_=0)),
            func.sum(case((exhausted, 1), else_=0)),
            func.sum(case((model.superseded.is_(True), 1), else_=0)),
        ).where(in_period)
        totals = (await self._session.execute(totals_stmt)).one()

        by_type_stmt = (
            select(model.type, func.count(model.id))
            .where(in_period)
            .group_by(model.type)
        )
        by_type = {
            row[0]: int(row[1])
            for row in (await self._session.execute(by_type_stmt)).all()
        }

        return VerificationStatistics(
            period_start=start,
            period_end=end,
            total_issued=int(totals[0] or 0),
            verified=int(totals[1] or 0),
            expired_unused=int(totals[2] or 0),
            exhausted=int(totals[3] or 0),
            superseded=int(totals[4] or 0),
            by_type=by_type,
        )

    @staticmethod
    def _parse_id(code_id: Optional[str]) -> Optional[int]:
        try:
            return int(code_id)
        except (TypeError, ValueError):
            return None

    def _require_id(self, code_id: str) -> int:
        model_id = self._parse_id(code_id)
        if model_id is None:
            raise RepositoryException(f"Invalid verification code ID: {code_id}")
        return model_id

    @staticmethod
    def _to_entity(model: VerificationCodeModel) -> VerificationCode:
        return VerificationCode(
            id=str(model.id),
            email=model.email,
            code=model.code,
            type=VerificationType(model.type),
            created_at=ensure_utc(model.created_at),
            expires_at=ensure_utc(model.expires_at),
            purpose=model.purpose,
            additional_data=model.additional_data,
            used=model.used,
            used_at=ensure_utc(model.used_at) if model.used_at else None,
            retry_count=model.retry_count,
            max_retries=model.max_retries,
            superseded=model.superseded,
        )
