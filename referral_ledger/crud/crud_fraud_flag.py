from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func
from sqlalchemy.orm import selectinload
from typing import Iterable, List, Optional
import logging

from referral_ledger.models.fraud_flag import FraudFlag
from referral_ledger.models.enums import FraudFlagStatus, FraudSeverity, FraudType
from .base import CRUDBase

logger = logging.getLogger(__name__)

fraud_flag = CRUDBase(FraudFlag)

def _apply_filters(stmt, *, status, severity, fraud_type):
    if status is not None:
        stmt = stmt.where(FraudFlag.status == status)
    if severity is not None:
        stmt = stmt.where(FraudFlag.severity == severity)
    if fraud_type is not None:
        stmt = stmt.where(FraudFlag.fraud_type == fraud_type)
    return stmt

async def get_flags(
    db: AsyncSession,
    *,
    status: Optional[FraudFlagStatus] = None,
    severity: Optional[FraudSeverity] = None,
    fraud_type: Optional[FraudType] = None,
    skip: int = 0,
    limit: int = 50,
) -> List[FraudFlag]:
    stmt = select(FraudFlag).options(selectinload(FraudFlag.referral))
    stmt = _apply_filters(stmt, status=status, severity=severity, fraud_type=fraud_type)
    stmt = stmt.order_by(FraudFlag.created_at.desc(), FraudFlag.id.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())

async def count_flags(
    db: AsyncSession,
    *,
    status: Optional[FraudFlagStatus] = None,
    severity: Optional[FraudSeverity] = None,
    fraud_type: Optional[FraudType] = None,
) -> int:
    stmt = _apply_filters(select(func.count(FraudFlag.id)), status=status, severity=severity, fraud_type=fraud_type)
    result = await db.execute(stmt)
    return result.scalar_one()

async def get_existing_pairs(db: AsyncSession, *, referral_ids: Iterable[int]) -> set[tuple[int, FraudType]]:
    """(referral_id, fraud_type) pairs already flagged, whatever their review status."""
    ids = list(referral_ids)
    if not ids:
        return set()
    result = await db.execute(
        select(FraudFlag.referral_id, FraudFlag.fraud_type).where(FraudFlag.referral_id.in_(ids))
    )
    return {(referral_id, FraudType(fraud_type)) for referral_id, fraud_type in result.all()}

async def count_grouped(db: AsyncSession, column) -> dict[str, int]:
    result = await db.execute(select(column, func.count(FraudFlag.id)).group_by(column))
    return {getattr(key, "value", key): count for key, count in result.all()}
