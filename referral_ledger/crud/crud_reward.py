from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func
from sqlalchemy.orm import selectinload
from typing import List, Optional
import logging

from referral_ledger.models.reward import Reward
from referral_ledger.models.enums import RewardStatus, LedgerReason

logger = logging.getLogger(__name__)


async def get_by_idempotency_key(
    db: AsyncSession, *, idempotency_key: str, for_update: bool = False
) -> Optional[Reward]:
    stmt = select(Reward).where(Reward.idempotency_key == idempotency_key)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()

async def get_issued_referral_reward(
    db: AsyncSession,
    *,
    referral_id: int,
    reason: LedgerReason = LedgerReason.REFERRAL_REWARD,
    for_update: bool = False,
) -> Optional[Reward]:
    stmt = select(Reward).where(
        Reward.referral_id == referral_id,
        Reward.reason == reason,
        Reward.status == RewardStatus.ISSUED,
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalars().first()

async def get_rewards(
    db: AsyncSession,
    *,
    status: Optional[RewardStatus] = None,
    reason: Optional[LedgerReason] = None,
    beneficiary_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 50,
) -> List[Reward]:
    stmt = select(Reward).options(selectinload(Reward.beneficiary))
    if status is not None:
        stmt = stmt.where(Reward.status == status)
    if reason is not None:
        stmt = stmt.where(Reward.reason == reason)
    if beneficiary_id is not None:
        stmt = stmt.where(Reward.beneficiary_id == beneficiary_id)
    stmt = stmt.order_by(Reward.created_at.desc(), Reward.id.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())

async def count_rewards(db: AsyncSession, *, status: Optional[RewardStatus] = None) -> int:
    stmt = select(func.count(Reward.id))
    if status is not None:
        stmt = stmt.where(Reward.status == status)
    result = await db.execute(stmt)
    return result.scalar_one()

async def totals_by_status(
    db: AsyncSession, *, reason: Optional[LedgerReason] = None
) -> dict[RewardStatus, tuple[int, int]]:
    """Maps status -> (count, summed amount)."""
    stmt = select(Reward.status, func.count(Reward.id), func.coalesce(func.sum(Reward.amount), 0))
    if reason is not None:
        stmt = stmt.where(Reward.reason == reason)
    result = await db.execute(stmt.group_by(Reward.status))
    return {RewardStatus(status): (count, int(amount)) for status, count, amount in result.all()}
