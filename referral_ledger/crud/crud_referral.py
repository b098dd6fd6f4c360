from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func, update
from sqlalchemy.orm import selectinload
from typing import Iterable, List, Optional
import logging

from referral_ledger.models.referral import Referral
from referral_ledger.models.enums import ReferralStatus
from .base import CRUDBase

logger = logging.getLogger(__name__)

referral = CRUDBase(Referral)

async def create_referral(
    db: AsyncSession, *, referrer_id: int, referred_account_id: int, referral_code_used: str
) -> Referral:
    """Adds a pending referral and flushes. Does NOT commit; the unique
    constraint on referred_account_id surfaces as IntegrityError on flush."""
    db_referral = Referral(
        referrer_id=referrer_id,
        referred_account_id=referred_account_id,
        referral_code_used=referral_code_used,
        status=ReferralStatus.PENDING,
    )
    db.add(db_referral)
    await db.flush()
    return db_referral

async def get_by_referred_account(
    db: AsyncSession, *, account_id: int, for_update: bool = False
) -> Optional[Referral]:
    stmt = select(Referral).where(Referral.referred_account_id == account_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()

async def get_referrals_for_referrer(db: AsyncSession, *, referrer_id: int) -> List[Referral]:
    result = await db.execute(
        select(Referral)
        .options(selectinload(Referral.referred_account))
        .where(Referral.referrer_id == referrer_id)
        .order_by(Referral.created_at.desc(), Referral.id.desc())
    )
    return list(result.scalars().all())

async def get_scan_batch(
    db: AsyncSession, *, after_id: int, limit: int, statuses: Iterable[ReferralStatus]
) -> List[Referral]:
    """Keyset page of referrals with both accounts eagerly loaded."""
    result = await db.execute(
        select(Referral)
        .options(selectinload(Referral.referrer), selectinload(Referral.referred_account))
        .where(Referral.id > after_id, Referral.status.in_(list(statuses)))
        .order_by(Referral.id)
        .limit(limit)
    )
    return list(result.scalars().all())

async def get_qualification_times(db: AsyncSession, *, referrer_id: int) -> List[datetime]:
    result = await db.execute(
        select(Referral.qualified_at)
        .where(Referral.referrer_id == referrer_id, Referral.qualified_at.isnot(None))
        .order_by(Referral.qualified_at)
    )
    return list(result.scalars().all())

async def expire_pending_before(db: AsyncSession, *, cutoff: datetime, now: datetime) -> int:
    """Bulk-expires pending referrals created before cutoff. Does NOT commit."""
    stmt = (
        update(Referral)
        .where(Referral.status == ReferralStatus.PENDING, Referral.created_at < cutoff)
        .values(status=ReferralStatus.EXPIRED, expired_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount

async def count_by_status(db: AsyncSession) -> dict[str, int]:
    result = await db.execute(select(Referral.status, func.count(Referral.id)).group_by(Referral.status))
    return {ReferralStatus(status).value: count for status, count in result.all()}
