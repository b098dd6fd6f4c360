from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func
from typing import List, Optional
import logging

from referral_ledger.models.ledger_entry import LedgerEntry
from referral_ledger.models.enums import LedgerReason

logger = logging.getLogger(__name__)

async def add_entry(
    db: AsyncSession,
    *,
    account_id: int,
    delta: int,
    reason: LedgerReason,
    balance_after: int,
    idempotency_key: Optional[str] = None,
    reward_id: Optional[int] = None,
    reference_entry_id: Optional[int] = None,
    description: Optional[str] = None,
    metadata: Optional[dict] = None,
    created_by: Optional[int] = None,
) -> LedgerEntry:
    """
    Adds an entry to the session and flushes so the id is assigned.
    This function does NOT commit the session.
    """
    entry = LedgerEntry(
        account_id=account_id,
        delta=delta,
        reason=reason,
        balance_after=balance_after,
        idempotency_key=idempotency_key,
        reward_id=reward_id,
        reference_entry_id=reference_entry_id,
        description=description,
        entry_metadata=metadata or {},
        created_by=created_by,
    )
    db.add(entry)
    await db.flush()
    return entry

async def get_latest_entry(db: AsyncSession, *, account_id: int) -> Optional[LedgerEntry]:
    result = await db.execute(
        select(LedgerEntry)
        .where(LedgerEntry.account_id == account_id)
        .order_by(LedgerEntry.id.desc())
        .limit(1)
    )
    return result.scalars().first()

async def get_entries_for_account(
    db: AsyncSession, *, account_id: int, skip: int = 0, limit: int = 50
) -> List[LedgerEntry]:
    result = await db.execute(
        select(LedgerEntry)
        .where(LedgerEntry.account_id == account_id)
        .order_by(LedgerEntry.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all())

async def count_entries(db: AsyncSession, *, account_id: int) -> int:
    result = await db.execute(
        select(func.count(LedgerEntry.id)).where(LedgerEntry.account_id == account_id)
    )
    return result.scalar_one()

async def sum_deltas(db: AsyncSession, *, account_id: int) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(LedgerEntry.delta), 0)).where(LedgerEntry.account_id == account_id)
    )
    return int(result.scalar_one())

async def get_entry_by_id(db: AsyncSession, *, entry_id: int) -> Optional[LedgerEntry]:
    result = await db.execute(select(LedgerEntry).where(LedgerEntry.id == entry_id))
    return result.scalar_one_or_none()
