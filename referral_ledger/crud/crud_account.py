from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func
from typing import List, Optional
import logging

from referral_ledger.models.account import Account
from .base import CRUDBase

logger = logging.getLogger(__name__)

account = CRUDBase(Account)

async def get_account_by_id(
    db: AsyncSession, *, account_id: int, for_update: bool = False
) -> Optional[Account]:
    logger.debug(f"Fetching account by ID: {account_id} (for_update={for_update})")
    found = await account.get(db, account_id, for_update=for_update)
    if not found:
        logger.warning(f"Account with ID {account_id} not found.")
    return found

async def get_account_by_referral_code(db: AsyncSession, *, code: str) -> Optional[Account]:
    """Case-insensitive lookup; codes are stored lower-case but legacy rows may not be."""
    normalized = code.strip().lower()
    result = await db.execute(select(Account).where(func.lower(Account.referral_code) == normalized))
    return result.scalars().first()

async def get_existing_referral_codes(db: AsyncSession) -> set[str]:
    result = await db.execute(select(Account.referral_code).where(Account.referral_code.isnot(None)))
    return {code.lower() for code in result.scalars().all()}

async def get_accounts_without_referral_code(db: AsyncSession) -> List[Account]:
    result = await db.execute(
        select(Account).where(Account.referral_code.is_(None)).order_by(Account.id)
    )
    return list(result.scalars().all())
