import logging
import random
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger import crud, models
from referral_ledger.core.config import settings
from referral_ledger.core.errors import (
    AlreadyReferred, InvalidReferralCode, NotFound, ReferralIneligible, SelfReferral, ValidationError,
)
from referral_ledger.models.enums import LedgerReason, ReferralStatus, RewardStatus
from referral_ledger.schemas.account import GeneratedReferralCode, GenerateCodesResponse
from referral_ledger.schemas.referral import MyReferrals, ReferralStats, ReferralWithAccount
from referral_ledger.schemas.reward import Reward as RewardSchema
from referral_ledger.utils.dates import utcnow

logger = logging.getLogger(__name__)

REFERRAL_CODE_MAX_LENGTH = 15
_NON_ALNUM = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class QualificationEvent:
    """Emitted when a referral's qualifying order is recorded; drives the referrer's reward."""
    referral_id: int
    referrer_id: int
    referred_account_id: int
    order_id: str
    order_amount: Decimal
    qualified_at: datetime


def _clean(value: str) -> str:
    return _NON_ALNUM.sub("", (value or "").lower())


def generate_referral_code(full_name: Optional[str], email: str, existing_codes: Iterable[str]) -> str:
    """
    Lower-case code from the first four letters of the first and last name plus
    three digits, e.g. "ada lovelace" -> "adalove417". Falls back to the email's
    local part when there is no name.
    """
    parts = (full_name or "").split()
    first = _clean(parts[0]) if parts else ""
    last = _clean(parts[-1]) if len(parts) > 1 else ""
    if not first:
        first = _clean(email.split("@")[0]) or "user"
    base = (first[:4] + last[:4])
    if len(base) < 3:
        base = (base + "user")[:4]

    taken = {code.lower() for code in existing_codes}
    for _ in range(50):
        code = f"{base}{random.randint(100, 999)}"
        if code not in taken:
            return code
    # Every three-digit suffix tried is taken; widen the suffix
    counter = 1000
    while f"{base}{counter}" in taken:
        counter += 1
    return f"{base}{counter}"[:REFERRAL_CODE_MAX_LENGTH]


async def ensure_referral_code(db: AsyncSession, *, account: models.Account) -> str:
    """Assigns a code if the account has none. Existing codes are never changed."""
    if account.referral_code:
        return account.referral_code
    existing = await crud.crud_account.get_existing_referral_codes(db)
    account.referral_code = generate_referral_code(account.full_name, account.email, existing)
    db.add(account)
    await db.commit()
    logger.info(f"Assigned referral code '{account.referral_code}' to account {account.id}")
    return account.referral_code


async def generate_missing_codes(
    db: AsyncSession, *, account_id: Optional[int] = None, generate_for_all: bool = False
) -> GenerateCodesResponse:
    if generate_for_all:
        accounts = await crud.crud_account.get_accounts_without_referral_code(db)
    elif account_id is not None:
        account = await crud.crud_account.get_account_by_id(db, account_id=account_id)
        if account is None:
            raise NotFound(f"Account {account_id} not found")
        accounts = [] if account.referral_code else [account]
    else:
        raise ValidationError("Provide account_id or set generate_for_all to true")

    existing = await crud.crud_account.get_existing_referral_codes(db)
    updated: List[GeneratedReferralCode] = []
    for account in accounts:
        code = generate_referral_code(account.full_name, account.email, existing)
        existing.add(code)
        account.referral_code = code
        db.add(account)
        updated.append(
            GeneratedReferralCode(id=account.id, email=account.email, full_name=account.full_name, referral_code=code)
        )
    if updated:
        await db.commit()
    logger.info(f"Generated referral codes for {len(updated)} accounts")
    return GenerateCodesResponse(total_updated=len(updated), accounts=updated)


async def link_referral(db: AsyncSession, *, referral_code: str, referred_account_id: int) -> models.Referral:
    referrer = await crud.crud_account.get_account_by_referral_code(db, code=referral_code)
    if referrer is None:
        logger.warning(f"Account {referred_account_id} tried unknown referral code '{referral_code}'")
        raise InvalidReferralCode()
    if referrer.id == referred_account_id:
        logger.warning(f"Account {referred_account_id} tried to use its own referral code")
        raise SelfReferral()
    referred = await crud.crud_account.get_account_by_id(db, account_id=referred_account_id)
    if referred is None:
        raise NotFound(f"Account {referred_account_id} not found")
    if referred.first_paid_order_id is not None:
        logger.warning(
            f"Account {referred_account_id} tried to link code '{referral_code}' after paid order "
            f"{referred.first_paid_order_id}"
        )
        raise ReferralIneligible()
    if await crud.crud_referral.get_by_referred_account(db, account_id=referred_account_id) is not None:
        raise AlreadyReferred()

    try:
        referral = await crud.crud_referral.create_referral(
            db,
            referrer_id=referrer.id,
            referred_account_id=referred_account_id,
            referral_code_used=referrer.referral_code,
        )
        await db.commit()
    except IntegrityError as e:
        # Lost a race with a concurrent link for the same account
        await db.rollback()
        raise AlreadyReferred() from e

    logger.info(f"Account {referred_account_id} referred by account {referrer.id} (referral {referral.id})")
    return referral


def _event_for(referral: models.Referral) -> QualificationEvent:
    return QualificationEvent(
        referral_id=referral.id,
        referrer_id=referral.referrer_id,
        referred_account_id=referral.referred_account_id,
        order_id=referral.qualifying_order_id,
        order_amount=referral.qualifying_order_amount,
        qualified_at=referral.qualified_at,
    )


async def _claim_first_order(db: AsyncSession, *, account_id: int, order_id: str) -> str:
    """Returns the account's first paid order id, recording ``order_id`` if there is none yet. Does NOT commit."""
    account = await crud.crud_account.get_account_by_id(db, account_id=account_id, for_update=True)
    if account is None:
        raise NotFound(f"Account {account_id} not found")
    if account.first_paid_order_id is None:
        account.first_paid_order_id = order_id
        account.first_paid_order_at = utcnow()
        db.add(account)
        logger.info(f"Order {order_id} is the first paid order of account {account_id}")
    return account.first_paid_order_id


async def record_paid_order(db: AsyncSession, *, account_id: int, order_id: str) -> str:
    try:
        first_order_id = await _claim_first_order(db, account_id=account_id, order_id=order_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return first_order_id


async def mark_qualified(
    db: AsyncSession, *, referral: models.Referral, order_id: str, order_amount: Decimal
) -> Optional[QualificationEvent]:
    """
    Move a pending referral to qualified on the referred account's first
    paid order, if that order meets the minimum amount.

    Calling again with the same order returns the same event without touching
    the row, so a reward issuance that failed after qualification can be
    retried. Any later order, a first order below the minimum, or a referral
    in a terminal state yields None.
    """
    try:
        locked = await crud.crud_referral.referral.get(db, referral.id, for_update=True)
        first_order_id = await _claim_first_order(db, account_id=locked.referred_account_id, order_id=order_id)
        if first_order_id != order_id:
            logger.info(f"Order {order_id} is not the first paid order ({first_order_id}); referral {locked.id} unchanged")
            await db.commit()
            return None
        if Decimal(order_amount) < settings.REFERRAL_MIN_ORDER_AMOUNT:
            logger.info(
                f"Order {order_id} ({order_amount}) is below the {settings.REFERRAL_MIN_ORDER_AMOUNT} minimum; "
                f"referral {locked.id} not qualified"
            )
            await db.commit()
            return None

        status = ReferralStatus(locked.status)
        if status != ReferralStatus.PENDING:
            event = None
            if status in (ReferralStatus.QUALIFIED, ReferralStatus.REWARDED) and locked.qualifying_order_id == order_id:
                event = _event_for(locked)
            else:
                logger.info(f"Referral {locked.id} is {status.value}; order {order_id} does not qualify it")
            # Referral untouched; commit keeps any first-order record and releases the locks
            await db.commit()
            return event

        locked.status = ReferralStatus.QUALIFIED
        locked.qualified_at = utcnow()
        locked.qualifying_order_id = order_id
        locked.qualifying_order_amount = Decimal(order_amount)
        db.add(locked)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Referral {locked.id} qualified by order {order_id} ({order_amount})")
    return _event_for(locked)


async def expire_stale_referrals(db: AsyncSession) -> int:
    now = utcnow()
    cutoff = now - timedelta(days=settings.REFERRAL_EXPIRY_DAYS)
    expired = await crud.crud_referral.expire_pending_before(db, cutoff=cutoff, now=now)
    await db.commit()
    logger.info(f"Expired {expired} pending referrals created before {cutoff.isoformat()}")
    return expired


async def get_my_referrals(db: AsyncSession, *, account: models.Account) -> MyReferrals:
    code = await ensure_referral_code(db, account=account)
    referrals = await crud.crud_referral.get_referrals_for_referrer(db, referrer_id=account.id)
    rewards = await crud.crud_reward.get_rewards(
        db, reason=LedgerReason.REFERRAL_REWARD, beneficiary_id=account.id, limit=500
    )

    stats = ReferralStats(
        total_referrals=len(referrals),
        pending_referrals=sum(
            1 for r in referrals if r.status in (ReferralStatus.PENDING, ReferralStatus.QUALIFIED)
        ),
        completed_referrals=sum(1 for r in referrals if r.status == ReferralStatus.REWARDED),
        total_earnings=sum(r.amount for r in rewards if r.status == RewardStatus.ISSUED),
        pending_rewards=sum(r.amount for r in rewards if r.status == RewardStatus.PENDING),
    )
    return MyReferrals(
        referral_code=code,
        referral_link=f"{settings.FRONTEND_URL}/signup?ref={code}",
        stats=stats,
        referrals=[ReferralWithAccount.model_validate(r) for r in referrals],
        rewards=[RewardSchema.model_validate(r) for r in rewards],
    )
