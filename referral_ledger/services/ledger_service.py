"""
Points ledger.

Entries are append-only. The running balance lives on ``accounts.points_balance``
and every entry stores the balance snapshot after it was applied; both are
written under a row lock on the account so concurrent appends serialize.
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger import crud, models
from referral_ledger.core.config import settings
from referral_ledger.core.errors import InsufficientBalance, NotFound, ValidationError
from referral_ledger.models.enums import (
    LedgerReason, CREDIT_REASONS, DEBIT_REASONS, NEGATIVE_BALANCE_REASONS, NotificationType,
)
from referral_ledger.schemas.ledger import AccountPointsSummary, LedgerHistory, LedgerEntry as LedgerEntrySchema
from referral_ledger.schemas.account import AccountSimple
from . import notification_service

logger = logging.getLogger(__name__)


def _validate_delta(delta: int, reason: LedgerReason) -> None:
    if delta == 0:
        raise ValidationError("Ledger delta must be non-zero")
    if reason in CREDIT_REASONS and delta < 0:
        raise ValidationError(f"Reason '{reason.value}' only accepts positive deltas")
    if reason in DEBIT_REASONS and delta > 0:
        raise ValidationError(f"Reason '{reason.value}' only accepts negative deltas")


async def append(
    db: AsyncSession,
    *,
    account_id: int,
    delta: int,
    reason: LedgerReason,
    idempotency_key: Optional[str] = None,
    reward_id: Optional[int] = None,
    reference_entry_id: Optional[int] = None,
    description: Optional[str] = None,
    metadata: Optional[dict] = None,
    created_by: Optional[int] = None,
    commit: bool = True,
) -> models.LedgerEntry:
    """
    Append a ledger entry and move the account's running balance.

    With ``commit=False`` the entry is only flushed so the caller can make it
    part of a larger transaction (reward issuance, reversal). On any error in
    the committing path the session is rolled back before re-raising.
    """
    _validate_delta(delta, reason)

    try:
        account = await crud.crud_account.get_account_by_id(db, account_id=account_id, for_update=True)
        if account is None:
            raise NotFound(f"Account {account_id} not found")

        new_balance = account.points_balance + delta
        if new_balance < 0 and reason not in NEGATIVE_BALANCE_REASONS:
            logger.warning(
                f"Rejected {reason.value} of {delta} for account {account_id}: balance {account.points_balance}"
            )
            raise InsufficientBalance(
                f"Balance of {account.points_balance} points cannot cover a debit of {-delta} points"
            )

        # add_entry flushes, which also writes the new running balance
        account.points_balance = new_balance
        db.add(account)
        entry = await crud.crud_ledger.add_entry(
            db,
            account_id=account_id,
            delta=delta,
            reason=reason,
            balance_after=new_balance,
            idempotency_key=idempotency_key,
            reward_id=reward_id,
            reference_entry_id=reference_entry_id,
            description=description,
            metadata=metadata,
            created_by=created_by,
        )

        if commit:
            await db.commit()
    except Exception:
        if commit:
            await db.rollback()
        raise

    logger.info(f"Ledger entry {entry.id}: account {account_id} {delta:+d} ({reason.value}) -> {new_balance}")
    return entry


async def get_balance(db: AsyncSession, account_id: int) -> int:
    """Balance as recorded by the latest entry's snapshot."""
    latest = await crud.crud_ledger.get_latest_entry(db, account_id=account_id)
    return latest.balance_after if latest else 0


async def _get_account_or_404(db: AsyncSession, account_id: int) -> models.Account:
    account = await crud.crud_account.get_account_by_id(db, account_id=account_id)
    if account is None:
        raise NotFound(f"Account {account_id} not found")
    return account


async def get_history(db: AsyncSession, *, account_id: int, skip: int = 0, limit: int = 50) -> LedgerHistory:
    entries = await crud.crud_ledger.get_entries_for_account(db, account_id=account_id, skip=skip, limit=limit)
    total = await crud.crud_ledger.count_entries(db, account_id=account_id)
    return LedgerHistory(
        account_id=account_id,
        entries=[LedgerEntrySchema.model_validate(e) for e in entries],
        total=total,
        balance=await get_balance(db, account_id),
    )


async def get_account_points_summary(db: AsyncSession, *, account_id: int) -> AccountPointsSummary:
    account = await _get_account_or_404(db, account_id)
    balance = await get_balance(db, account_id)
    computed = await crud.crud_ledger.sum_deltas(db, account_id=account_id)
    if computed != balance:
        logger.error(f"Ledger inconsistency for account {account_id}: snapshot {balance}, sum of deltas {computed}")
    recent = await crud.crud_ledger.get_entries_for_account(db, account_id=account_id, limit=20)
    return AccountPointsSummary(
        account=AccountSimple.model_validate(account),
        balance=balance,
        computed_balance=computed,
        is_consistent=computed == balance,
        total_entries=await crud.crud_ledger.count_entries(db, account_id=account_id),
        recent_entries=[LedgerEntrySchema.model_validate(e) for e in recent],
    )


async def award_points(
    db: AsyncSession, *, account_id: int, points: int, reason: str, admin: models.Account, metadata: Optional[dict] = None
) -> models.LedgerEntry:
    entry = await append(
        db,
        account_id=account_id,
        delta=points,
        reason=LedgerReason.ADMIN_AWARD,
        description=reason,
        metadata={**(metadata or {}), "admin_email": admin.email},
        created_by=admin.id,
    )
    logger.info(f"Admin {admin.email} awarded {points} points to account {account_id}. Reason: {reason}")
    await notification_service.notify(
        db,
        account_id=account_id,
        type=NotificationType.POINTS_AWARDED,
        message=f"You have been awarded {points} points: {reason}",
        reference=f"ledger:{entry.id}",
    )
    return entry


async def adjust_points(
    db: AsyncSession, *, account_id: int, points_change: int, reason: str, admin: models.Account, metadata: Optional[dict] = None
) -> models.LedgerEntry:
    entry = await append(
        db,
        account_id=account_id,
        delta=points_change,
        reason=LedgerReason.ADMIN_ADJUSTMENT,
        description=reason,
        metadata={**(metadata or {}), "admin_email": admin.email},
        created_by=admin.id,
    )
    action = "awarded" if points_change > 0 else "deducted"
    logger.info(f"Admin {admin.email} {action} {abs(points_change)} points for account {account_id}. Reason: {reason}")
    await notification_service.notify(
        db,
        account_id=account_id,
        type=NotificationType.POINTS_ADJUSTED,
        message=f"Your points balance was adjusted by {points_change:+d}: {reason}",
        reference=f"ledger:{entry.id}",
    )
    return entry


async def redeem_points(
    db: AsyncSession, *, account: models.Account, points: int, reference: Optional[str] = None
) -> models.LedgerEntry:
    if points < settings.MINIMUM_REDEEM_POINTS:
        raise ValidationError(f"A minimum of {settings.MINIMUM_REDEEM_POINTS} points is required to redeem")
    return await append(
        db,
        account_id=account.id,
        delta=-points,
        reason=LedgerReason.REDEMPTION,
        description=f"Redeemed {points} points",
        metadata={"reference": reference} if reference else None,
    )
