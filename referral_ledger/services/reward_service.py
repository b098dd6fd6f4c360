"""
Reward issuance engine.

``issue`` grants a reward at most once per idempotency key:

1. get-or-create the Reward row in ``pending`` (unique key, committed on its own
   so a failed ledger write leaves something to retry);
2. in a second transaction, lock the row, append the ledger credit and flip the
   row to ``issued``. Both writes commit together or not at all.

Duplicate deliveries see ``issued`` and get the stored row back. Two racing
issuers are serialized by the row lock; where the database has no row locks
the unique ``ledger_entries.idempotency_key`` rejects the loser's credit.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger import crud, models
from referral_ledger.core.config import settings
from referral_ledger.core.errors import AppError, Conflict, NotFound, RewardIssuanceFailed, ValidationError
from referral_ledger.models.enums import LedgerReason, ReferralStatus, RewardStatus
from referral_ledger.schemas.reward import Pagination, RewardList, RewardStats, RewardWithBeneficiary
from referral_ledger.utils.dates import utcnow
from . import ledger_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssueResult:
    reward: models.Reward
    # True only for the call that performed the pending -> issued transition
    issued_now: bool


def referral_reward_key(referral_id: int, beneficiary_id: int) -> str:
    return f"referral-qualified:{referral_id}:{beneficiary_id}"


def purchase_reward_key(order_id: str, beneficiary_id: int) -> str:
    return f"purchase:{order_id}:{beneficiary_id}"


def _check_same_request(reward: models.Reward, *, beneficiary_id: int, amount: int) -> None:
    if reward.beneficiary_id != beneficiary_id or reward.amount != amount:
        logger.warning(
            f"Idempotency key '{reward.idempotency_key}' reused with beneficiary {beneficiary_id}/amount {amount}; "
            f"stored reward {reward.id} has beneficiary {reward.beneficiary_id}/amount {reward.amount}"
        )
        raise Conflict(f"Idempotency key '{reward.idempotency_key}' was already used for a different reward")


async def _get_or_create_pending(
    db: AsyncSession,
    *,
    idempotency_key: str,
    beneficiary_id: int,
    amount: int,
    reason: LedgerReason,
    referral_id: Optional[int],
    source_reference: Optional[str],
) -> models.Reward:
    reward = await crud.crud_reward.get_by_idempotency_key(db, idempotency_key=idempotency_key)
    if reward is not None:
        return reward

    reward = models.Reward(
        idempotency_key=idempotency_key,
        beneficiary_id=beneficiary_id,
        amount=amount,
        reason=reason,
        status=RewardStatus.PENDING,
        referral_id=referral_id,
        source_reference=source_reference,
    )
    db.add(reward)
    try:
        await db.commit()
    except IntegrityError:
        # Another issuer created the row first
        await db.rollback()
        reward = await crud.crud_reward.get_by_idempotency_key(db, idempotency_key=idempotency_key)
        if reward is None:
            raise
    return reward


async def _mark_referral_rewarded(db: AsyncSession, *, reward: models.Reward, now) -> None:
    referral = await crud.crud_referral.referral.get(db, reward.referral_id, for_update=True)
    if referral is None:
        raise NotFound(f"Referral {reward.referral_id} not found")
    if not referral.can_transition(ReferralStatus.REWARDED):
        raise Conflict(f"Referral {referral.id} is {ReferralStatus(referral.status).value} and cannot be rewarded")
    referral.status = ReferralStatus.REWARDED
    referral.rewarded_at = now
    db.add(referral)
    referrer = await crud.crud_account.get_account_by_id(db, account_id=reward.beneficiary_id, for_update=True)
    referrer.referral_count += 1
    referrer.total_referral_earnings += reward.amount
    db.add(referrer)


async def _issue(
    db: AsyncSession,
    *,
    idempotency_key: str,
    beneficiary_id: int,
    amount: int,
    reason: LedgerReason,
    referral_id: Optional[int],
    source_reference: Optional[str],
    description: Optional[str],
) -> IssueResult:
    if await crud.crud_account.get_account_by_id(db, account_id=beneficiary_id) is None:
        raise NotFound(f"Account {beneficiary_id} not found")

    reward = await _get_or_create_pending(
        db,
        idempotency_key=idempotency_key,
        beneficiary_id=beneficiary_id,
        amount=amount,
        reason=reason,
        referral_id=referral_id,
        source_reference=source_reference,
    )
    _check_same_request(reward, beneficiary_id=beneficiary_id, amount=amount)
    if reward.status != RewardStatus.PENDING:
        logger.info(f"Reward '{idempotency_key}' already {RewardStatus(reward.status).value}; nothing to do")
        return IssueResult(reward, issued_now=False)

    try:
        reward = await crud.crud_reward.get_by_idempotency_key(db, idempotency_key=idempotency_key, for_update=True)
        if reward.status != RewardStatus.PENDING:
            # Nothing written; commit only releases the row lock
            await db.commit()
            return IssueResult(reward, issued_now=False)

        now = utcnow()
        entry = await ledger_service.append(
            db,
            account_id=beneficiary_id,
            delta=amount,
            reason=reason,
            idempotency_key=idempotency_key,
            reward_id=reward.id,
            description=description,
            metadata={"source_reference": source_reference} if source_reference else None,
            commit=False,
        )
        reward.status = RewardStatus.ISSUED
        reward.issued_at = now
        reward.ledger_entry_id = entry.id
        db.add(reward)

        if reward.referral_id is not None and reason == LedgerReason.REFERRAL_REWARD:
            await _mark_referral_rewarded(db, reward=reward, now=now)

        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        winner = await crud.crud_reward.get_by_idempotency_key(db, idempotency_key=idempotency_key)
        if winner is not None and winner.status == RewardStatus.ISSUED:
            logger.info(f"Reward '{idempotency_key}' was issued concurrently by another request")
            return IssueResult(winner, issued_now=False)
        raise RewardIssuanceFailed(f"Reward '{idempotency_key}' could not be written: {e.orig}") from e
    except (AppError, SQLAlchemyError) as e:
        await db.rollback()
        logger.error(f"Issuing reward '{idempotency_key}' failed, left pending for retry: {e}")
        raise RewardIssuanceFailed(f"Reward '{idempotency_key}' was not issued: {e}") from e

    logger.info(f"Issued reward {reward.id} ('{idempotency_key}'): {amount} points to account {beneficiary_id}")
    return IssueResult(reward, issued_now=True)


async def issue(db: AsyncSession, **kwargs) -> models.Reward:
    """Same as ``issue_with_result`` but returns only the reward."""
    result = await issue_with_result(db, **kwargs)
    return result.reward


async def issue_with_result(
    db: AsyncSession,
    *,
    idempotency_key: str,
    beneficiary_id: int,
    amount: int,
    reason: LedgerReason = LedgerReason.REFERRAL_REWARD,
    referral_id: Optional[int] = None,
    source_reference: Optional[str] = None,
    description: Optional[str] = None,
    timeout: Optional[float] = None,
) -> IssueResult:
    """
    Grant ``amount`` points to ``beneficiary_id`` exactly once for ``idempotency_key``.

    Safe to retry with the same key. ``issued_now`` on the result is True only
    for the one call that moved the reward from pending to issued, so callers
    can send follow-up notifications exactly once. Raises ``Conflict`` if the
    key belongs to a different grant and ``RewardIssuanceFailed`` if the ledger
    write failed or timed out (the reward is then left pending).
    """
    if not idempotency_key:
        raise ValidationError("idempotency_key is required")
    if amount <= 0:
        raise ValidationError("Reward amount must be positive")

    timeout = timeout if timeout is not None else settings.REWARD_ISSUE_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(
            _issue(
                db,
                idempotency_key=idempotency_key,
                beneficiary_id=beneficiary_id,
                amount=amount,
                reason=reason,
                referral_id=referral_id,
                source_reference=source_reference,
                description=description,
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        await db.rollback()
        logger.error(f"Issuing reward '{idempotency_key}' timed out after {timeout}s")
        raise RewardIssuanceFailed(f"Reward '{idempotency_key}' timed out; retry with the same key") from e


async def reverse(
    db: AsyncSession, *, reward: models.Reward, reason: str, performed_by: Optional[int] = None
) -> models.LedgerEntry:
    """
    Compensate an issued reward with a negative entry of the same size.
    Does NOT commit; callers make it part of their own transaction.
    """
    if reward.status != RewardStatus.ISSUED:
        raise Conflict(f"Reward {reward.id} is {RewardStatus(reward.status).value}, only issued rewards can be reversed")

    now = utcnow()
    entry = await ledger_service.append(
        db,
        account_id=reward.beneficiary_id,
        delta=-reward.amount,
        reason=LedgerReason.REWARD_REVERSAL,
        idempotency_key=f"{reward.idempotency_key}:reversal",
        reward_id=reward.id,
        reference_entry_id=reward.ledger_entry_id,
        description=f"Reversal: {reason}",
        metadata={"original_entry_id": reward.ledger_entry_id, "original_amount": reward.amount},
        created_by=performed_by,
        commit=False,
    )
    reward.status = RewardStatus.REVERSED
    reward.reversed_at = now
    reward.reversal_reason = reason
    reward.reversal_entry_id = entry.id
    db.add(reward)

    if reward.reason == LedgerReason.REFERRAL_REWARD:
        beneficiary = await crud.crud_account.get_account_by_id(db, account_id=reward.beneficiary_id, for_update=True)
        beneficiary.referral_count = max(beneficiary.referral_count - 1, 0)
        beneficiary.total_referral_earnings = max(beneficiary.total_referral_earnings - reward.amount, 0)
        db.add(beneficiary)

    logger.info(f"Reversed reward {reward.id}: {-reward.amount} points from account {reward.beneficiary_id}")
    return entry


async def list_rewards(
    db: AsyncSession, *, status: Optional[RewardStatus] = None, skip: int = 0, limit: int = 50
) -> RewardList:
    rewards = await crud.crud_reward.get_rewards(db, status=status, skip=skip, limit=limit)
    total = await crud.crud_reward.count_rewards(db, status=status)
    totals = await crud.crud_reward.totals_by_status(db)

    def _count(s: RewardStatus) -> int:
        return totals.get(s, (0, 0))[0]

    def _amount(s: RewardStatus) -> int:
        return totals.get(s, (0, 0))[1]

    stats = RewardStats(
        total=sum(count for count, _ in totals.values()),
        pending=_count(RewardStatus.PENDING),
        issued=_count(RewardStatus.ISSUED),
        reversed=_count(RewardStatus.REVERSED),
        pending_amount=_amount(RewardStatus.PENDING),
        issued_amount=_amount(RewardStatus.ISSUED),
        reversed_amount=_amount(RewardStatus.REVERSED),
    )
    return RewardList(
        rewards=[RewardWithBeneficiary.model_validate(r) for r in rewards],
        pagination=Pagination(total=total, limit=limit, offset=skip, has_more=skip + limit < total),
        stats=stats,
    )
