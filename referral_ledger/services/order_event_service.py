import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger import crud
from referral_ledger.core.config import settings
from referral_ledger.core.errors import NotFound
from referral_ledger.models.enums import LedgerReason, NotificationType
from referral_ledger.schemas.events import OrderPaidResult
from referral_ledger.schemas.reward import Reward as RewardSchema
from referral_ledger.utils.email import referral_reward_email
from . import notification_service, referral_service, reward_service

logger = logging.getLogger(__name__)


async def _award_purchase_points(
    db: AsyncSession, *, order_id: str, account_id: int, amount: Decimal
) -> Optional[RewardSchema]:
    points = int(amount // settings.PURCHASE_POINTS_DIVISOR)
    if points <= 0:
        logger.info(f"Order {order_id} ({amount}) earns no purchase points")
        return None

    result = await reward_service.issue_with_result(
        db,
        idempotency_key=reward_service.purchase_reward_key(order_id, account_id),
        beneficiary_id=account_id,
        amount=points,
        reason=LedgerReason.PURCHASE,
        source_reference=f"order:{order_id}",
        description=f"Points earned on order {order_id}",
    )
    issued = RewardSchema.model_validate(result.reward)
    if result.issued_now:
        await notification_service.notify(
            db,
            account_id=account_id,
            type=NotificationType.PURCHASE_POINTS_EARNED,
            message=f"You earned {points} points on order {order_id}",
            reference=f"reward:{issued.id}",
        )
    return issued


async def _reward_referrer(
    db: AsyncSession, *, event: referral_service.QualificationEvent
) -> RewardSchema:
    points = settings.REFERRAL_REWARD_POINTS
    result = await reward_service.issue_with_result(
        db,
        idempotency_key=reward_service.referral_reward_key(event.referral_id, event.referrer_id),
        beneficiary_id=event.referrer_id,
        amount=points,
        reason=LedgerReason.REFERRAL_REWARD,
        referral_id=event.referral_id,
        source_reference=f"order:{event.order_id}",
        description=f"Referral reward for referral {event.referral_id}",
    )
    issued = RewardSchema.model_validate(result.reward)
    if result.issued_now:
        referrer = await crud.crud_account.get_account_by_id(db, account_id=event.referrer_id)
        await notification_service.notify(
            db,
            account_id=event.referrer_id,
            type=NotificationType.REFERRAL_REWARD_ISSUED,
            message=f"You earned {points} points because someone you referred placed their first order",
            reference=f"reward:{issued.id}",
            email=referral_reward_email(
                referrer.full_name, points, referrer.total_referral_earnings, referrer.referral_code
            ),
        )
    return issued


async def _reward_referred(
    db: AsyncSession, *, event: referral_service.QualificationEvent
) -> Optional[RewardSchema]:
    points = settings.REFERRED_BONUS_POINTS
    if points <= 0:
        return None

    result = await reward_service.issue_with_result(
        db,
        idempotency_key=reward_service.referral_reward_key(event.referral_id, event.referred_account_id),
        beneficiary_id=event.referred_account_id,
        amount=points,
        reason=LedgerReason.REFERRAL_BONUS,
        referral_id=event.referral_id,
        source_reference=f"order:{event.order_id}",
        description=f"Welcome bonus for joining through referral {event.referral_id}",
    )
    issued = RewardSchema.model_validate(result.reward)
    if result.issued_now:
        await notification_service.notify(
            db,
            account_id=event.referred_account_id,
            type=NotificationType.REFERRAL_BONUS_ISSUED,
            message=f"Welcome! You earned {points} bonus points for joining with a referral code",
            reference=f"reward:{issued.id}",
        )
    return issued


async def handle_order_paid(db: AsyncSession, *, order_id: str, account_id: int, amount: Decimal) -> OrderPaidResult:
    """
    Apply a paid order to the rewards ledger: purchase points for the buyer
    and, when this is the referred account's first paid order and it meets the
    minimum, the referral reward for the referrer plus the welcome bonus for
    the buyer. Replaying the same order changes nothing.
    """
    account = await crud.crud_account.get_account_by_id(db, account_id=account_id)
    if account is None:
        raise NotFound(f"Account {account_id} not found")
    logger.info(f"Order {order_id} paid by account {account_id}: {amount}")

    # Recorded for every account so referral codes cannot be linked afterwards
    await referral_service.record_paid_order(db, account_id=account_id, order_id=order_id)

    purchase_reward = await _award_purchase_points(db, order_id=order_id, account_id=account_id, amount=amount)
    result = OrderPaidResult(
        order_id=order_id,
        purchase_reward=purchase_reward,
    )

    referral = await crud.crud_referral.get_by_referred_account(db, account_id=account_id)
    if referral is None:
        return result

    event = await referral_service.mark_qualified(db, referral=referral, order_id=order_id, order_amount=amount)
    if event is None:
        return result

    result.referral_qualified = True
    result.referral_reward = await _reward_referrer(db, event=event)
    result.referred_reward = await _reward_referred(db, event=event)
    return result
