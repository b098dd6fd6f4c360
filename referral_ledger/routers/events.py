from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger import schemas, services
from referral_ledger.db.session import get_db
from referral_ledger.dependencies import verify_webhook_secret

router = APIRouter(
    dependencies=[Depends(verify_webhook_secret)]
)

@router.post("/order-paid", response_model=schemas.events.OrderPaidResult)
async def order_paid(event_in: schemas.events.OrderPaidEvent, db: AsyncSession = Depends(get_db)):
    """
    Called by the order pipeline once payment is confirmed. Safe to deliver
    more than once: points and referral rewards are keyed by order.
    """
    return await services.order_event_service.handle_order_paid(
        db, order_id=event_in.order_id, account_id=event_in.account_id, amount=event_in.amount
    )
