from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from referral_ledger import models, schemas, services
from referral_ledger.db.session import get_db
from referral_ledger.dependencies import get_current_account

router = APIRouter()

@router.get("", response_model=List[schemas.notification.Notification])
async def get_account_notifications(
    skip: int = 0,
    limit: int = 20,
    include_read: bool = False,
    db: AsyncSession = Depends(get_db),
    current_account: models.Account = Depends(get_current_account),
):
    """Retrieve notifications for the current account."""
    return await services.notification_service.get_notifications(
        db, account_id=current_account.id, skip=skip, limit=limit, include_read=include_read
    )

@router.post("/{notification_id}/read", response_model=schemas.notification.Notification)
async def mark_notification_read(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    current_account: models.Account = Depends(get_current_account),
):
    """Mark a specific notification as read."""
    return await services.notification_service.mark_as_read(
        db, notification_id=notification_id, account_id=current_account.id
    )

@router.post("/read-all", status_code=status.HTTP_200_OK)
async def mark_all_notifications_read(
    db: AsyncSession = Depends(get_db),
    current_account: models.Account = Depends(get_current_account),
):
    """Mark all unread notifications for the current account as read."""
    count = await services.notification_service.mark_all_as_read(db, account_id=current_account.id)
    return {"message": f"Marked {count} notifications as read."}
