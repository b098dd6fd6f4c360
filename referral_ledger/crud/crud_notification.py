from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import update
from typing import List, Optional
import logging

from referral_ledger.models.notification import Notification
from referral_ledger.models.enums import NotificationType

logger = logging.getLogger(__name__)

async def create_notification(
    db: AsyncSession,
    *,
    account_id: int,
    type: NotificationType,
    message: str,
    reference: Optional[str] = None,
) -> Notification:
    """Create a new notification."""
    db_notification = Notification(
        account_id=account_id,
        type=type.value,
        message=message,
        reference=reference,
        is_read=False
    )
    db.add(db_notification)
    await db.commit()
    logger.info(f"Created notification id {db_notification.id} for account {account_id}")
    return db_notification

async def get_notifications_for_account(
    db: AsyncSession,
    *,
    account_id: int,
    skip: int = 0,
    limit: int = 100,
    include_read: bool = False
) -> List[Notification]:
    """Get notifications for an account, optionally filtering out read ones."""
    query = select(Notification).filter(Notification.account_id == account_id)
    if not include_read:
        query = query.filter(Notification.is_read == False)

    query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(skip).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())

async def get_notification_by_id(db: AsyncSession, *, notification_id: int) -> Optional[Notification]:
    """Get a notification by its ID."""
    result = await db.execute(select(Notification).filter(Notification.id == notification_id))
    return result.scalars().first()

async def mark_notification_as_read(db: AsyncSession, *, notification: Notification) -> Notification:
    """Mark a specific notification as read."""
    if not notification.is_read:
        notification.is_read = True
        db.add(notification)
        await db.commit()
        logger.info(f"Marked notification id {notification.id} as read for account {notification.account_id}")
    return notification

async def mark_all_notifications_as_read(db: AsyncSession, *, account_id: int) -> int:
    """Mark all unread notifications for an account as read. Returns count of marked items."""
    stmt = (
        update(Notification)
        .where(Notification.account_id == account_id, Notification.is_read == False)
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    count = result.rowcount
    logger.info(f"Marked {count} notifications as read for account {account_id}")
    return count
