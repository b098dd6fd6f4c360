import asyncio
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger import crud, models
from referral_ledger.core.config import settings
from referral_ledger.core.errors import Forbidden, NotFound, UpstreamFailure
from referral_ledger.models.enums import NotificationType
from referral_ledger.utils.email import send_email

logger = logging.getLogger(__name__)


async def _send_email_bounded(to: str, subject: str, html_content: str) -> None:
    try:
        await asyncio.wait_for(
            asyncio.to_thread(send_email, to=to, subject=subject, html_content=html_content),
            timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError as e:
        raise UpstreamFailure(f"Email to {to} timed out after {settings.NOTIFICATION_TIMEOUT_SECONDS}s") from e
    except Exception as e:
        raise UpstreamFailure(f"Email to {to} failed: {e}") from e


async def notify(
    db: AsyncSession,
    *,
    account_id: int,
    type: NotificationType,
    message: str,
    reference: Optional[str] = None,
    email: Optional[tuple[str, str]] = None,
) -> None:
    """
    Fire-and-forget dispatch: stores the in-app notification and, when a
    (subject, html) pair is given, emails the account. Runs after the
    primary operation has committed; any failure here is logged and never
    propagated.
    """
    try:
        await crud.crud_notification.create_notification(
            db, account_id=account_id, type=type, message=message, reference=reference
        )
    except SQLAlchemyError as e:
        logger.error(f"Storing notification '{type.value}' for account {account_id} failed: {e}", exc_info=True)
        await db.rollback()
        return

    if not email:
        return
    try:
        account = await crud.crud_account.get_account_by_id(db, account_id=account_id)
        if account is not None:
            subject, html_content = email
            await _send_email_bounded(account.email, subject, html_content)
    except Exception as e:
        logger.error(f"Email for notification '{type.value}' to account {account_id} failed: {e}", exc_info=True)


async def get_notifications(
    db: AsyncSession, *, account_id: int, skip: int, limit: int, include_read: bool
) -> List[models.Notification]:
    return await crud.crud_notification.get_notifications_for_account(
        db, account_id=account_id, skip=skip, limit=limit, include_read=include_read
    )

async def mark_as_read(db: AsyncSession, *, notification_id: int, account_id: int) -> models.Notification:
    notification = await crud.crud_notification.get_notification_by_id(db, notification_id=notification_id)
    if not notification:
        raise NotFound("Notification not found.")
    if notification.account_id != account_id:
        raise Forbidden("Not authorized.")

    return await crud.crud_notification.mark_notification_as_read(db, notification=notification)

async def mark_all_as_read(db: AsyncSession, *, account_id: int) -> int:
    return await crud.crud_notification.mark_all_notifications_as_read(db, account_id=account_id)
