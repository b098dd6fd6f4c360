import hmac
import logging
from typing import List, Optional

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials
from jose import JWTError
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger import crud, models, schemas, security
from referral_ledger.core.config import settings
from referral_ledger.core.errors import Forbidden, Unauthorized
from referral_ledger.db.session import get_db
from referral_ledger.models.enums import AccountRole

logger = logging.getLogger(__name__)


async def get_current_account(
    db: AsyncSession = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security.bearer_scheme),
) -> models.Account:
    """The caller's Account, resolved from the verified token only."""
    if credentials is None:
        raise Unauthorized("Not authenticated")
    try:
        payload = security.decode_access_token(credentials.credentials)
        token_data = schemas.token.TokenPayload(**payload)
    except (JWTError, ValidationError):
        raise Unauthorized()
    if token_data.user_id is None:
        raise Unauthorized()

    account = await crud.crud_account.get_account_by_id(db, account_id=token_data.user_id)
    if account is None or not account.is_active:
        raise Unauthorized()
    return account


def require_roles(required_roles: List[AccountRole]):
    """The single authorization guard: builds a dependency that admits only the given roles."""
    async def role_checker(current_account: models.Account = Depends(get_current_account)) -> models.Account:
        if current_account.role not in required_roles:
            logger.warning(
                f"Account {current_account.id} ({AccountRole(current_account.role).value}) denied; "
                f"requires one of {[role.value for role in required_roles]}"
            )
            raise Forbidden(
                f"Requires one of: {', '.join(role.value for role in required_roles)}"
            )
        return current_account
    return role_checker


require_admin = require_roles([AccountRole.ADMIN])


async def verify_webhook_secret(x_webhook_secret: Optional[str] = Header(None)) -> None:
    expected = settings.ORDER_EVENTS_SECRET.get_secret_value() if settings.ORDER_EVENTS_SECRET else None
    if not expected:
        logger.error("ORDER_EVENTS_SECRET is not configured; rejecting order event")
        raise Unauthorized("Order events are not accepted")
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
        logger.warning("Order event rejected: bad X-Webhook-Secret header")
        raise Unauthorized("Invalid webhook secret")
