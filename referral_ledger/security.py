from datetime import datetime, timedelta, timezone
import logging

from jose import JWTError, jwt
from fastapi.security import HTTPBearer

from referral_ledger.core.config import settings

logger = logging.getLogger(__name__)

# Tokens are minted by the storefront's identity service; auto_error is off so
# a missing header becomes our own Unauthorized error body.
bearer_scheme = HTTPBearer(auto_error=False)

# --- Token Creation ---
def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
    to_encode.update({"exp": expire, "iat": datetime.now(timezone.utc)})
    return jwt.encode(
        to_encode, settings.SECRET_KEY.get_secret_value(), algorithm=settings.ALGORITHM
    )

def decode_access_token(token: str) -> dict:
    """Decodes the access token and returns the payload."""
    try:
        return jwt.decode(
            token, settings.SECRET_KEY.get_secret_value(), algorithms=[settings.ALGORITHM]
        )
    except JWTError as e:
        logger.info(f"Rejected access token: {e}")
        raise
