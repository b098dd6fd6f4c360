"""
Error taxonomy shared by services, dependencies and routers.

Every error carries a stable machine-readable ``kind`` and a human-readable
message. The handlers registered in ``referral_ledger.main`` render them as
``{"error": {"kind": ..., "message": ...}}``.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    kind = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": {"kind": self.kind, "message": self.message}}


class Unauthorized(AppError):
    kind = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Could not validate credentials"


class Forbidden(AppError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient permissions"


class ValidationError(AppError):
    kind = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class NotFound(AppError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class Conflict(AppError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Request conflicts with the current state"


class InsufficientBalance(AppError):
    kind = "insufficient_balance"
    status_code = 422
    default_message = "Insufficient points balance"


class UpstreamFailure(AppError):
    kind = "upstream_failure"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "An upstream service is unavailable"


class Internal(AppError):
    pass


# Referral tracker
class InvalidReferralCode(NotFound):
    kind = "invalid_referral_code"
    default_message = "Referral code not found"


class SelfReferral(ValidationError):
    kind = "self_referral"
    default_message = "You cannot use your own referral code"


class AlreadyReferred(Conflict):
    kind = "already_referred"
    default_message = "Account has already been referred"


class ReferralIneligible(Conflict):
    kind = "referral_ineligible"
    default_message = "Referral codes can only be used before the first paid order"


# Reward issuance
class RewardIssuanceFailed(UpstreamFailure):
    kind = "reward_issuance_failed"
    default_message = "Reward could not be issued; retry with the same idempotency key"


# Fraud scanner
class ScanInProgress(Conflict):
    kind = "scan_in_progress"
    default_message = "A fraud scan is already running"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = f"{location}: {first.get('msg', 'invalid value')}" if location else "Malformed request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ValidationError(message).to_dict(),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=Internal().to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
