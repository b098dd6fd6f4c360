from fastapi import APIRouter

from . import fraud
from . import referrals
from . import rewards
from . import points
from . import events
from . import notifications

api_router = APIRouter()

# Include routers with their prefixes
api_router.include_router(fraud.router, prefix="/fraud", tags=["fraud"])
api_router.include_router(referrals.router, prefix="/referrals", tags=["referrals"])
api_router.include_router(rewards.router, prefix="/rewards", tags=["rewards"])
api_router.include_router(points.router, prefix="/points", tags=["points"])
api_router.include_router(events.router, prefix="/events", tags=["events"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
