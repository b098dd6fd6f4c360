from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from referral_ledger import schemas, services
from referral_ledger.db.session import get_db
from referral_ledger.dependencies import require_admin
from referral_ledger.models.enums import RewardStatus

router = APIRouter(
    dependencies=[Depends(require_admin)]
)

@router.get("", response_model=schemas.reward.RewardList)
async def list_rewards(
    status: Optional[RewardStatus] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """List rewards with per-status totals."""
    return await services.reward_service.list_rewards(db, status=status, skip=skip, limit=limit)
