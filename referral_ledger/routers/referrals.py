from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger import models, schemas, services
from referral_ledger.db.session import get_db
from referral_ledger.dependencies import get_current_account, require_admin

router = APIRouter()

@router.post("/link", response_model=schemas.referral.Referral, status_code=status.HTTP_201_CREATED)
async def link_referral_code(
    link_in: schemas.referral.ReferralLink,
    db: AsyncSession = Depends(get_db),
    current_account: models.Account = Depends(get_current_account),
):
    """Record that the current account signed up with someone's referral code."""
    return await services.referral_service.link_referral(
        db, referral_code=link_in.referral_code, referred_account_id=current_account.id
    )

@router.get("/me", response_model=schemas.referral.MyReferrals)
async def get_my_referrals(
    db: AsyncSession = Depends(get_db),
    current_account: models.Account = Depends(get_current_account),
):
    return await services.referral_service.get_my_referrals(db, account=current_account)

@router.post("/codes/generate", response_model=schemas.account.GenerateCodesResponse)
async def generate_referral_codes(
    generate_in: schemas.account.GenerateCodesRequest,
    db: AsyncSession = Depends(get_db),
    current_admin: models.Account = Depends(require_admin),
):
    """Backfill referral codes for one account or for every account without one."""
    return await services.referral_service.generate_missing_codes(
        db, account_id=generate_in.account_id, generate_for_all=generate_in.generate_for_all
    )

@router.post("/expire", response_model=schemas.referral.ExpireReferralsResponse)
async def expire_stale_referrals(
    db: AsyncSession = Depends(get_db),
    current_admin: models.Account = Depends(require_admin),
):
    expired = await services.referral_service.expire_stale_referrals(db)
    return schemas.referral.ExpireReferralsResponse(expired=expired)
