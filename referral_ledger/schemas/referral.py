from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from referral_ledger.models.enums import ReferralStatus
from .account import AccountSimple
from .reward import Reward

class ReferralLink(BaseModel):
    referral_code: str = Field(..., min_length=1, max_length=32)

class Referral(BaseModel):
    id: int
    referrer_id: int
    referred_account_id: int
    referral_code_used: str
    status: ReferralStatus
    created_at: datetime
    qualified_at: Optional[datetime] = None
    qualifying_order_id: Optional[str] = None
    qualifying_order_amount: Optional[Decimal] = None
    rewarded_at: Optional[datetime] = None
    flagged_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class ReferralWithAccount(Referral):
    referred_account: Optional[AccountSimple] = None

class ReferralStats(BaseModel):
    total_referrals: int
    pending_referrals: int
    completed_referrals: int
    total_earnings: int
    pending_rewards: int

class MyReferrals(BaseModel):
    referral_code: Optional[str] = None
    referral_link: Optional[str] = None
    stats: ReferralStats
    referrals: list[ReferralWithAccount]
    rewards: list[Reward]

class ExpireReferralsResponse(BaseModel):
    expired: int
