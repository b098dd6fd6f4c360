from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional

from referral_ledger.models.enums import AccountRole

class AccountSimple(BaseModel):
    """Nested representation used inside flags, rewards and referrals."""
    id: int
    email: str
    full_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class Account(AccountSimple):
    role: AccountRole
    referral_code: Optional[str] = None
    points_balance: int
    referral_count: int
    total_referral_earnings: int
    created_at: datetime

class GeneratedReferralCode(BaseModel):
    id: int
    email: str
    full_name: Optional[str] = None
    referral_code: str

class GenerateCodesRequest(BaseModel):
    account_id: Optional[int] = None
    generate_for_all: bool = False

class GenerateCodesResponse(BaseModel):
    total_updated: int
    accounts: list[GeneratedReferralCode]
