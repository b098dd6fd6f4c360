from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional

from referral_ledger.models.enums import RewardStatus, LedgerReason
from .account import AccountSimple

class Reward(BaseModel):
    id: int
    idempotency_key: str
    beneficiary_id: int
    amount: int
    reason: LedgerReason
    status: RewardStatus
    referral_id: Optional[int] = None
    source_reference: Optional[str] = None
    ledger_entry_id: Optional[int] = None
    reversal_entry_id: Optional[int] = None
    created_at: datetime
    issued_at: Optional[datetime] = None
    reversed_at: Optional[datetime] = None
    reversal_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class RewardWithBeneficiary(Reward):
    beneficiary: Optional[AccountSimple] = None

class RewardStats(BaseModel):
    total: int
    pending: int
    issued: int
    reversed: int
    pending_amount: int
    issued_amount: int
    reversed_amount: int

class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool

class RewardList(BaseModel):
    rewards: list[RewardWithBeneficiary]
    pagination: Pagination
    stats: RewardStats
