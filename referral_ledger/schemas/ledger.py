from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional

from referral_ledger.models.enums import LedgerReason
from .account import AccountSimple

class LedgerEntry(BaseModel):
    id: int
    account_id: int
    delta: int
    reason: LedgerReason
    balance_after: int
    reward_id: Optional[int] = None
    reference_entry_id: Optional[int] = None
    description: Optional[str] = None
    metadata: dict = Field(default_factory=dict, validation_alias="entry_metadata")
    created_by: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

class PointsBalance(BaseModel):
    account_id: int
    balance: int

class LedgerHistory(BaseModel):
    account_id: int
    entries: list[LedgerEntry]
    total: int
    balance: int

class AccountPointsSummary(BaseModel):
    account: AccountSimple
    balance: int
    # sum of all deltas; equals balance unless the ledger is corrupt
    computed_balance: int
    is_consistent: bool
    total_entries: int
    recent_entries: list[LedgerEntry]

class PointsAward(BaseModel):
    account_id: int
    points: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1)
    metadata: dict = Field(default_factory=dict)

class PointsAdjust(BaseModel):
    account_id: int
    points_change: int = Field(..., description="Positive to award, negative to deduct")
    reason: str = Field(..., min_length=1)
    metadata: dict = Field(default_factory=dict)

class PointsRedeem(BaseModel):
    points: int = Field(..., gt=0)
    reference: Optional[str] = Field(None, description="Client reference for the redemption, e.g. a voucher id")

class PointsChangeResponse(BaseModel):
    entry: LedgerEntry
    new_balance: int
    account: AccountSimple
