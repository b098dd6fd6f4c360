from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional

from referral_ledger.models.enums import (
    FraudType, FraudSeverity, FraudFlagStatus, FlagOutcome, ScanRunStatus,
)
from .referral import Referral
from .reward import Pagination

class FraudFlag(BaseModel):
    id: int
    referral_id: Optional[int] = None
    account_id: int
    fraud_type: FraudType
    severity: FraudSeverity
    status: FraudFlagStatus
    evidence: dict = Field(default_factory=dict)
    evidence_summary: str
    created_at: datetime
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    admin_notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class FraudFlagWithReferral(FraudFlag):
    referral: Optional[Referral] = None

class FraudFlagList(BaseModel):
    flags: list[FraudFlagWithReferral]
    pagination: Pagination

class FlagResolve(BaseModel):
    outcome: FlagOutcome
    admin_notes: Optional[str] = Field(None, max_length=2000)

class FlagResolution(BaseModel):
    flag: FraudFlag
    referral: Optional[Referral] = None
    reversal_entry_id: Optional[int] = None

class ScanResult(BaseModel):
    run_id: int
    flags_created: int
    referrals_scanned: int
    cancelled: bool = False
    summary: dict[str, int]

class ScanRun(BaseModel):
    id: int
    status: ScanRunStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    referrals_scanned: int
    flags_created: int

    model_config = ConfigDict(from_attributes=True)

class FraudDashboardStats(BaseModel):
    total_flags: int
    pending_review: int
    confirmed: int
    false_positive: int
    by_severity: dict[str, int]
    by_type: dict[str, int]
    referrals_by_status: dict[str, int]
    flagged_referrals: int
    rewards_issued: int
    points_issued: int
    points_reversed: int
    last_scan: Optional[ScanRun] = None
