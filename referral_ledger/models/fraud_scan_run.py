from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON

from referral_ledger.db.base_class import Base, value_enum
from referral_ledger.utils.dates import utcnow
from .enums import ScanRunStatus

FRAUD_SCAN_LOCK = "referral_fraud_scan"

class FraudScanRun(Base):
    __tablename__ = "fraud_scan_runs"

    id = Column(Integer, primary_key=True, index=True)
    # Holds FRAUD_SCAN_LOCK while the run is in flight, NULL afterwards
    lock_key = Column(String, unique=True, nullable=True)
    status = Column(value_enum(ScanRunStatus, "scanrunstatus"), nullable=False, default=ScanRunStatus.RUNNING)
    triggered_by = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    finished_at = Column(DateTime, nullable=True)
    referrals_scanned = Column(Integer, nullable=False, default=0)
    flags_created = Column(Integer, nullable=False, default=0)
    summary = Column(JSON, nullable=False, default=dict)
