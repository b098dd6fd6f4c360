from sqlalchemy import CheckConstraint, Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship

from referral_ledger.db.base_class import Base, value_enum
from referral_ledger.utils.dates import utcnow
from .enums import LedgerReason

class LedgerEntry(Base):
    """Append-only. Rows are never updated or deleted; corrections are new entries."""
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    delta = Column(Integer, nullable=False)
    reason = Column(value_enum(LedgerReason, "ledgerreason"), nullable=False, index=True)
    balance_after = Column(Integer, nullable=False)
    idempotency_key = Column(String, unique=True, nullable=True)
    reward_id = Column(Integer, ForeignKey("rewards.id"), nullable=True, index=True)
    reference_entry_id = Column(Integer, ForeignKey("ledger_entries.id"), nullable=True)
    description = Column(String, nullable=True)
    entry_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_by = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    account = relationship("Account", foreign_keys=[account_id])

    __table_args__ = (CheckConstraint("delta <> 0", name="ck_ledger_entries_delta_nonzero"),)
