from sqlalchemy import CheckConstraint, Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from referral_ledger.db.base_class import Base, value_enum
from referral_ledger.utils.dates import utcnow
from .enums import RewardStatus, LedgerReason

class Reward(Base):
    __tablename__ = "rewards"

    id = Column(Integer, primary_key=True, index=True)
    idempotency_key = Column(String, unique=True, nullable=False)
    beneficiary_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    reason = Column(value_enum(LedgerReason, "ledgerreason"), nullable=False)
    status = Column(value_enum(RewardStatus, "rewardstatus"), nullable=False, default=RewardStatus.PENDING, index=True)
    referral_id = Column(Integer, ForeignKey("referrals.id"), nullable=True, index=True)
    source_reference = Column(String, nullable=True)  # e.g. 'order:<id>'
    ledger_entry_id = Column(Integer, nullable=True)  # credit entry written on issue
    reversal_entry_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    issued_at = Column(DateTime, nullable=True)
    reversed_at = Column(DateTime, nullable=True)
    reversal_reason = Column(String, nullable=True)

    beneficiary = relationship("Account", foreign_keys=[beneficiary_id])
    referral = relationship("Referral", foreign_keys=[referral_id])

    __table_args__ = (CheckConstraint("amount > 0", name="ck_rewards_amount_positive"),)
