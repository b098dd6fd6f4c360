from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from referral_ledger.db.base_class import Base, value_enum
from referral_ledger.utils.dates import utcnow
from .enums import FraudType, FraudSeverity, FraudFlagStatus

class FraudFlag(Base):
    __tablename__ = "referral_fraud_flags"

    id = Column(Integer, primary_key=True, index=True)
    referral_id = Column(Integer, ForeignKey("referrals.id"), nullable=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)  # subject account
    fraud_type = Column(value_enum(FraudType, "fraudtype"), nullable=False, index=True)
    severity = Column(value_enum(FraudSeverity, "fraudseverity"), nullable=False, index=True)
    status = Column(value_enum(FraudFlagStatus, "fraudflagstatus"), nullable=False, default=FraudFlagStatus.PENDING_REVIEW, index=True)
    evidence = Column(JSON, nullable=False, default=dict)
    evidence_summary = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    reviewed_by = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    admin_notes = Column(String, nullable=True)

    referral = relationship("Referral", foreign_keys=[referral_id])
    account = relationship("Account", foreign_keys=[account_id])

    __table_args__ = (UniqueConstraint('referral_id', 'fraud_type', name='_referral_fraud_type_uc'),)
