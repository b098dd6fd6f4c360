from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric
from sqlalchemy.orm import relationship

from referral_ledger.db.base_class import Base, value_enum
from referral_ledger.utils.dates import utcnow
from .enums import ReferralStatus, REFERRAL_TRANSITIONS

class Referral(Base):
    __tablename__ = "referrals"

    id = Column(Integer, primary_key=True, index=True)
    referrer_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    # unique: an account can be referred at most once
    referred_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, unique=True)
    referral_code_used = Column(String(15), nullable=False)
    status = Column(value_enum(ReferralStatus, "referralstatus"), nullable=False, default=ReferralStatus.PENDING, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    qualified_at = Column(DateTime, nullable=True, index=True)
    qualifying_order_id = Column(String, nullable=True)
    qualifying_order_amount = Column(Numeric(12, 2), nullable=True)
    rewarded_at = Column(DateTime, nullable=True)
    flagged_at = Column(DateTime, nullable=True)
    expired_at = Column(DateTime, nullable=True)

    referrer = relationship("Account", foreign_keys=[referrer_id], back_populates="referrals_made")
    referred_account = relationship("Account", foreign_keys=[referred_account_id], back_populates="referral_received")

    def can_transition(self, target: ReferralStatus) -> bool:
        return target in REFERRAL_TRANSITIONS[ReferralStatus(self.status)]

    def __repr__(self):
        return f"<Referral(id={self.id}, referrer={self.referrer_id}, referred={self.referred_account_id}, status={self.status})>"
