from sqlalchemy import Boolean, Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .referral import Referral

from referral_ledger.db.base_class import Base, value_enum
from referral_ledger.utils.dates import utcnow
from .enums import AccountRole

class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    role = Column(value_enum(AccountRole, "accountrole"), nullable=False, default=AccountRole.CUSTOMER)
    is_active = Column(Boolean, nullable=False, default=True)
    # Stored lower-case; never reassigned once set
    referral_code = Column(String(15), unique=True, index=True, nullable=True)
    points_balance = Column(Integer, nullable=False, default=0)
    referral_count = Column(Integer, nullable=False, default=0)
    total_referral_earnings = Column(Integer, nullable=False, default=0)
    device_fingerprint = Column(String, index=True, nullable=True)
    signup_ip = Column(String(45), index=True, nullable=True)
    # Set once by the first paid order; referrals can only be linked before it
    first_paid_order_id = Column(String, nullable=True)
    first_paid_order_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    referrals_made = relationship("Referral", foreign_keys="Referral.referrer_id", back_populates="referrer")
    referral_received = relationship("Referral", foreign_keys="Referral.referred_account_id", back_populates="referred_account", uselist=False)

    def __repr__(self):
        return f"<Account(id={self.id}, email='{self.email}')>"
