from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from referral_ledger.db.base_class import Base
from referral_ledger.utils.dates import utcnow

class Notification(Base):
    __tablename__ = 'notifications'

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True) # Recipient
    type = Column(String(50), index=True, nullable=False)
    message = Column(String, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    reference = Column(String, index=True, nullable=True) # e.g. 'reward:<id>'
    created_at = Column(DateTime, nullable=False, default=utcnow)

    account = relationship("Account", foreign_keys=[account_id])
