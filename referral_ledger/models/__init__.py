# Import the Base class to make it accessible for models
# and for Alembic discovery via Base.metadata
from referral_ledger.db.base_class import Base  # noqa: F401

from .account import Account
from .referral import Referral
from .reward import Reward
from .ledger_entry import LedgerEntry
from .fraud_flag import FraudFlag
from .fraud_scan_run import FraudScanRun, FRAUD_SCAN_LOCK
from .notification import Notification
from . import enums

__all__ = [
    "Base",
    "Account",
    "Referral",
    "Reward",
    "LedgerEntry",
    "FraudFlag",
    "FraudScanRun",
    "FRAUD_SCAN_LOCK",
    "Notification",
    "enums",
]
