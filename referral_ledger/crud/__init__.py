# Import individual CRUD modules so they can be accessed via the package
from . import crud_account # noqa
from . import crud_ledger # noqa
from . import crud_referral # noqa
from . import crud_reward # noqa
from . import crud_fraud_flag # noqa
from . import crud_fraud_scan # noqa
from . import crud_notification # noqa

__all__ = [
    "crud_account",
    "crud_ledger",
    "crud_referral",
    "crud_reward",
    "crud_fraud_flag",
    "crud_fraud_scan",
    "crud_notification",
]
