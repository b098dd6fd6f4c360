from . import notification_service # noqa
from . import ledger_service # noqa
from . import reward_service # noqa
from . import referral_service # noqa
from . import fraud_service # noqa
from . import order_event_service # noqa
