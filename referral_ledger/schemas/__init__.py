# flake8: noqa
from .token import TokenPayload
from .account import Account, AccountSimple, GenerateCodesRequest, GenerateCodesResponse, GeneratedReferralCode
from .ledger import (
    LedgerEntry, PointsBalance, LedgerHistory, AccountPointsSummary,
    PointsAward, PointsAdjust, PointsRedeem, PointsChangeResponse
)
from .reward import Reward, RewardWithBeneficiary, RewardStats, RewardList, Pagination
from .referral import (
    ReferralLink, Referral, ReferralWithAccount, ReferralStats, MyReferrals,
    ExpireReferralsResponse
)
from .fraud import (
    FraudFlag, FraudFlagWithReferral, FraudFlagList, FlagResolve, FlagResolution,
    ScanResult, ScanRun, FraudDashboardStats
)
from .notification import Notification
from .events import OrderPaidEvent, OrderPaidResult

from . import token, account, ledger, reward, referral, fraud, notification, events
