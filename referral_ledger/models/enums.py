from __future__ import annotations
import enum


class AccountRole(str, enum.Enum):
    CUSTOMER = "customer"
    STAFF = "staff"
    ADMIN = "admin"


class ReferralStatus(str, enum.Enum):
    PENDING = "pending"
    QUALIFIED = "qualified"
    REWARDED = "rewarded"
    FRAUD_FLAGGED = "fraud_flagged"
    EXPIRED = "expired"


# Forward-only lifecycle. fraud_flagged and expired are terminal.
REFERRAL_TRANSITIONS: dict[ReferralStatus, frozenset[ReferralStatus]] = {
    ReferralStatus.PENDING: frozenset(
        {ReferralStatus.QUALIFIED, ReferralStatus.EXPIRED, ReferralStatus.FRAUD_FLAGGED}
    ),
    ReferralStatus.QUALIFIED: frozenset(
        {ReferralStatus.REWARDED, ReferralStatus.EXPIRED, ReferralStatus.FRAUD_FLAGGED}
    ),
    ReferralStatus.REWARDED: frozenset({ReferralStatus.FRAUD_FLAGGED}),
    ReferralStatus.FRAUD_FLAGGED: frozenset(),
    ReferralStatus.EXPIRED: frozenset(),
}


class RewardStatus(str, enum.Enum):
    PENDING = "pending"
    ISSUED = "issued"
    REVERSED = "reversed"


class LedgerReason(str, enum.Enum):
    REFERRAL_REWARD = "referral_reward"
    REFERRAL_BONUS = "referral_bonus"
    PURCHASE = "purchase"
    ADMIN_AWARD = "admin_award"
    ADMIN_ADJUSTMENT = "admin_adjustment"
    REDEMPTION = "redemption"
    REWARD_REVERSAL = "reward_reversal"


CREDIT_REASONS = frozenset({
    LedgerReason.REFERRAL_REWARD, LedgerReason.REFERRAL_BONUS, LedgerReason.PURCHASE, LedgerReason.ADMIN_AWARD,
})
DEBIT_REASONS = frozenset({LedgerReason.REDEMPTION, LedgerReason.REWARD_REVERSAL})
# Only a compensating reversal may take an account below zero
NEGATIVE_BALANCE_REASONS = frozenset({LedgerReason.REWARD_REVERSAL})


class FraudType(str, enum.Enum):
    SHARED_FINGERPRINT = "shared_fingerprint"
    REFERRAL_VELOCITY = "referral_velocity"
    RAPID_QUALIFICATION = "rapid_qualification"


class FraudSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FraudFlagStatus(str, enum.Enum):
    PENDING_REVIEW = "pending_review"
    CONFIRMED = "confirmed"
    FALSE_POSITIVE = "false_positive"


class FlagOutcome(str, enum.Enum):
    CONFIRM = "confirm"
    DISMISS = "dismiss"


class ScanRunStatus(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class NotificationType(str, enum.Enum):
    REFERRAL_REWARD_ISSUED = "referral_reward_issued"
    REFERRAL_BONUS_ISSUED = "referral_bonus_issued"
    PURCHASE_POINTS_EARNED = "purchase_points_earned"
    POINTS_AWARDED = "points_awarded"
    POINTS_ADJUSTED = "points_adjusted"
    REWARD_REVERSED = "reward_reversed"
