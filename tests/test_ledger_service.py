"""
Points ledger tests.

Covers:
1. Running balance and per-entry snapshots
2. Reason/sign validation
3. Overdraft protection (and the reversal exemption)
4. Admin award/adjust and customer redemption
"""
import pytest

from referral_ledger import crud
from referral_ledger.core.errors import InsufficientBalance, NotFound, ValidationError
from referral_ledger.models.enums import AccountRole, LedgerReason, NotificationType
from referral_ledger.services import ledger_service


class TestAppend:
    async def test_sum_of_deltas_equals_final_balance(self, db, make_account):
        account = await make_account()
        deltas = [
            (500, LedgerReason.PURCHASE),
            (1200, LedgerReason.ADMIN_AWARD),
            (-300, LedgerReason.ADMIN_ADJUSTMENT),
            (-1000, LedgerReason.REDEMPTION),
            (75, LedgerReason.ADMIN_ADJUSTMENT),
        ]

        entries = []
        for delta, reason in deltas:
            entries.append(await ledger_service.append(db, account_id=account.id, delta=delta, reason=reason))

        expected = sum(delta for delta, _ in deltas)
        assert await ledger_service.get_balance(db, account.id) == expected
        assert await crud.crud_ledger.sum_deltas(db, account_id=account.id) == expected
        assert account.points_balance == expected

        running = 0
        for entry in entries:
            running += entry.delta
            assert entry.balance_after == running

    async def test_balance_is_zero_without_entries(self, db, make_account):
        account = await make_account()
        assert await ledger_service.get_balance(db, account.id) == 0

    async def test_zero_delta_rejected(self, db, make_account):
        account = await make_account()
        with pytest.raises(ValidationError):
            await ledger_service.append(db, account_id=account.id, delta=0, reason=LedgerReason.ADMIN_ADJUSTMENT)

    @pytest.mark.parametrize(
        "delta, reason",
        [
            (-10, LedgerReason.PURCHASE),
            (-10, LedgerReason.REFERRAL_REWARD),
            (10, LedgerReason.REDEMPTION),
            (10, LedgerReason.REWARD_REVERSAL),
        ],
    )
    async def test_sign_must_match_reason(self, db, make_account, delta, reason):
        account = await make_account()
        with pytest.raises(ValidationError):
            await ledger_service.append(db, account_id=account.id, delta=delta, reason=reason)

    async def test_debit_beyond_balance_rejected_and_nothing_written(self, db, make_account):
        account = await make_account()
        await ledger_service.append(db, account_id=account.id, delta=100, reason=LedgerReason.PURCHASE)

        with pytest.raises(InsufficientBalance) as exc_info:
            await ledger_service.append(db, account_id=account.id, delta=-101, reason=LedgerReason.REDEMPTION)
        assert exc_info.value.status_code == 422

        assert await ledger_service.get_balance(db, account.id) == 100
        assert await crud.crud_ledger.count_entries(db, account_id=account.id) == 1

    async def test_reversal_may_take_balance_negative(self, db, make_account):
        account = await make_account()
        await ledger_service.append(db, account_id=account.id, delta=100, reason=LedgerReason.PURCHASE)

        entry = await ledger_service.append(
            db, account_id=account.id, delta=-250, reason=LedgerReason.REWARD_REVERSAL
        )

        assert entry.balance_after == -150
        assert await ledger_service.get_balance(db, account.id) == -150

    async def test_unknown_account(self, db):
        with pytest.raises(NotFound):
            await ledger_service.append(db, account_id=9999, delta=10, reason=LedgerReason.PURCHASE)


class TestAdminTools:
    async def test_award_points_records_admin_and_notifies(self, db, make_account):
        admin = await make_account(role=AccountRole.ADMIN, full_name="Ops Admin")
        customer = await make_account()

        entry = await ledger_service.award_points(
            db, account_id=customer.id, points=250, reason="Apology for late delivery", admin=admin
        )

        assert entry.reason == LedgerReason.ADMIN_AWARD
        assert entry.created_by == admin.id
        assert entry.entry_metadata["admin_email"] == admin.email
        notifications = await crud.crud_notification.get_notifications_for_account(db, account_id=customer.id)
        assert [n.type for n in notifications] == [NotificationType.POINTS_AWARDED.value]

    async def test_negative_adjustment_cannot_overdraw(self, db, make_account):
        admin = await make_account(role=AccountRole.ADMIN)
        customer = await make_account()
        await ledger_service.award_points(db, account_id=customer.id, points=50, reason="Welcome", admin=admin)

        with pytest.raises(InsufficientBalance):
            await ledger_service.adjust_points(
                db, account_id=customer.id, points_change=-60, reason="Correction", admin=admin
            )
        assert await ledger_service.get_balance(db, customer.id) == 50

    async def test_points_summary_reconciles(self, db, make_account):
        admin = await make_account(role=AccountRole.ADMIN)
        customer = await make_account()
        await ledger_service.award_points(db, account_id=customer.id, points=400, reason="Promo", admin=admin)
        await ledger_service.adjust_points(db, account_id=customer.id, points_change=-100, reason="Fix", admin=admin)

        summary = await ledger_service.get_account_points_summary(db, account_id=customer.id)

        assert summary.balance == 300
        assert summary.computed_balance == 300
        assert summary.is_consistent
        assert summary.total_entries == 2
        assert summary.recent_entries[0].delta == -100


class TestRedemption:
    async def test_redeem_below_minimum_rejected(self, db, make_account):
        customer = await make_account()
        await ledger_service.append(db, account_id=customer.id, delta=5000, reason=LedgerReason.PURCHASE)

        with pytest.raises(ValidationError):
            await ledger_service.redeem_points(db, account=customer, points=999)

    async def test_redeem_debits_balance(self, db, make_account):
        customer = await make_account()
        await ledger_service.append(db, account_id=customer.id, delta=1500, reason=LedgerReason.PURCHASE)

        entry = await ledger_service.redeem_points(db, account=customer, points=1000, reference="voucher-7")

        assert entry.delta == -1000
        assert entry.balance_after == 500
        assert entry.entry_metadata == {"reference": "voucher-7"}
