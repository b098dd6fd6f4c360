import re
from datetime import timedelta
from decimal import Decimal

import pytest

from referral_ledger.core.errors import (
    AlreadyReferred, Conflict, InvalidReferralCode, ReferralIneligible, SelfReferral, ValidationError,
)
from referral_ledger.models.enums import ReferralStatus
from referral_ledger.services import referral_service
from referral_ledger.utils.dates import utcnow


class TestLinkReferral:
    async def test_link_is_case_insensitive(self, db, make_account):
        referrer = await make_account(referral_code="abc123")
        referred = await make_account()

        referral = await referral_service.link_referral(db, referral_code="ABC123", referred_account_id=referred.id)

        assert referral.referrer_id == referrer.id
        assert referral.referred_account_id == referred.id
        assert referral.referral_code_used == "abc123"
        assert referral.status == ReferralStatus.PENDING

    async def test_unknown_code(self, db, make_account):
        referred = await make_account()
        with pytest.raises(InvalidReferralCode):
            await referral_service.link_referral(db, referral_code="nope999", referred_account_id=referred.id)

    async def test_own_code_rejected(self, db, make_account):
        account = await make_account(referral_code="self123")
        with pytest.raises(SelfReferral):
            await referral_service.link_referral(db, referral_code="self123", referred_account_id=account.id)

    async def test_second_link_conflicts(self, db, make_account):
        await make_account(referral_code="first111")
        await make_account(referral_code="second22")
        referred = await make_account()
        await referral_service.link_referral(db, referral_code="first111", referred_account_id=referred.id)

        with pytest.raises(AlreadyReferred) as exc_info:
            await referral_service.link_referral(db, referral_code="second22", referred_account_id=referred.id)
        assert isinstance(exc_info.value, Conflict)

    async def test_link_after_paid_order_refused(self, db, make_account):
        await make_account(referral_code="late123")
        referred = await make_account()
        await referral_service.record_paid_order(db, account_id=referred.id, order_id="old-1")

        with pytest.raises(ReferralIneligible) as exc_info:
            await referral_service.link_referral(db, referral_code="late123", referred_account_id=referred.id)
        assert isinstance(exc_info.value, Conflict)


class TestRecordPaidOrder:
    async def test_first_order_is_kept(self, db, make_account):
        account = await make_account()

        first = await referral_service.record_paid_order(db, account_id=account.id, order_id="order-1")
        second = await referral_service.record_paid_order(db, account_id=account.id, order_id="order-2")

        assert first == second == "order-1"
        await db.refresh(account)
        assert account.first_paid_order_id == "order-1"
        assert account.first_paid_order_at is not None

class TestMarkQualified:
    async def _pending(self, db, make_account):
        await make_account(referral_code="qual123")
        referred = await make_account()
        return await referral_service.link_referral(db, referral_code="qual123", referred_account_id=referred.id)

    async def test_first_qualifying_order(self, db, make_account):
        referral = await self._pending(db, make_account)

        event = await referral_service.mark_qualified(
            db, referral=referral, order_id="order-1", order_amount=Decimal("5000")
        )

        assert event is not None
        assert event.referral_id == referral.id
        assert event.order_id == "order-1"
        await db.refresh(referral)
        assert referral.status == ReferralStatus.QUALIFIED
        assert referral.qualified_at is not None

    async def test_same_order_replays_event(self, db, make_account):
        referral = await self._pending(db, make_account)
        first = await referral_service.mark_qualified(
            db, referral=referral, order_id="order-1", order_amount=Decimal("5000")
        )

        again = await referral_service.mark_qualified(
            db, referral=referral, order_id="order-1", order_amount=Decimal("5000")
        )

        assert again == first

    async def test_later_order_does_not_requalify(self, db, make_account):
        referral = await self._pending(db, make_account)
        await referral_service.mark_qualified(db, referral=referral, order_id="order-1", order_amount=Decimal("5000"))

        event = await referral_service.mark_qualified(
            db, referral=referral, order_id="order-2", order_amount=Decimal("8000")
        )

        assert event is None

    async def test_order_below_minimum(self, db, make_account):
        referral = await self._pending(db, make_account)

        event = await referral_service.mark_qualified(
            db, referral=referral, order_id="order-1", order_amount=Decimal("999.99")
        )

        assert event is None
        await db.refresh(referral)
        assert referral.status == ReferralStatus.PENDING

    async def test_expired_referral_never_qualifies(self, db, make_account, make_referral):
        referrer = await make_account(referral_code="old123")
        referred = await make_account()
        referral = await make_referral(referrer, referred, status=ReferralStatus.EXPIRED)

        event = await referral_service.mark_qualified(
            db, referral=referral, order_id="order-1", order_amount=Decimal("5000")
        )

        assert event is None

    async def test_small_first_order_blocks_later_orders(self, db, make_account):
        referral = await self._pending(db, make_account)
        await referral_service.mark_qualified(db, referral=referral, order_id="order-1", order_amount=Decimal("500"))

        event = await referral_service.mark_qualified(
            db, referral=referral, order_id="order-2", order_amount=Decimal("5000")
        )

        assert event is None
        await db.refresh(referral)
        assert referral.status == ReferralStatus.PENDING

    async def test_order_before_the_referral_counts_as_first(self, db, make_account, make_referral):
        referrer = await make_account(referral_code="prior123")
        referred = await make_account()
        await referral_service.record_paid_order(db, account_id=referred.id, order_id="order-0")
        referral = await make_referral(referrer, referred)

        event = await referral_service.mark_qualified(
            db, referral=referral, order_id="order-1", order_amount=Decimal("5000")
        )

        assert event is None
        await db.refresh(referral)
        assert referral.status == ReferralStatus.PENDING


class TestExpiry:
    async def test_only_old_pending_referrals_expire(self, db, make_account, make_referral):
        referrer = await make_account(referral_code="exp123")
        old = await make_referral(referrer, await make_account(), created_at=utcnow() - timedelta(days=45))
        fresh = await make_referral(referrer, await make_account(), created_at=utcnow() - timedelta(days=2))
        old_qualified = await make_referral(
            referrer,
            await make_account(),
            status=ReferralStatus.QUALIFIED,
            created_at=utcnow() - timedelta(days=45),
            qualified_at=utcnow() - timedelta(days=40),
            order_id="order-9",
        )

        expired = await referral_service.expire_stale_referrals(db)

        assert expired == 1
        for referral in (old, fresh, old_qualified):
            await db.refresh(referral)
        assert old.status == ReferralStatus.EXPIRED
        assert old.expired_at is not None
        assert fresh.status == ReferralStatus.PENDING
        assert old_qualified.status == ReferralStatus.QUALIFIED


class TestReferralCodes:
    def test_code_from_name(self):
        code = referral_service.generate_referral_code("Ada Lovelace", "ada@example.com", set())
        assert re.fullmatch(r"adalove\d{3}", code)

    def test_code_from_email_when_name_missing(self):
        code = referral_service.generate_referral_code(None, "Chidi.O@example.com", set())
        assert re.fullmatch(r"chid\d{3}", code)

    def test_short_names_are_padded(self):
        code = referral_service.generate_referral_code("Al", "al@example.com", set())
        assert re.fullmatch(r"[a-z]{3,8}\d{3}", code)
        assert len(code) >= 6

    def test_collisions_avoided(self):
        taken = {f"adalove{n}" for n in range(100, 1000)}
        code = referral_service.generate_referral_code("Ada Lovelace", "ada@example.com", taken)
        assert code == "adalove1000"

    async def test_existing_code_never_changes(self, db, make_account):
        account = await make_account(full_name="Grace Hopper", referral_code="gracy001")
        assert await referral_service.ensure_referral_code(db, account=account) == "gracy001"

    async def test_generate_for_all(self, db, make_account):
        await make_account(full_name="Has Code", referral_code="hascode1")
        missing = [await make_account(full_name="Tunde Bakare"), await make_account(full_name="Ngozi Eze")]

        result = await referral_service.generate_missing_codes(db, generate_for_all=True)

        assert result.total_updated == 2
        assert {a.id for a in result.accounts} == {a.id for a in missing}
        codes = [a.referral_code for a in result.accounts]
        assert len(set(codes)) == 2
        assert all(len(c) <= 15 for c in codes)

    async def test_generate_requires_target(self, db):
        with pytest.raises(ValidationError):
            await referral_service.generate_missing_codes(db)


class TestMyReferrals:
    async def test_stats(self, db, make_account, make_referral):
        referrer = await make_account(full_name="Kemi Adebayo", referral_code="kemiadeb1")
        await make_referral(referrer, await make_account())
        await make_referral(referrer, await make_account(), status=ReferralStatus.QUALIFIED, order_id="o-1")
        await make_referral(referrer, await make_account(), status=ReferralStatus.EXPIRED)

        mine = await referral_service.get_my_referrals(db, account=referrer)

        assert mine.referral_code == "kemiadeb1"
        assert mine.referral_link.endswith("/signup?ref=kemiadeb1")
        assert mine.stats.total_referrals == 3
        assert mine.stats.pending_referrals == 2
        assert mine.stats.completed_referrals == 0
        assert mine.stats.total_earnings == 0
        assert all(r.referred_account is not None for r in mine.referrals)
