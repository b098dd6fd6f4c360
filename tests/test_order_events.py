"""
Order-paid intake tests, including the end-to-end referral example: A shares
code ABC123, B signs up with it, and B's first paid order of 5000 earns A
1000 points and B a 500 point welcome bonus exactly once however often the
event is delivered.
"""
import asyncio
from decimal import Decimal

import pytest

from referral_ledger import crud, models
from referral_ledger.core.config import settings
from referral_ledger.core.errors import ReferralIneligible
from referral_ledger.models.enums import LedgerReason, NotificationType, ReferralStatus, RewardStatus
from referral_ledger.services import ledger_service, order_event_service, referral_service


async def _referred_pair(db, make_account):
    referrer = await make_account(full_name="Amaka Obi", referral_code="abc123")
    referred = await make_account(full_name="Bola Ade")
    await referral_service.link_referral(db, referral_code="ABC123", referred_account_id=referred.id)
    return referrer, referred


class TestHandleOrderPaid:
    async def test_first_order_rewards_referrer_once(self, db, make_account):
        referrer, referred = await _referred_pair(db, make_account)

        results = [
            await order_event_service.handle_order_paid(
                db, order_id="order-1", account_id=referred.id, amount=Decimal("5000")
            )
            for _ in range(3)
        ]

        assert all(r.referral_qualified for r in results)
        assert {r.referral_reward.id for r in results} == {results[0].referral_reward.id}
        assert results[0].referral_reward.amount == 1000
        assert results[0].referral_reward.beneficiary_id == referrer.id
        assert results[0].referral_reward.status == RewardStatus.ISSUED

        assert await ledger_service.get_balance(db, referrer.id) == 1000
        assert await crud.crud_ledger.count_entries(db, account_id=referrer.id) == 1
        referral = await crud.crud_referral.get_by_referred_account(db, account_id=referred.id)
        await db.refresh(referral)
        assert referral.status == ReferralStatus.REWARDED
        assert referral.qualifying_order_id == "order-1"
        await db.refresh(referrer)
        assert referrer.referral_count == 1
        assert referrer.total_referral_earnings == 1000

    async def test_buyer_earns_purchase_points_once(self, db, make_account):
        _, referred = await _referred_pair(db, make_account)

        for _ in range(2):
            result = await order_event_service.handle_order_paid(
                db, order_id="order-1", account_id=referred.id, amount=Decimal("5000")
            )

        assert result.purchase_reward.amount == 50
        assert result.purchase_reward.reason == LedgerReason.PURCHASE
        assert result.referred_reward.amount == 500
        assert await ledger_service.get_balance(db, referred.id) == 550

    async def test_notifications_sent_only_for_fresh_issuance(self, db, make_account):
        referrer, referred = await _referred_pair(db, make_account)

        for _ in range(2):
            await order_event_service.handle_order_paid(
                db, order_id="order-1", account_id=referred.id, amount=Decimal("5000")
            )

        referrer_notes = await crud.crud_notification.get_notifications_for_account(db, account_id=referrer.id)
        buyer_notes = await crud.crud_notification.get_notifications_for_account(db, account_id=referred.id)
        assert [n.type for n in referrer_notes] == [NotificationType.REFERRAL_REWARD_ISSUED.value]
        assert sorted(n.type for n in buyer_notes) == sorted(
            [NotificationType.PURCHASE_POINTS_EARNED.value, NotificationType.REFERRAL_BONUS_ISSUED.value]
        )

    async def test_later_orders_do_not_reward_referrer_again(self, db, make_account):
        referrer, referred = await _referred_pair(db, make_account)
        await order_event_service.handle_order_paid(
            db, order_id="order-1", account_id=referred.id, amount=Decimal("5000")
        )

        result = await order_event_service.handle_order_paid(
            db, order_id="order-2", account_id=referred.id, amount=Decimal("7000")
        )

        assert not result.referral_qualified
        assert result.referral_reward is None
        assert await ledger_service.get_balance(db, referrer.id) == 1000
        assert await ledger_service.get_balance(db, referred.id) == 620

    async def test_small_first_order_does_not_qualify(self, db, make_account):
        referrer, referred = await _referred_pair(db, make_account)

        result = await order_event_service.handle_order_paid(
            db, order_id="order-1", account_id=referred.id, amount=Decimal("800")
        )

        assert not result.referral_qualified
        assert result.purchase_reward.amount == 8
        assert await ledger_service.get_balance(db, referrer.id) == 0

    async def test_small_first_order_blocks_referral_for_good(self, db, make_account):
        referrer, referred = await _referred_pair(db, make_account)
        await order_event_service.handle_order_paid(
            db, order_id="order-1", account_id=referred.id, amount=Decimal("800")
        )

        result = await order_event_service.handle_order_paid(
            db, order_id="order-2", account_id=referred.id, amount=Decimal("5000")
        )

        assert not result.referral_qualified
        assert await ledger_service.get_balance(db, referrer.id) == 0

    async def test_code_cannot_be_linked_after_first_order(self, db, make_account):
        referrer = await make_account(full_name="Amaka Obi", referral_code="abc123")
        buyer = await make_account(full_name="Bola Ade")
        await order_event_service.handle_order_paid(
            db, order_id="old-1", account_id=buyer.id, amount=Decimal("8000")
        )

        with pytest.raises(ReferralIneligible):
            await referral_service.link_referral(db, referral_code="ABC123", referred_account_id=buyer.id)
        assert await crud.crud_referral.get_by_referred_account(db, account_id=buyer.id) is None
        assert await ledger_service.get_balance(db, referrer.id) == 0

    async def test_referred_bonus_can_be_disabled(self, db, make_account, monkeypatch):
        monkeypatch.setattr(settings, "REFERRED_BONUS_POINTS", 0)
        referrer, referred = await _referred_pair(db, make_account)

        result = await order_event_service.handle_order_paid(
            db, order_id="order-1", account_id=referred.id, amount=Decimal("5000")
        )

        assert result.referral_reward.amount == 1000
        assert result.referred_reward is None
        assert await ledger_service.get_balance(db, referred.id) == 50

    async def test_referred_bonus_keyed_by_referral_and_account(self, db, make_account):
        _, referred = await _referred_pair(db, make_account)

        result = await order_event_service.handle_order_paid(
            db, order_id="order-1", account_id=referred.id, amount=Decimal("5000")
        )

        referral = await crud.crud_referral.get_by_referred_account(db, account_id=referred.id)
        bonus = await crud.crud_reward.get_by_idempotency_key(
            db, idempotency_key=f"referral-qualified:{referral.id}:{referred.id}"
        )
        assert bonus.id == result.referred_reward.id
        assert bonus.beneficiary_id == referred.id
        assert bonus.reason == LedgerReason.REFERRAL_BONUS
        assert bonus.status == RewardStatus.ISSUED
        await db.refresh(referral)
        assert referral.status == ReferralStatus.REWARDED

    async def test_unreferred_buyer_only_earns_purchase_points(self, db, make_account):
        buyer = await make_account()

        result = await order_event_service.handle_order_paid(
            db, order_id="order-9", account_id=buyer.id, amount=Decimal("2599.50")
        )

        assert result.purchase_reward.amount == 25
        assert not result.referral_qualified


class TestConcurrentDelivery:
    async def test_racing_deliveries_notify_once(self, file_session_factory):
        async with file_session_factory() as setup:
            referrer = models.Account(email="amaka@example.com", full_name="Amaka Obi", referral_code="abc123")
            referred = models.Account(email="bola@example.com", full_name="Bola Ade")
            setup.add_all([referrer, referred])
            await setup.commit()
            await referral_service.link_referral(setup, referral_code="ABC123", referred_account_id=referred.id)
            referrer_id, referred_id = referrer.id, referred.id

        async def _deliver():
            async with file_session_factory() as session:
                return await order_event_service.handle_order_paid(
                    session, order_id="o1", account_id=referred_id, amount=Decimal("5000")
                )

        results = await asyncio.gather(*(_deliver() for _ in range(4)))

        assert len({r.referral_reward.id for r in results}) == 1
        async with file_session_factory() as check:
            referrer_notes = await crud.crud_notification.get_notifications_for_account(check, account_id=referrer_id)
            buyer_notes = await crud.crud_notification.get_notifications_for_account(check, account_id=referred_id)
            assert [n.type for n in referrer_notes] == [NotificationType.REFERRAL_REWARD_ISSUED.value]
            assert sorted(n.type for n in buyer_notes) == sorted(
                [NotificationType.PURCHASE_POINTS_EARNED.value, NotificationType.REFERRAL_BONUS_ISSUED.value]
            )
            assert await ledger_service.get_balance(check, referrer_id) == 1000
            assert await ledger_service.get_balance(check, referred_id) == 550


class TestOrderPaidEndpoint:
    async def test_requires_webhook_secret(self, client, make_account):
        buyer = await make_account()

        response = await client.post(
            "/api/v1/events/order-paid",
            json={"order_id": "order-1", "account_id": buyer.id, "amount": "5000"},
            headers={"X-Webhook-Secret": "wrong"},
        )

        assert response.status_code == 401
        assert response.json()["error"]["kind"] == "unauthorized"

    async def test_duplicate_delivery_is_idempotent(self, client, db, make_account, webhook_headers):
        referrer, referred = await _referred_pair(db, make_account)
        payload = {"order_id": "order-1", "account_id": referred.id, "amount": "5000"}

        first = await client.post("/api/v1/events/order-paid", json=payload, headers=webhook_headers)
        second = await client.post("/api/v1/events/order-paid", json=payload, headers=webhook_headers)

        assert first.status_code == 200
        assert second.status_code == 200
        assert first.json()["referral_reward"]["id"] == second.json()["referral_reward"]["id"]
        assert await ledger_service.get_balance(db, referrer.id) == 1000

    async def test_unknown_account(self, client, webhook_headers):
        response = await client.post(
            "/api/v1/events/order-paid",
            json={"order_id": "order-1", "account_id": 999, "amount": "5000"},
            headers=webhook_headers,
        )

        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "not_found"

    async def test_rejects_non_positive_amount(self, client, webhook_headers):
        response = await client.post(
            "/api/v1/events/order-paid",
            json={"order_id": "order-1", "account_id": 1, "amount": "0"},
            headers=webhook_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "validation_error"
