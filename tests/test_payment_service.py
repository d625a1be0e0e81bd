"""
Tests for the payment lifecycle tracker
"""

from datetime import datetime

import pytest

from ledger.core.errors import (
    ConfigurationError, NotFoundError, PaymentStateError, ValidationError,
)
from ledger.models import PaymentEvent
from ledger.services.payment_service import (
    EVENT_CHECKOUT_CREATED, EVENT_PAYMENT_COMPLETED, EVENT_PAYMENT_DELAYED, EVENT_PAYMENT_FAILED,
    PaymentService,
)
from ledger.services.settings_service import SettingsService

NOW = datetime(2025, 11, 1, 12, 0)


@pytest.fixture
def payments_on(db_session):
    SettingsService.update(db_session, {
        "payment_enabled": True,
        "registration_deadline": "2025-12-05",
        "tier1_cutoff_days": 7,
    })


def events(db, event_type=None):
    query = db.query(PaymentEvent)
    if event_type:
        query = query.filter(PaymentEvent.event_type == event_type)
    return query.order_by(PaymentEvent.id).all()


class TestPricingSummary:
    def test_summary_before_cutoff(self, db_session, payments_on):
        summary = PaymentService.pricing_summary(db_session, NOW)
        assert summary["enabled"] is True
        assert summary["currentTier"] == "tier1"
        assert summary["currentPrice"] == 500
        assert summary["tier1"]["priceFormatted"] == "5.00 €"
        assert summary["tier2"]["price"] == 700
        assert summary["daysUntilDeadline"] == 33

    def test_summary_without_deadline(self, db_session):
        summary = PaymentService.pricing_summary(db_session, NOW)
        assert summary["enabled"] is False
        assert summary["currentTier"] == "tier2"
        assert summary["registrationDeadline"] is None
        assert summary["daysUntilDeadline"] is None


class TestCheckout:
    def test_creates_pending_checkout(self, db_session, config, gateway, member, payments_on):
        result = PaymentService.initiate_checkout(db_session, member.id, gateway, config, NOW)

        assert result["checkoutId"] == "chk_1"
        assert result["amount"] == 500
        assert result["amountFormatted"] == "5.00 €"
        assert result["tier"] == "tier1"
        assert result["reference"].startswith(f"ndi-{member.id}-")

        created = gateway.created[0]
        assert created["amount_cents"] == 500
        assert created["currency"] == "EUR"
        assert created["return_url"] == "https://ndi.example.org/api/payment/callback"
        assert created["redirect_url"] == "https://ndi.example.org?payment=success"

        assert member.payment_status == "pending"
        assert member.checkout_id == "chk_1"
        assert member.registration_tier == "tier1"
        logged = events(db_session)
        assert [e.event_type for e in logged] == [EVENT_CHECKOUT_CREATED]
        assert logged[0].amount == 500

    def test_disabled_payments(self, db_session, config, gateway, member):
        with pytest.raises(ValidationError, match="disabled"):
            PaymentService.initiate_checkout(db_session, member.id, gateway, config, NOW)
        assert gateway.created == []

    def test_missing_gateway(self, db_session, config, member, payments_on):
        with pytest.raises(ConfigurationError):
            PaymentService.initiate_checkout(db_session, member.id, None, config, NOW)
        assert member.payment_status == "unpaid"

    def test_unknown_member(self, db_session, config, gateway, payments_on):
        with pytest.raises(NotFoundError):
            PaymentService.initiate_checkout(db_session, 9999, gateway, config, NOW)

    def test_second_checkout_refused(self, db_session, config, gateway, member, payments_on):
        PaymentService.initiate_checkout(db_session, member.id, gateway, config, NOW)
        with pytest.raises(PaymentStateError):
            PaymentService.initiate_checkout(db_session, member.id, gateway, config, NOW)
        assert len(gateway.created) == 1
        assert len(events(db_session)) == 1


class TestVerify:
    def checkout(self, db_session, config, gateway, member):
        return PaymentService.initiate_checkout(db_session, member.id, gateway, config, NOW)["checkoutId"]

    def test_paid(self, db_session, config, gateway, member, payments_on):
        checkout_id = self.checkout(db_session, config, gateway, member)
        gateway.statuses[checkout_id] = "PAID"

        result = PaymentService.verify_payment(db_session, checkout_id, gateway)

        assert result == {"success": True, "status": "paid", "amount": 500, "transactionId": f"txn_{checkout_id}"}
        assert member.payment_status == "paid"
        assert member.payment_tier == "tier1"
        assert member.payment_confirmed_at is not None
        assert len(events(db_session, EVENT_PAYMENT_COMPLETED)) == 1

    def test_verify_twice_logs_once(self, db_session, config, gateway, member, payments_on):
        checkout_id = self.checkout(db_session, config, gateway, member)
        gateway.statuses[checkout_id] = "PAID"
        PaymentService.verify_payment(db_session, checkout_id, gateway)
        result = PaymentService.verify_payment(db_session, checkout_id, gateway)
        assert result["status"] == "paid"
        assert len(events(db_session, EVENT_PAYMENT_COMPLETED)) == 1

    def test_failed_logs_event_without_status_change(self, db_session, config, gateway, member, payments_on):
        checkout_id = self.checkout(db_session, config, gateway, member)
        gateway.statuses[checkout_id] = "FAILED"

        result = PaymentService.verify_payment(db_session, checkout_id, gateway)

        assert result["status"] == "failed"
        assert member.payment_status == "pending"
        assert len(events(db_session, EVENT_PAYMENT_FAILED)) == 1

    @pytest.mark.parametrize("status,expected", [("EXPIRED", "expired"), ("PENDING", "pending")])
    def test_nothing_written_while_open(self, db_session, config, gateway, member, payments_on, status, expected):
        checkout_id = self.checkout(db_session, config, gateway, member)
        gateway.statuses[checkout_id] = status

        result = PaymentService.verify_payment(db_session, checkout_id, gateway)

        assert result["status"] == expected
        assert result["success"] is False
        assert member.payment_status == "pending"
        assert len(events(db_session)) == 1

    def test_requires_checkout_id(self, db_session, gateway):
        with pytest.raises(ValidationError):
            PaymentService.verify_payment(db_session, "", gateway)

    def test_unknown_checkout(self, db_session, gateway):
        with pytest.raises(NotFoundError):
            PaymentService.verify_payment(db_session, "chk_missing", gateway)


class TestCallback:
    def test_confirms_after_gateway_lookup(self, db_session, config, gateway, member, payments_on):
        checkout_id = PaymentService.initiate_checkout(db_session, member.id, gateway, config, NOW)["checkoutId"]
        gateway.statuses[checkout_id] = "PAID"

        result = PaymentService.handle_callback(db_session, {"id": checkout_id, "status": "PAID"}, gateway)

        assert result == {"received": True, "processed": True}
        assert member.payment_status == "paid"
        completed = events(db_session, EVENT_PAYMENT_COMPLETED)
        assert len(completed) == 1
        assert '"source": "webhook"' in completed[0].event_metadata

    def test_redelivery_is_harmless(self, db_session, config, gateway, member, payments_on):
        checkout_id = PaymentService.initiate_checkout(db_session, member.id, gateway, config, NOW)["checkoutId"]
        gateway.statuses[checkout_id] = "PAID"
        payload = {"id": checkout_id, "status": "PAID"}

        PaymentService.handle_callback(db_session, payload, gateway)
        PaymentService.handle_callback(db_session, payload, gateway)

        assert len(events(db_session, EVENT_PAYMENT_COMPLETED)) == 1
        assert gateway.lookups == 1

    def test_payload_alone_is_not_trusted(self, db_session, config, gateway, member, payments_on):
        checkout_id = PaymentService.initiate_checkout(db_session, member.id, gateway, config, NOW)["checkoutId"]

        result = PaymentService.handle_callback(db_session, {"id": checkout_id, "status": "PAID"}, gateway)

        assert result == {"received": True, "processed": False}
        assert member.payment_status == "pending"

    @pytest.mark.parametrize("payload", [
        {},
        {"checkout_reference": "ndi-1-0-abc"},
        {"id": "chk_unknown", "status": "PAID"},
        {"id": "chk_1", "status": "FAILED"},
    ])
    def test_always_acknowledged(self, db_session, gateway, payload):
        assert PaymentService.handle_callback(db_session, payload, gateway)["received"] is True


class TestDelayed:
    def test_marks_delayed(self, db_session, member, payments_on):
        result = PaymentService.mark_delayed(db_session, member.id, NOW)

        assert result == {"success": True, "status": "delayed", "tier": "tier1"}
        assert member.payment_status == "delayed"
        assert member.payment_method == "on_site"
        delayed = events(db_session)
        assert len(delayed) == 1
        assert delayed[0].event_type == EVENT_PAYMENT_DELAYED
        assert delayed[0].amount == 0

    def test_unknown_member(self, db_session):
        with pytest.raises(NotFoundError):
            PaymentService.mark_delayed(db_session, 9999, NOW)

    def test_not_after_paying(self, db_session, config, gateway, member, payments_on):
        checkout_id = PaymentService.initiate_checkout(db_session, member.id, gateway, config, NOW)["checkoutId"]
        gateway.statuses[checkout_id] = "PAID"
        PaymentService.verify_payment(db_session, checkout_id, gateway)

        with pytest.raises(PaymentStateError):
            PaymentService.mark_delayed(db_session, member.id, NOW)
        assert member.payment_status == "paid"


def test_admin_views(db_session, config, gateway, member, payments_on):
    checkout_id = PaymentService.initiate_checkout(db_session, member.id, gateway, config, NOW)["checkoutId"]
    assert [p["member_id"] for p in PaymentService.pending_payments(db_session)] == [member.id]

    gateway.statuses[checkout_id] = "PAID"
    PaymentService.verify_payment(db_session, checkout_id, gateway)

    view = PaymentService.member_payment(db_session, member.id)
    assert view["payment_status"] == "paid"
    assert [e["event_type"] for e in view["events"]] == [EVENT_PAYMENT_COMPLETED, EVENT_CHECKOUT_CREATED]

    totals = PaymentService.totals(db_session)
    assert totals["by_status"]["paid"] == {"count": 1, "amount": 500}
    assert totals["total_collected"] == 500
    assert totals["events_logged"] == 2
    assert len(PaymentService.list_events(db_session, limit=1)) == 1
