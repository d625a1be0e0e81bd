"""
Tests for the payment state machine
"""

from datetime import datetime

import pytest

from ledger.core.errors import PaymentStateError
from ledger.models import Member
from ledger.services.payment_state import (
    CheckoutInitiated, DelayRequested, Delayed, OnsiteCollected, Paid, PaymentConfirmed, PaymentFailed,
    Pending, Unpaid, advance, apply_state, is_settled, state_of, transition,
)

CONFIRMED_AT = datetime(2025, 11, 20, 10, 30)
CHECKOUT = CheckoutInitiated(checkout_id="chk_1", registration_tier="tier1", amount=500)
CONFIRMED = PaymentConfirmed(transaction_id="txn_1", confirmed_at=CONFIRMED_AT, amount=500)
COLLECTED = OnsiteCollected(payment_tier="non_member", amount=800, collected_at=CONFIRMED_AT)


def fresh_member():
    return Member(first_name="Ada", last_name="Lovelace", email="ada@example.com", payment_status="unpaid")


class TestTransition:
    def test_online_track(self):
        pending = transition(Unpaid(), CHECKOUT)
        assert pending == Pending(checkout_id="chk_1", registration_tier="tier1", amount=500)
        paid = transition(pending, CONFIRMED)
        assert isinstance(paid, Paid)
        assert paid.transaction_id == "txn_1"
        assert paid.checkout_id == "chk_1"
        assert paid.amount == 500

    def test_confirmation_without_amount_keeps_pending_amount(self):
        pending = transition(Unpaid(), CHECKOUT)
        paid = transition(pending, PaymentConfirmed(transaction_id=None, confirmed_at=CONFIRMED_AT))
        assert paid.amount == 500

    def test_on_site_track(self):
        assert transition(Unpaid(), DelayRequested(registration_tier="tier2")) == Delayed(registration_tier="tier2")

    def test_collection_at_the_door(self):
        paid = transition(Unpaid(), COLLECTED)
        assert paid == Paid(registration_tier=None, amount=800, method="on_site",
                            confirmed_at=CONFIRMED_AT, payment_tier="non_member")

    def test_collection_after_deferral_keeps_registration_tier(self):
        paid = transition(Delayed("tier2"), COLLECTED)
        assert paid.registration_tier == "tier2"
        assert paid.payment_tier == "non_member"
        assert paid.method == "on_site"

    def test_redelivered_confirmation_is_a_no_op(self):
        paid = transition(transition(Unpaid(), CHECKOUT), CONFIRMED)
        assert transition(paid, CONFIRMED) is paid

    def test_failure_keeps_pending(self):
        pending = transition(Unpaid(), CHECKOUT)
        assert transition(pending, PaymentFailed(reason="declined")) is pending

    @pytest.mark.parametrize("state,event", [
        (Unpaid(), CONFIRMED),
        (Unpaid(), PaymentFailed()),
        (Pending("chk_1", "tier1", 500), CHECKOUT),
        (Pending("chk_1", "tier1", 500), DelayRequested("tier1")),
        (Paid("tier1", 500), CHECKOUT),
        (Paid("tier1", 500), DelayRequested("tier1")),
        (Delayed("tier2"), CHECKOUT),
        (Delayed("tier2"), CONFIRMED),
        (Delayed("tier2"), DelayRequested("tier2")),
        (Pending("chk_1", "tier1", 500), COLLECTED),
        (Paid("tier1", 500), COLLECTED),
        (Paid("tier1", 500, method="on_site"), COLLECTED),
    ])
    def test_disallowed_moves(self, state, event):
        with pytest.raises(PaymentStateError):
            transition(state, event)


class TestMemberRow:
    def test_advance_through_online_track(self):
        member = fresh_member()
        advance(member, CHECKOUT)
        assert member.payment_status == "pending"
        assert member.payment_method == "online"
        assert member.checkout_id == "chk_1"
        assert member.registration_tier == "tier1"
        assert member.payment_amount is None

        advance(member, CONFIRMED)
        assert member.payment_status == "paid"
        assert member.payment_amount == 500
        assert member.transaction_id == "txn_1"
        assert member.payment_confirmed_at == CONFIRMED_AT
        assert is_settled(member)

    def test_paid_never_goes_back(self):
        member = fresh_member()
        advance(member, CHECKOUT)
        advance(member, CONFIRMED)
        for event in (CHECKOUT, DelayRequested("tier2"), PaymentFailed()):
            with pytest.raises(PaymentStateError):
                advance(member, event)
            assert member.payment_status == "paid"

    def test_delay_sets_on_site_method(self):
        member = fresh_member()
        advance(member, DelayRequested(registration_tier="tier2"))
        assert member.payment_status == "delayed"
        assert member.payment_method == "on_site"
        assert member.registration_tier == "tier2"
        assert not is_settled(member)

    def test_registration_tier_is_set_once(self):
        member = fresh_member()
        member.registration_tier = "tier1"
        advance(member, CheckoutInitiated(checkout_id="chk_9", registration_tier="tier2", amount=700))
        assert member.registration_tier == "tier1"

    def test_state_of_reads_row(self):
        member = fresh_member()
        assert state_of(member) == Unpaid()
        member.payment_status = None
        assert state_of(member) == Unpaid()
        member.payment_status = "delayed"
        member.registration_tier = "tier2"
        assert state_of(member) == Delayed(registration_tier="tier2")

    def test_cannot_write_unpaid(self):
        with pytest.raises(PaymentStateError):
            apply_state(fresh_member(), Unpaid())

    def test_collection_settles_the_row(self):
        member = fresh_member()
        advance(member, COLLECTED)
        assert member.payment_status == "paid"
        assert member.payment_method == "on_site"
        assert member.payment_tier == "non_member"
        assert member.payment_amount == 800
        assert member.payment_confirmed_at == CONFIRMED_AT
        assert is_settled(member)
        for event in (CHECKOUT, DelayRequested("tier2"), COLLECTED):
            with pytest.raises(PaymentStateError):
                advance(member, event)
