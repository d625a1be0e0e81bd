"""
Payment state machine

Four entry points feed ``payment_status`` (online checkout, on-site
deferral, gateway callback, collection at the door). They all go through :func:`transition`, which
maps ``(state, event)`` to the next state or raises ``PaymentStateError``.

Tracks::

    online   Unpaid --CheckoutInitiated--> Pending --PaymentConfirmed--> Paid
    on-site  Unpaid --DelayRequested-----> Delayed --OnsiteCollected--> Paid
             Unpaid --OnsiteCollected---------------------------------> Paid

``PaymentFailed`` leaves a pending member pending; ``PaymentConfirmed`` on a
member that is already paid is a no-op so callback redelivery is safe.
Collection at the door is refused while an online checkout is open, and
a member paid either way can no longer start a checkout or defer.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from ledger.core.errors import PaymentStateError
from ledger.models import Member

METHOD_ONLINE = "online"
METHOD_ON_SITE = "on_site"


# -------- States --------

@dataclass(frozen=True)
class Unpaid:
    status = "unpaid"


@dataclass(frozen=True)
class Pending:
    checkout_id: str
    registration_tier: str
    amount: int
    status = "pending"


@dataclass(frozen=True)
class Paid:
    registration_tier: Optional[str]
    amount: Optional[int]
    method: str = METHOD_ONLINE
    checkout_id: Optional[str] = None
    transaction_id: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    payment_tier: Optional[str] = None
    status = "paid"


@dataclass(frozen=True)
class Delayed:
    registration_tier: str
    status = "delayed"


PaymentState = Union[Unpaid, Pending, Paid, Delayed]


# -------- Events --------

@dataclass(frozen=True)
class CheckoutInitiated:
    checkout_id: str
    registration_tier: str
    amount: int


@dataclass(frozen=True)
class PaymentConfirmed:
    transaction_id: Optional[str]
    confirmed_at: datetime
    amount: Optional[int] = None


@dataclass(frozen=True)
class PaymentFailed:
    reason: str = ""


@dataclass(frozen=True)
class DelayRequested:
    registration_tier: str


@dataclass(frozen=True)
class OnsiteCollected:
    payment_tier: str
    amount: int
    collected_at: datetime


PaymentTrigger = Union[CheckoutInitiated, PaymentConfirmed, PaymentFailed, DelayRequested, OnsiteCollected]


def transition(state: PaymentState, event: PaymentTrigger) -> PaymentState:
    """Next state for ``event``; disallowed moves raise PaymentStateError."""
    if isinstance(event, CheckoutInitiated):
        if isinstance(state, Unpaid):
            return Pending(
                checkout_id=event.checkout_id,
                registration_tier=event.registration_tier,
                amount=event.amount,
            )
    elif isinstance(event, PaymentConfirmed):
        if isinstance(state, Pending):
            return Paid(
                registration_tier=state.registration_tier,
                amount=event.amount if event.amount is not None else state.amount,
                method=METHOD_ONLINE,
                checkout_id=state.checkout_id,
                transaction_id=event.transaction_id,
                confirmed_at=event.confirmed_at,
                payment_tier=state.registration_tier,
            )
        if isinstance(state, Paid):
            return state
    elif isinstance(event, PaymentFailed):
        if isinstance(state, Pending):
            return state
    elif isinstance(event, DelayRequested):
        if isinstance(state, Unpaid):
            return Delayed(registration_tier=event.registration_tier)
    elif isinstance(event, OnsiteCollected):
        if isinstance(state, (Unpaid, Delayed)):
            return Paid(
                registration_tier=getattr(state, "registration_tier", None),
                amount=event.amount,
                method=METHOD_ON_SITE,
                confirmed_at=event.collected_at,
                payment_tier=event.payment_tier,
            )

    raise PaymentStateError(
        f"Cannot apply {type(event).__name__} to a {state.status} payment"
    )


def state_of(member: Member) -> PaymentState:
    """Read the tagged state back out of a member row"""
    status = member.payment_status or "unpaid"
    if status == "pending":
        return Pending(
            checkout_id=member.checkout_id or "",
            registration_tier=member.registration_tier or "",
            amount=member.payment_amount or 0,
        )
    if status == "paid":
        return Paid(
            registration_tier=member.registration_tier,
            amount=member.payment_amount,
            method=member.payment_method or METHOD_ONLINE,
            checkout_id=member.checkout_id,
            transaction_id=member.transaction_id,
            confirmed_at=member.payment_confirmed_at,
            payment_tier=member.payment_tier,
        )
    if status == "delayed":
        return Delayed(registration_tier=member.registration_tier or "")
    return Unpaid()


def apply_state(member: Member, state: PaymentState) -> None:
    """Write a state onto the member row. registration_tier is set once only."""
    if isinstance(state, Unpaid):
        raise PaymentStateError("A payment never returns to unpaid")

    member.payment_status = state.status
    if isinstance(state, Pending):
        member.payment_method = METHOD_ONLINE
        member.checkout_id = state.checkout_id
    elif isinstance(state, Paid):
        member.payment_method = state.method
        member.transaction_id = state.transaction_id
        member.payment_amount = state.amount
        member.payment_confirmed_at = state.confirmed_at
        if state.payment_tier:
            member.payment_tier = state.payment_tier
    elif isinstance(state, Delayed):
        member.payment_method = METHOD_ON_SITE

    if not member.registration_tier and getattr(state, "registration_tier", None):
        member.registration_tier = state.registration_tier


def advance(member: Member, event: PaymentTrigger) -> PaymentState:
    """Transition the member's current state and persist the result on the row"""
    current = state_of(member)
    nxt = transition(current, event)
    if nxt is not current:
        apply_state(member, nxt)
    return nxt


def is_settled(member: Member) -> bool:
    return (member.payment_status or "unpaid") == "paid"
