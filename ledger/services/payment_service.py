"""
Payment lifecycle tracker

Online track: checkout -> verify or callback. On-site track: mark delayed,
then collection at check-in. Each transition runs in one transaction that
locks the member row and appends exactly one PaymentEvent.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ledger.core.config import Settings
from ledger.core.db import atomic, utcnow
from ledger.core.errors import ConfigurationError, LedgerError, NotFoundError, ValidationError
from ledger.models import Member, PaymentEvent
from ledger.services.payment_state import (
    CheckoutInitiated, DelayRequested, PaymentConfirmed, PaymentFailed, Pending,
    advance, is_settled, state_of,
)
from ledger.services.pricing import (
    TIER1, TIER2, TIER_LABELS, calculate_tier, days_until, format_cents, tier_price,
)
from ledger.services.repositories import MemberRepo, PaymentEventRepo
from ledger.services.settings_service import SettingsService
from ledger.services.sumup_client import STATUS_PAID, SumUpClient, generate_checkout_reference

logger = logging.getLogger(__name__)

EVENT_CHECKOUT_CREATED = "checkout_created"
EVENT_PAYMENT_COMPLETED = "payment_completed"
EVENT_PAYMENT_FAILED = "payment_failed"
EVENT_PAYMENT_DELAYED = "payment_delayed"
EVENT_ONSITE_COLLECTED = "onsite_payment_collected"


def event_to_dict(event: PaymentEvent) -> Dict[str, Any]:
    metadata = None
    if event.event_metadata:
        try:
            metadata = json.loads(event.event_metadata)
        except ValueError:
            metadata = event.event_metadata
    return {
        "id": event.id,
        "member_id": event.member_id,
        "checkout_id": event.checkout_id,
        "event_type": event.event_type,
        "amount": event.amount,
        "tier": event.tier,
        "metadata": metadata,
        "created_at": event.created_at.isoformat() if event.created_at else None,
    }


def payment_view(member: Member) -> Dict[str, Any]:
    return {
        "member_id": member.id,
        "first_name": member.first_name,
        "last_name": member.last_name,
        "team_name": member.team.name if member.team else None,
        "payment_status": member.payment_status,
        "payment_method": member.payment_method,
        "checkout_id": member.checkout_id,
        "registration_tier": member.registration_tier,
        "payment_amount": member.payment_amount,
        "payment_tier": member.payment_tier,
        "payment_confirmed_at": member.payment_confirmed_at.isoformat() if member.payment_confirmed_at else None,
    }


class PaymentService:
    """Every public entry point into payment_status"""

    @staticmethod
    def pricing_summary(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        pricing = SettingsService.pricing(db)
        current_tier = calculate_tier(pricing.registration_deadline, pricing.tier1_cutoff_days, now)
        current_price = tier_price(current_tier, pricing.price_tier1, pricing.price_tier2)
        return {
            "enabled": pricing.payment_enabled,
            "currentTier": current_tier,
            "currentPrice": current_price,
            "currentPriceFormatted": format_cents(current_price),
            TIER1: {
                "price": pricing.price_tier1,
                "priceFormatted": format_cents(pricing.price_tier1),
                "label": TIER_LABELS[TIER1],
            },
            TIER2: {
                "price": pricing.price_tier2,
                "priceFormatted": format_cents(pricing.price_tier2),
                "label": TIER_LABELS[TIER2],
            },
            "tierCutoffDays": pricing.tier1_cutoff_days,
            "registrationDeadline": pricing.registration_deadline or None,
            "daysUntilDeadline": days_until(pricing.registration_deadline, now),
        }

    @staticmethod
    def initiate_checkout(
        db: Session,
        member_id: int,
        gateway: Optional[SumUpClient],
        config: Settings,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """unpaid -> pending. The gateway call happens while the row is locked."""
        now = now or utcnow()
        with atomic(db):
            member = MemberRepo.get_for_update(db, member_id)
            if not member:
                raise NotFoundError("Member")

            pricing = SettingsService.pricing(db)
            if not pricing.payment_enabled:
                raise ValidationError("Online payments are currently disabled")
            if member.payment_status != "unpaid":
                # let the state machine produce the refusal
                advance(member, CheckoutInitiated(checkout_id="", registration_tier="", amount=0))
            if gateway is None:
                raise ConfigurationError("Payment gateway credentials are not configured")

            tier = member.registration_tier or calculate_tier(
                pricing.registration_deadline, pricing.tier1_cutoff_days, now
            )
            amount = tier_price(tier, pricing.price_tier1, pricing.price_tier2)
            reference = generate_checkout_reference(member.id)

            checkout = gateway.create_checkout(
                checkout_reference=reference,
                amount_cents=amount,
                currency=config.PAYMENT_CURRENCY,
                description=f"NDI - {member.first_name} {member.last_name}",
                return_url=f"{config.SITE_URL.rstrip('/')}/api/payment/callback",
                redirect_url=f"{config.SITE_URL.rstrip('/')}?payment=success",
            )

            advance(member, CheckoutInitiated(checkout_id=checkout.id, registration_tier=tier, amount=amount))
            PaymentEventRepo.append(
                db, member.id, EVENT_CHECKOUT_CREATED, amount, tier,
                checkout_id=checkout.id,
                metadata={"checkout_reference": reference},
            )

        logger.info(f"Checkout {checkout.id} created for member {member_id} ({tier})")
        return {
            "checkoutId": checkout.id,
            "amount": amount,
            "amountFormatted": format_cents(amount),
            "tier": tier,
            "reference": reference,
        }

    @staticmethod
    def _confirm(db: Session, member: Member, checkout_id: str, transaction_id: Optional[str],
                 amount: Optional[int], source: str) -> None:
        if amount is None:
            pricing = SettingsService.pricing(db)
            amount = tier_price(member.registration_tier, pricing.price_tier1, pricing.price_tier2)
        advance(member, PaymentConfirmed(transaction_id=transaction_id, confirmed_at=utcnow(), amount=amount))
        metadata = {"transaction_id": transaction_id}
        if source != "verify":
            metadata["source"] = source
        PaymentEventRepo.append(
            db, member.id, EVENT_PAYMENT_COMPLETED,
            member.payment_amount or 0, member.registration_tier or TIER2,
            checkout_id=checkout_id,
            metadata=metadata,
        )

    @staticmethod
    def verify_payment(db: Session, checkout_id: str, gateway: Optional[SumUpClient]) -> Dict[str, Any]:
        if not checkout_id:
            raise ValidationError("checkoutId is required")

        with atomic(db):
            member = MemberRepo.get_by_checkout_id(db, checkout_id, for_update=True)
            if not member:
                raise NotFoundError("Checkout")
            if gateway is None:
                raise ConfigurationError("Payment gateway credentials are not configured")

            checkout = gateway.get_checkout(checkout_id)

            if checkout.is_paid:
                if not is_settled(member):
                    PaymentService._confirm(
                        db, member, checkout_id, checkout.transaction_id, checkout.amount_cents, "verify"
                    )
                    logger.info(f"Member {member.id} paid online (checkout {checkout_id})")
                return {
                    "success": True,
                    "status": "paid",
                    "amount": member.payment_amount,
                    "transactionId": member.transaction_id,
                }

            if checkout.is_failed:
                if isinstance(state_of(member), Pending):
                    advance(member, PaymentFailed(reason="gateway reported FAILED"))
                    PaymentEventRepo.append(
                        db, member.id, EVENT_PAYMENT_FAILED,
                        checkout.amount_cents or 0, member.registration_tier or TIER2,
                        checkout_id=checkout_id,
                    )
                    logger.info(f"Checkout {checkout_id} failed for member {member.id}")
                return {"success": False, "status": "failed", "error": "Payment failed"}

        if checkout.is_expired:
            return {"success": False, "status": "expired", "error": "Checkout expired"}
        return {"success": False, "status": "pending", "message": "Payment not yet completed"}

    @staticmethod
    def handle_callback(db: Session, payload: Dict[str, Any], gateway: Optional[SumUpClient]) -> Dict[str, Any]:
        """Webhook entry point. Always acknowledges; redelivery is harmless."""
        checkout_id = payload.get("id") or payload.get("checkout_id")
        if not checkout_id:
            return {"received": True}

        status = payload.get("status")
        if status and str(status).upper() != STATUS_PAID:
            logger.info(f"Callback for checkout {checkout_id} ignored (status {status})")
            return {"received": True, "processed": False}

        try:
            with atomic(db):
                member = MemberRepo.get_by_checkout_id(db, checkout_id, for_update=True)
                if not member:
                    logger.warning(f"Callback for unknown checkout {checkout_id} acknowledged")
                    return {"received": True, "processed": False}
                if is_settled(member):
                    return {"received": True, "processed": True}
                if gateway is None:
                    logger.warning(f"Callback for checkout {checkout_id} not verified: gateway not configured")
                    return {"received": True, "processed": False}

                # never trust the payload alone
                checkout = gateway.get_checkout(checkout_id)
                if not checkout.is_paid:
                    return {"received": True, "processed": False}

                PaymentService._confirm(
                    db, member, checkout_id, checkout.transaction_id, checkout.amount_cents, "webhook"
                )
                logger.info(f"Member {member.id} paid online via callback (checkout {checkout_id})")
        except LedgerError as e:
            logger.error(f"Callback for checkout {checkout_id} failed: {e.message}")
            return {"received": True, "processed": False, "error": e.message}

        return {"received": True, "processed": True}

    @staticmethod
    def mark_delayed(db: Session, member_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """unpaid -> delayed; the member settles at the door"""
        now = now or utcnow()
        with atomic(db):
            member = MemberRepo.get_for_update(db, member_id)
            if not member:
                raise NotFoundError("Member")

            pricing = SettingsService.pricing(db)
            tier = member.registration_tier or calculate_tier(
                pricing.registration_deadline, pricing.tier1_cutoff_days, now
            )
            advance(member, DelayRequested(registration_tier=tier))
            PaymentEventRepo.append(db, member.id, EVENT_PAYMENT_DELAYED, 0, tier)

        logger.info(f"Member {member_id} will pay on site ({tier})")
        return {"success": True, "status": "delayed", "tier": tier}

    # -------- Admin views --------

    @staticmethod
    def list_events(db: Session, limit: int = 100) -> List[Dict[str, Any]]:
        return [event_to_dict(e) for e in PaymentEventRepo.list_recent(db, limit)]

    @staticmethod
    def member_payment(db: Session, member_id: int) -> Dict[str, Any]:
        member = MemberRepo.get_or_404(db, member_id)
        view = payment_view(member)
        view["events"] = [event_to_dict(e) for e in PaymentEventRepo.list_for_member(db, member_id)]
        return view

    @staticmethod
    def pending_payments(db: Session) -> List[Dict[str, Any]]:
        return [payment_view(m) for m in MemberRepo.list_pending_payments(db)]

    @staticmethod
    def totals(db: Session) -> Dict[str, Any]:
        by_status = MemberRepo.payment_totals(db)
        return {
            "by_status": by_status,
            "total_collected": sum(v["amount"] for v in by_status.values()),
            "events_logged": PaymentEventRepo.count(db),
        }
