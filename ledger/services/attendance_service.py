"""
Attendance recorder - check-in/out, pizza distribution and room assignment
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ledger.core.db import atomic, utcnow
from ledger.core.errors import NotFoundError, PaymentStateError, ValidationError
from ledger.models import Member, Team
from ledger.services.payment_service import EVENT_ONSITE_COLLECTED
from ledger.services.payment_state import METHOD_ON_SITE, OnsiteCollected, Pending, advance, is_settled, state_of
from ledger.services.pricing import (
    DEFAULT_EVENT_TIMEZONE, ONSITE_ASSO_MEMBER, ONSITE_LATE, ONSITE_NON_MEMBER, ONSITE_ORGANISATION,
    available_onsite_tiers, onsite_price,
)
from ledger.services.repositories import MemberRepo, PaymentEventRepo
from ledger.services.settings_service import SettingsService
from ledger.services.team_directory import TeamDirectory
from ledger.services.team_service import member_to_dict, team_to_dict

logger = logging.getLogger(__name__)

ROOM_MAX_LENGTH = 50


def _require_ids(member_ids: List[int]) -> None:
    if not member_ids:
        raise ValidationError("memberIds array is required")


def can_skip_payment(member: Member) -> bool:
    """Nothing left to collect: paid online, or already collected at the door"""
    return is_settled(member)


class AttendanceService:
    """Admin-side event-day operations"""

    # -------- Check-in --------

    @staticmethod
    def onsite_options(db: Session, now: Optional[datetime] = None,
                       event_timezone: str = DEFAULT_EVENT_TIMEZONE) -> Dict[str, Any]:
        now = now or utcnow()
        pricing = SettingsService.pricing(db)
        tiers = available_onsite_tiers(pricing.late_cutoff_time, now, include_organisation=True,
                                       event_timezone=event_timezone)
        return {
            "late_cutoff_time": pricing.late_cutoff_time,
            "tiers": [{"tier": t, "price": onsite_price(t, pricing.onsite_prices)} for t in tiers],
        }

    @staticmethod
    def check_in(
        db: Session,
        member_id: int,
        payment_tier: Optional[str] = None,
        payment_amount: Optional[int] = None,
        skip_payment: bool = False,
        now: Optional[datetime] = None,
        event_timezone: str = DEFAULT_EVENT_TIMEZONE,
    ) -> Member:
        now = now or utcnow()
        with atomic(db):
            member = MemberRepo.get_for_update(db, member_id)
            if not member:
                raise NotFoundError("Member")

            if skip_payment:
                if not can_skip_payment(member):
                    raise ValidationError("Payment must be collected on site before check-in")
            else:
                AttendanceService._collect(db, member, payment_tier, payment_amount, now, event_timezone)

            member.checked_in = True
            member.checked_in_at = now

        logger.info(f"Member {member_id} checked in")
        return member

    @staticmethod
    def _collect(db: Session, member: Member, payment_tier: Optional[str],
                 payment_amount: Optional[int], now: datetime, event_timezone: str) -> None:
        if is_settled(member):
            if member.payment_method == METHOD_ON_SITE:
                raise PaymentStateError("Payment already collected on site")
            raise PaymentStateError("Member already paid online")
        if isinstance(state_of(member), Pending):
            raise PaymentStateError("An online checkout is in progress; verify it before collecting on site")

        pricing = SettingsService.pricing(db)
        allowed = available_onsite_tiers(pricing.late_cutoff_time, now, include_organisation=True,
                                         event_timezone=event_timezone)
        if payment_tier not in allowed:
            raise ValidationError(
                f"Invalid payment tier. Available now: {', '.join(allowed)}",
                errors=allowed,
            )
        if payment_amount is None:
            payment_amount = onsite_price(payment_tier, pricing.onsite_prices)
        if isinstance(payment_amount, bool) or not isinstance(payment_amount, int) or payment_amount < 0:
            raise ValidationError("Payment amount must be a non-negative integer (cents)")

        advance(member, OnsiteCollected(payment_tier=payment_tier, amount=payment_amount, collected_at=now))
        PaymentEventRepo.append(db, member.id, EVENT_ONSITE_COLLECTED, payment_amount, payment_tier)
        logger.info(f"Collected {payment_amount} cents on site from member {member.id} ({payment_tier})")

    @staticmethod
    def check_out(db: Session, member_id: int) -> Member:
        """Attendance only; payment fields are left as they are"""
        with atomic(db):
            member = MemberRepo.get_or_404(db, member_id)
            member.checked_in = False
            member.checked_in_at = None
        logger.info(f"Member {member_id} checked out")
        return member

    @staticmethod
    def check_in_batch(db: Session, member_ids: List[int], now: Optional[datetime] = None) -> Dict[str, Any]:
        """Members with something left to pay are skipped; they go through single check-in"""
        _require_ids(member_ids)
        now = now or utcnow()
        checked_in, skipped = 0, []
        with atomic(db):
            for member in MemberRepo.list_by_ids(db, member_ids):
                if not can_skip_payment(member):
                    skipped.append(member.id)
                    continue
                if not member.checked_in:
                    member.checked_in = True
                    member.checked_in_at = now
                    checked_in += 1
        logger.info(f"Batch check-in: {checked_in} member(s), {len(skipped)} awaiting payment")
        return {"checked_in": checked_in, "skipped": skipped}

    @staticmethod
    def check_out_batch(db: Session, member_ids: List[int]) -> int:
        _require_ids(member_ids)
        count = 0
        with atomic(db):
            for member in MemberRepo.list_by_ids(db, member_ids):
                if member.checked_in:
                    member.checked_in = False
                    member.checked_in_at = None
                    count += 1
        logger.info(f"Batch check-out: {count} member(s)")
        return count

    @staticmethod
    def attendance_overview(db: Session) -> Dict[str, Any]:
        members = MemberRepo.list_all(db)
        by_tier = {t: {"count": 0, "revenue": 0} for t in
                   (ONSITE_ASSO_MEMBER, ONSITE_NON_MEMBER, ONSITE_LATE, ONSITE_ORGANISATION)}
        for member in members:
            if member.payment_tier in by_tier:
                by_tier[member.payment_tier]["count"] += 1
                by_tier[member.payment_tier]["revenue"] += member.payment_amount or 0
        checked_in = sum(1 for m in members if m.checked_in)
        return {
            "members": [member_to_dict(m) for m in members],
            "stats": {
                "total": len(members),
                "checked_in": checked_in,
                "not_checked_in": len(members) - checked_in,
                "payment": {
                    "total_paid": sum(v["count"] for v in by_tier.values()),
                    "total_revenue": sum(v["revenue"] for v in by_tier.values()),
                    "by_tier": by_tier,
                },
            },
        }

    # -------- Pizza --------

    @staticmethod
    def set_pizza(db: Session, member_id: int, received: bool, now: Optional[datetime] = None) -> Member:
        with atomic(db):
            member = MemberRepo.get_or_404(db, member_id)
            member.pizza_received = received
            member.pizza_received_at = (now or utcnow()) if received else None
        logger.info(f"Pizza {'given to' if received else 'revoked from'} member {member_id}")
        return member

    @staticmethod
    def set_pizza_batch(db: Session, member_ids: List[int], received: bool,
                        now: Optional[datetime] = None) -> int:
        _require_ids(member_ids)
        now = now or utcnow()
        count = 0
        with atomic(db):
            for member in MemberRepo.list_by_ids(db, member_ids):
                if bool(member.pizza_received) != received:
                    member.pizza_received = received
                    member.pizza_received_at = now if received else None
                    count += 1
        return count

    @staticmethod
    def pizza_overview(db: Session) -> Dict[str, Any]:
        members = MemberRepo.list_all(db)
        by_pizza: Dict[str, Dict[str, int]] = defaultdict(lambda: {"total": 0, "given": 0})
        for member in members:
            diet = member.food_diet or "none"
            by_pizza[diet]["total"] += 1
            if member.pizza_received:
                by_pizza[diet]["given"] += 1
        given = sum(1 for m in members if m.pizza_received)
        return {
            "members": [member_to_dict(m, include_payment=False) for m in members],
            "stats": {
                "total": len(members),
                "received": given,
                "pending": len(members) - given,
                "by_pizza": [
                    {"pizza": pizza, "total": c["total"], "given": c["given"], "remaining": c["total"] - c["given"]}
                    for pizza, c in sorted(by_pizza.items())
                ],
            },
        }

    # -------- Rooms --------

    @staticmethod
    def _clean_room(room: Optional[str]) -> Optional[str]:
        if room is None:
            return None
        if not isinstance(room, str):
            raise ValidationError("Room must be a string")
        room = room.strip()
        if len(room) > ROOM_MAX_LENGTH:
            raise ValidationError(f"Room name must be at most {ROOM_MAX_LENGTH} characters")
        return room or None

    @staticmethod
    def set_room(db: Session, team_id: int, room: Optional[str]) -> Team:
        room = AttendanceService._clean_room(room)
        with atomic(db):
            team = TeamDirectory.get_or_404(db, team_id)
            team.room = room
        logger.info(f"Team {team_id} room {'set to ' + room if room else 'cleared'}")
        return team

    @staticmethod
    def set_rooms_batch(db: Session, team_ids: List[int], room: Optional[str]) -> int:
        if not team_ids:
            raise ValidationError("teamIds array is required")
        room = AttendanceService._clean_room(room)
        with atomic(db):
            teams = db.query(Team).filter(Team.id.in_(team_ids)).all()
            for team in teams:
                team.room = room
        return len(teams)

    @staticmethod
    def room_overview(db: Session) -> Dict[str, Any]:
        teams = db.query(Team).order_by(Team.room, Team.name).all()
        by_room: Dict[str, Dict[str, int]] = defaultdict(lambda: {"teams": 0, "members": 0})
        unassigned = 0
        items = []
        for team in teams:
            item = team_to_dict(team)
            item["member_count"] = len(team.members)
            items.append(item)
            if team.room:
                by_room[team.room]["teams"] += 1
                by_room[team.room]["members"] += len(team.members)
            else:
                unassigned += 1
        return {
            "teams": items,
            "stats": {
                "total_teams": len(teams),
                "assigned_teams": len(teams) - unassigned,
                "unassigned_teams": unassigned,
                "by_room": [{"room": room, **counts} for room, counts in sorted(by_room.items())],
            },
            "rooms": sorted(by_room),
        }
