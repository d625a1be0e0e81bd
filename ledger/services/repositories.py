"""
Repository layer over the relational store.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from ledger.core.errors import NotFoundError
from ledger.models import Member, PaymentEvent, Team


# -------- Team repository --------

class TeamRepo:
    @staticmethod
    def list_with_counts(db: Session) -> List[Tuple[Team, int]]:
        rows = db.query(Team, func.count(Member.id)).outerjoin(
            Member, Member.team_id == Team.id
        ).group_by(Team.id).order_by(Team.created_at.desc(), Team.id.desc()).all()
        return [(team, count) for team, count in rows]

    @staticmethod
    def list_with_members(db: Session) -> List[Team]:
        return db.query(Team).order_by(Team.name).all()


# -------- Member repository --------

class MemberRepo:
    @staticmethod
    def get(db: Session, member_id: int) -> Optional[Member]:
        return db.query(Member).filter(Member.id == member_id).first()

    @staticmethod
    def get_or_404(db: Session, member_id: int) -> Member:
        member = MemberRepo.get(db, member_id)
        if not member:
            raise NotFoundError("Member")
        return member

    @staticmethod
    def get_for_update(db: Session, member_id: int) -> Optional[Member]:
        """Row lock on dialects that support it; SQLite already holds the write lock"""
        return db.query(Member).filter(Member.id == member_id).with_for_update().first()

    @staticmethod
    def get_by_checkout_id(db: Session, checkout_id: str, for_update: bool = False) -> Optional[Member]:
        query = db.query(Member).filter(Member.checkout_id == checkout_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def find_person(db: Session, first_name: str, last_name: str) -> Optional[Member]:
        return db.query(Member).filter(
            func.lower(Member.first_name) == first_name.lower(),
            func.lower(Member.last_name) == last_name.lower(),
        ).first()

    @staticmethod
    def list_all(db: Session) -> List[Member]:
        return db.query(Member).join(Team, Member.team_id == Team.id).order_by(
            Team.name, Member.last_name, Member.first_name
        ).all()

    @staticmethod
    def list_by_ids(db: Session, member_ids: Iterable[int]) -> List[Member]:
        ids = list(member_ids)
        if not ids:
            return []
        return db.query(Member).filter(Member.id.in_(ids)).all()

    @staticmethod
    def list_pending_payments(db: Session) -> List[Member]:
        return db.query(Member).filter(Member.payment_status == "pending").order_by(
            Member.created_at.desc()
        ).all()

    @staticmethod
    def payment_totals(db: Session) -> Dict[str, Dict[str, int]]:
        rows = db.query(
            Member.payment_status,
            func.count(Member.id),
            func.coalesce(func.sum(Member.payment_amount), 0),
        ).group_by(Member.payment_status).all()
        totals = {status: {"count": 0, "amount": 0} for status in ("unpaid", "pending", "paid", "delayed")}
        for status, count, amount in rows:
            totals[status] = {"count": count, "amount": int(amount or 0)}
        return totals


# -------- Payment event log (insert-only) --------

class PaymentEventRepo:
    @staticmethod
    def append(
        db: Session,
        member_id: int,
        event_type: str,
        amount: int,
        tier: str,
        checkout_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentEvent:
        event = PaymentEvent(
            member_id=member_id,
            checkout_id=checkout_id,
            event_type=event_type,
            amount=amount,
            tier=tier,
            event_metadata=json.dumps(metadata) if metadata else None,
        )
        db.add(event)
        db.flush()
        return event

    @staticmethod
    def list_for_member(db: Session, member_id: int) -> List[PaymentEvent]:
        return db.query(PaymentEvent).filter(PaymentEvent.member_id == member_id).order_by(
            PaymentEvent.created_at.desc(), PaymentEvent.id.desc()
        ).all()

    @staticmethod
    def list_for_checkout(db: Session, checkout_id: str) -> List[PaymentEvent]:
        return db.query(PaymentEvent).filter(PaymentEvent.checkout_id == checkout_id).order_by(
            PaymentEvent.created_at.desc(), PaymentEvent.id.desc()
        ).all()

    @staticmethod
    def list_recent(db: Session, limit: int = 100) -> List[PaymentEvent]:
        return db.query(PaymentEvent).order_by(
            PaymentEvent.created_at.desc(), PaymentEvent.id.desc()
        ).limit(limit).all()

    @staticmethod
    def count(db: Session) -> int:
        return db.query(func.count(PaymentEvent.id)).scalar() or 0
