"""
Archive & retention manager

Yearly snapshots of teams, members and payment events, hashed with SHA-256,
dated for anonymization after the retention period, and the gated reset that
wipes the live dataset for the next event.
"""

import hashlib
import json
import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import extract, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger.core.config import Settings
from ledger.core.db import atomic, utcnow
from ledger.core.errors import ConfirmationError, DuplicateError, NoDataError, NotFoundError, ValidationError
from ledger.models import Archive, Member, PaymentEvent, Team, ORGANISATION_TEAM_NAME
from ledger.services.export_service import ExportService
from ledger.services.payment_state import METHOD_ON_SITE, METHOD_ONLINE
from ledger.services.settings_service import SettingsService
from ledger.services.team_directory import TeamDirectory

logger = logging.getLogger(__name__)

RESET_CONFIRMATION = "SUPPRIMER"
MIN_YEAR = 2000
MAX_YEAR = 2100


# -------- Snapshot helpers --------

def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _dumps(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))


def compute_data_hash(teams_blob: str, members_blob: str, payment_events_blob: str) -> str:
    digest = hashlib.sha256()
    for blob in (teams_blob, members_blob, payment_events_blob):
        digest.update(blob.encode("utf-8"))
    return digest.hexdigest()


def add_years(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        # 29 February in a non-leap target year
        return moment.replace(year=moment.year + years, day=28)


def snapshot_teams(db: Session) -> List[Dict[str, Any]]:
    rows = db.query(Team, func.count(Member.id)).outerjoin(
        Member, Member.team_id == Team.id
    ).group_by(Team.id).order_by(Team.name).all()
    return [
        {
            "id": team.id,
            "name": team.name,
            "description": team.description or "",
            "room": team.room,
            "created_at": _iso(team.created_at),
            "member_count": count,
        }
        for team, count in rows
    ]


def snapshot_members(db: Session) -> List[Dict[str, Any]]:
    members = db.query(Member).order_by(Member.team_id, Member.last_name, Member.first_name).all()
    return [
        {
            "id": m.id,
            "team_id": m.team_id,
            "first_name": m.first_name,
            "last_name": m.last_name,
            "email": m.email,
            "bac_level": m.bac_level,
            "is_leader": bool(m.is_leader),
            "food_diet": m.food_diet or "",
            "checked_in": bool(m.checked_in),
            "checked_in_at": _iso(m.checked_in_at),
            "pizza_received": bool(m.pizza_received),
            "created_at": _iso(m.created_at),
            "payment_status": m.payment_status,
            "payment_method": m.payment_method,
            "checkout_id": m.checkout_id,
            "transaction_id": m.transaction_id,
            "registration_tier": m.registration_tier,
            "payment_amount": m.payment_amount,
            "payment_confirmed_at": _iso(m.payment_confirmed_at),
            "payment_tier": m.payment_tier,
        }
        for m in members
    ]


def snapshot_payment_events(db: Session) -> List[Dict[str, Any]]:
    events = db.query(PaymentEvent).order_by(PaymentEvent.created_at, PaymentEvent.id).all()
    result = []
    for e in events:
        try:
            metadata = json.loads(e.event_metadata) if e.event_metadata else None
        except ValueError:
            metadata = e.event_metadata
        result.append({
            "id": e.id,
            "member_id": e.member_id,
            "checkout_id": e.checkout_id,
            "event_type": e.event_type,
            "amount": e.amount,
            "tier": e.tier,
            "metadata": metadata,
            "created_at": _iso(e.created_at),
        })
    return result


def is_collected(member: Dict[str, Any]) -> bool:
    if member.get("payment_status") == "paid":
        return True
    return member.get("payment_method") == METHOD_ON_SITE and bool(member.get("payment_tier"))


def calculate_stats(teams: List[Dict[str, Any]], members: List[Dict[str, Any]]) -> Dict[str, Any]:
    by_bac = Counter(str(m.get("bac_level") or 0) for m in members)
    food = Counter(m["food_diet"] for m in members if m.get("food_diet"))
    checked_in = sum(1 for m in members if m.get("checked_in"))
    paid = sum(1 for m in members if is_collected(m))
    paid_online = sum(
        1 for m in members if m.get("payment_method") == METHOD_ONLINE and m.get("payment_status") == "paid"
    )
    paid_onsite = sum(1 for m in members if m.get("payment_method") == METHOD_ON_SITE and is_collected(m))
    timeline = Counter(m["created_at"][:10] for m in members if m.get("created_at"))
    return {
        "total_teams": len(teams),
        "total_participants": len(members),
        "participants_by_bac_level": dict(sorted(by_bac.items())),
        "food_preferences": dict(food),
        "attendance": {"checked_in": checked_in, "no_show": len(members) - checked_in},
        "payments": {
            "total_revenue": sum(m.get("payment_amount") or 0 for m in members),
            "paid": paid,
            "unpaid": len(members) - paid,
            "paid_online": paid_online,
            "paid_onsite": paid_onsite,
        },
        "registration_timeline": dict(sorted(timeline.items())),
    }


def anonymize_members(members: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            **member,
            "first_name": "Participant",
            "last_name": "",
            "email": None,
            "checkout_id": None,
            "transaction_id": None,
        }
        for member in members
    ]


def anonymize_payment_events(events: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{**event, "checkout_id": None, "metadata": None} for event in events]


def archive_metadata(archive: Archive) -> Dict[str, Any]:
    return {
        "event_year": archive.event_year,
        "archived_at": _iso(archive.archived_at),
        "expiration_date": _iso(archive.expiration_date),
        "is_expired": bool(archive.is_expired),
        "total_teams": archive.total_teams,
        "total_participants": archive.total_participants,
        "total_revenue": archive.total_revenue,
        "data_hash": archive.data_hash,
    }


class ArchiveService:
    """Snapshots, retention and reset"""

    # -------- Event year --------

    @staticmethod
    def detect_event_year(db: Session, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        configured = SettingsService.get(db, "event_year")
        if configured:
            try:
                return int(configured)
            except ValueError:
                logger.warning(f"Ignoring unreadable event_year setting {configured!r}")

        year_col = extract("year", Member.created_at)
        month_col = extract("month", Member.created_at)
        row = db.query(year_col, month_col, func.count(Member.id).label("n")).group_by(
            year_col, month_col
        ).order_by(func.count(Member.id).desc()).first()
        if not row or row[0] is None:
            return now.year
        year, month = int(row[0]), int(row[1])
        # January registrations belong to the previous December's event
        return year - 1 if month == 1 else year

    @staticmethod
    def data_counts(db: Session) -> Dict[str, int]:
        return {
            "teams": db.query(Team).filter(Team.name != ORGANISATION_TEAM_NAME).count(),
            "members": db.query(Member).count(),
            "payments": db.query(PaymentEvent).count(),
        }

    # -------- Create --------

    @staticmethod
    def create_archive(db: Session, year: Optional[int] = None, now: Optional[datetime] = None) -> Archive:
        now = now or utcnow()
        with atomic(db):
            archive = ArchiveService._create(db, year, now)
        logger.info(
            f"Archive {archive.event_year} created: {archive.total_teams} teams, "
            f"{archive.total_participants} participants"
        )
        return archive

    @staticmethod
    def _create(db: Session, year: Optional[int], now: datetime) -> Archive:
        """Snapshot inside the caller's transaction"""
        if year is None:
            year = ArchiveService.detect_event_year(db, now)
        if isinstance(year, bool) or not isinstance(year, int) or not MIN_YEAR <= year <= MAX_YEAR:
            raise ValidationError("Invalid year")

        if db.query(Archive).filter(Archive.event_year == year).first():
            raise DuplicateError(f"Archive for {year} already exists")

        counts = ArchiveService.data_counts(db)
        if counts["teams"] == 0 and counts["members"] == 0:
            raise NoDataError("No data to archive")

        teams = snapshot_teams(db)
        members = snapshot_members(db)
        events = snapshot_payment_events(db)
        stats = calculate_stats(teams, members)

        teams_blob, members_blob, events_blob = _dumps(teams), _dumps(members), _dumps(events)
        retention_years = SettingsService.get_int(db, "gdpr_retention_years", 3)

        archive = Archive(
            event_year=year,
            archived_at=now,
            expiration_date=add_years(now, retention_years),
            is_expired=False,
            teams_blob=teams_blob,
            members_blob=members_blob,
            payment_events_blob=events_blob,
            stats_blob=_dumps(stats),
            total_teams=len(teams),
            total_participants=len(members),
            total_revenue=stats["payments"]["total_revenue"],
            data_hash=compute_data_hash(teams_blob, members_blob, events_blob),
        )
        db.add(archive)
        try:
            db.flush()
        except IntegrityError as exc:
            raise DuplicateError(f"Archive for {year} already exists") from exc
        return archive

    # -------- Read --------

    @staticmethod
    def list_archives(db: Session) -> List[Dict[str, Any]]:
        result = []
        for archive in db.query(Archive).order_by(Archive.event_year.desc()).all():
            item = archive_metadata(archive)
            item.pop("data_hash")
            item["stats"] = json.loads(archive.stats_blob) if archive.stats_blob else None
            result.append(item)
        return result

    @staticmethod
    def _load(db: Session, year: int, now: Optional[datetime]) -> Archive:
        ArchiveService.check_expiration(db, now=now, year=year)
        archive = db.query(Archive).filter(Archive.event_year == year).first()
        if not archive:
            raise NotFoundError("Archive")
        return archive

    @staticmethod
    def get_archive(db: Session, year: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Full archive; expiration for that year is applied first"""
        archive = ArchiveService._load(db, year, now)
        data = archive_metadata(archive)
        data.update({
            "teams": json.loads(archive.teams_blob),
            "members": json.loads(archive.members_blob),
            "payment_events": json.loads(archive.payment_events_blob or "[]"),
            "stats": json.loads(archive.stats_blob),
        })
        return data

    @staticmethod
    def export_archive(db: Session, year: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        archive = ArchiveService._load(db, year, now)
        return ExportService.archive_bundle(
            archive_metadata(archive),
            json.loads(archive.stats_blob),
            json.loads(archive.teams_blob),
            json.loads(archive.members_blob),
        )

    @staticmethod
    def export_archive_workbook(db: Session, year: int, now: Optional[datetime] = None) -> bytes:
        archive = ArchiveService._load(db, year, now)
        return ExportService.archive_workbook(
            json.loads(archive.stats_blob),
            json.loads(archive.teams_blob),
            json.loads(archive.members_blob),
        )

    @staticmethod
    def verify_integrity(archive: Archive) -> bool:
        return compute_data_hash(
            archive.teams_blob, archive.members_blob, archive.payment_events_blob
        ) == archive.data_hash

    # -------- Retention --------

    @staticmethod
    def check_expiration(db: Session, now: Optional[datetime] = None, year: Optional[int] = None) -> Dict[str, Any]:
        """Anonymize every archive past its expiration date; irreversible"""
        now = now or utcnow()
        details = []
        with atomic(db):
            query = db.query(Archive)
            if year is not None:
                query = query.filter(Archive.event_year == year)
            for archive in query.order_by(Archive.event_year).all():
                expired = archive.expiration_date <= now
                updated = False
                if expired and not archive.is_expired:
                    members = anonymize_members(json.loads(archive.members_blob))
                    events = anonymize_payment_events(json.loads(archive.payment_events_blob or "[]"))
                    archive.members_blob = _dumps(members)
                    archive.payment_events_blob = _dumps(events)
                    archive.data_hash = compute_data_hash(
                        archive.teams_blob, archive.members_blob, archive.payment_events_blob
                    )
                    archive.is_expired = True
                    updated = True
                    logger.info(f"Archive {archive.event_year} anonymized")
                details.append({"year": archive.event_year, "expired": expired, "updated": updated})

        return {
            "checked": len(details),
            "expired": sum(1 for d in details if d["expired"]),
            "updated": sum(1 for d in details if d["updated"]),
            "details": details,
        }

    # -------- Reset --------

    @staticmethod
    def reset_check(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
        year = ArchiveService.detect_event_year(db, now)
        archive_exists = db.query(Archive).filter(Archive.event_year == year).first() is not None
        counts = ArchiveService.data_counts(db)
        has_data = any(counts.values())
        if not has_data:
            message = "La base de données est vide."
        elif archive_exists:
            message = f"Une archive existe pour {year}. Vous pouvez réinitialiser en toute sécurité."
        else:
            message = f"Attention: Il y a des données non archivées pour {year}."
        return {
            "year": year,
            "archiveExists": archive_exists,
            "counts": counts,
            "has_data": has_data,
            "safe": archive_exists or not has_data,
            "message": message,
        }

    @staticmethod
    def reset(
        db: Session,
        confirmation: str,
        config: Settings,
        force: bool = False,
        create_archive_first: bool = False,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Wipe teams, members and payment events; Organisation is re-seeded."""
        if confirmation != RESET_CONFIRMATION:
            raise ConfirmationError(f'Confirmation required: type "{RESET_CONFIRMATION}"')

        now = now or utcnow()
        with atomic(db):
            check = ArchiveService.reset_check(db, now)
            year = check["year"]

            if not check["safe"] and not force and not create_archive_first:
                logger.warning(f"Reset refused: no archive for {year}")
                return {
                    "warning": "no_archive",
                    "message": f"No archive exists for {year}. Create one before resetting?",
                    "counts": check["counts"],
                    "year": year,
                }

            archive_created = False
            if create_archive_first and not check["archiveExists"] and check["has_data"]:
                ArchiveService._create(db, year, now)
                archive_created = True

            deleted = {
                "payments": db.query(PaymentEvent).delete(synchronize_session=False),
                "members": db.query(Member).delete(synchronize_session=False),
                "teams": db.query(Team).delete(synchronize_session=False),
            }
            db.expunge_all()
            TeamDirectory.ensure_organisation_team(db, config.ORGANISATION_PASSWORD)

        logger.info(
            f"Live data reset: {deleted['teams']} teams, {deleted['members']} members, "
            f"{deleted['payments']} payment events"
        )
        return {"success": True, "deleted": deleted, "archiveCreated": archive_created}
