"""
Team and member views, statistics and admin CRUD
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger.core.config import Settings
from ledger.core.db import atomic
from ledger.core.errors import AuthError, DuplicateError, ValidationError
from ledger.models import Member, Team
from ledger.schemas.member import MemberCreate, MemberUpdate
from ledger.schemas.team import TeamCreate, TeamUpdate
from ledger.services.capacity import count_participants
from ledger.services.repositories import MemberRepo, TeamRepo
from ledger.services.settings_service import SettingsService
from ledger.services.team_directory import TeamDirectory, check_password, hash_password
from ledger.utils.validation import (
    is_valid_email, parse_bac_level, sanitize_string, validate_team_name,
)

logger = logging.getLogger(__name__)

MEMBER_UPDATE_FIELDS = ("first_name", "last_name", "email", "bac_level", "is_leader", "food_diet", "team_id")


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def member_to_dict(member: Member, include_payment: bool = True) -> Dict[str, Any]:
    data = {
        "id": member.id,
        "team_id": member.team_id,
        "team_name": member.team.name if member.team else None,
        "first_name": member.first_name,
        "last_name": member.last_name,
        "email": member.email,
        "bac_level": member.bac_level,
        "is_leader": bool(member.is_leader),
        "food_diet": member.food_diet or "",
        "checked_in": bool(member.checked_in),
        "checked_in_at": _iso(member.checked_in_at),
        "pizza_received": bool(member.pizza_received),
        "pizza_received_at": _iso(member.pizza_received_at),
        "created_at": _iso(member.created_at),
    }
    if include_payment:
        data.update({
            "payment_status": member.payment_status,
            "payment_method": member.payment_method,
            "registration_tier": member.registration_tier,
            "payment_amount": member.payment_amount,
            "payment_tier": member.payment_tier,
            "payment_confirmed_at": _iso(member.payment_confirmed_at),
        })
    return data


def team_to_dict(team: Team) -> Dict[str, Any]:
    return {
        "id": team.id,
        "name": team.name,
        "description": team.description or "",
        "room": team.room,
        "created_at": _iso(team.created_at),
    }


def food_preferences(db: Session) -> Dict[str, int]:
    counts = Counter(
        (diet or "none") for (diet,) in db.query(Member.food_diet).all()
    )
    return dict(counts)


class TeamService:
    """Read side of the team directory plus admin maintenance"""

    # -------- Public --------

    @staticmethod
    def public_config(db: Session, config: Settings) -> Dict[str, Any]:
        capacity = SettingsService.capacity(db, config)
        return {
            "pizzas": SettingsService.get_json(db, "pizzas") or [],
            "bacLevels": SettingsService.get_json(db, "bac_levels") or [],
            "maxTeamSize": capacity.max_team_size,
            "maxTotalParticipants": capacity.max_total_participants,
            "minTeamSize": capacity.min_team_size,
        }

    @staticmethod
    def list_teams(db: Session, config: Settings) -> List[Dict[str, Any]]:
        max_team_size = SettingsService.capacity(db, config).max_team_size
        teams = []
        for team, member_count in TeamRepo.list_with_counts(db):
            is_org = team.is_organisation
            item = team_to_dict(team)
            item.update({
                "member_count": member_count,
                "available_slots": None if is_org else max(0, max_team_size - member_count),
                "is_full": (not is_org) and member_count >= max_team_size,
                "is_organisation": is_org,
            })
            teams.append(item)
        return teams

    @staticmethod
    def get_team(db: Session, team_id: int) -> Dict[str, Any]:
        """Public team card: names only, never emails or the password hash"""
        team = TeamDirectory.get_or_404(db, team_id)
        data = team_to_dict(team)
        data["members"] = [
            {
                "id": m.id,
                "first_name": m.first_name,
                "last_name": m.last_name,
                "is_leader": bool(m.is_leader),
            }
            for m in team.members
        ]
        return data

    @staticmethod
    def view_team_members(db: Session, team_id: int, password: str) -> Dict[str, Any]:
        if not password:
            raise ValidationError("Password is required")
        team = TeamDirectory.get_or_404(db, team_id)
        if not check_password(password, team.password_hash):
            raise AuthError("Incorrect password", status_code=403)
        data = team_to_dict(team)
        data["members"] = [
            {
                "id": m.id,
                "firstName": m.first_name,
                "lastName": m.last_name,
                "email": m.email,
                "bacLevel": m.bac_level,
                "isLeader": bool(m.is_leader),
                "foodDiet": m.food_diet or "",
            }
            for m in team.members
        ]
        return data

    @staticmethod
    def public_stats(db: Session, config: Settings) -> Dict[str, Any]:
        max_total = SettingsService.capacity(db, config).max_total_participants
        participants = count_participants(db)
        teams = sum(1 for team, _ in TeamRepo.list_with_counts(db) if not team.is_organisation)
        return {
            "total_teams": teams,
            "total_participants": participants,
            "max_participants": max_total,
            "available_spots": max(0, max_total - participants),
            "food_preferences": food_preferences(db),
        }

    @staticmethod
    def admin_stats(db: Session, config: Settings) -> Dict[str, Any]:
        stats = TeamService.public_stats(db, config)
        levels = Counter(level for (level,) in db.query(Member.bac_level).all())
        stats["bac_levels"] = {str(level): count for level, count in sorted(levels.items(), key=lambda kv: kv[0] or 0)}
        stats["checked_in"] = db.query(Member).filter(Member.checked_in.is_(True)).count()
        return stats

    # -------- Admin: teams --------

    @staticmethod
    def list_teams_with_members(db: Session) -> List[Dict[str, Any]]:
        result = []
        for team in TeamRepo.list_with_members(db):
            item = team_to_dict(team)
            item["members"] = [member_to_dict(m) for m in team.members]
            item["member_count"] = len(team.members)
            result.append(item)
        return result

    @staticmethod
    def create_team(db: Session, payload: TeamCreate) -> Team:
        name, error = validate_team_name(payload.name)
        if error:
            raise ValidationError(error)
        with atomic(db):
            team = TeamDirectory.create_team(
                db, name, sanitize_string(payload.description, 256), sanitize_string(payload.password, 64)
            )
        return team

    @staticmethod
    def update_team(db: Session, team_id: int, payload: TeamUpdate) -> Team:
        with atomic(db):
            team = TeamDirectory.get_or_404(db, team_id)
            if payload.name is not None:
                name, error = validate_team_name(payload.name)
                if error:
                    raise ValidationError(error)
                if team.is_organisation and name != team.name:
                    raise AuthError("Cannot rename Organisation team", status_code=403)
                existing = TeamDirectory.find_by_name(db, name)
                if existing and existing.id != team.id:
                    raise DuplicateError("Team name already exists")
                team.name = name
            if payload.description is not None:
                team.description = sanitize_string(payload.description, 256)
            if payload.password:
                team.password_hash = hash_password(sanitize_string(payload.password, 64))
            try:
                db.flush()
            except IntegrityError as exc:
                raise DuplicateError("Team name already exists") from exc
        logger.info(f"Team {team_id} updated")
        return team

    @staticmethod
    def delete_team(db: Session, team_id: int) -> Dict[str, Any]:
        with atomic(db):
            team = TeamDirectory.get_or_404(db, team_id)
            if team.is_organisation:
                raise AuthError("Cannot delete Organisation team", status_code=403)
            member_count = len(team.members)
            name = team.name
            db.delete(team)
        logger.info(f"Team {team_id} deleted with {member_count} member(s)")
        return {"name": name, "members_deleted": member_count}

    # -------- Admin: members --------

    @staticmethod
    def list_members(db: Session) -> List[Dict[str, Any]]:
        return [member_to_dict(m) for m in MemberRepo.list_all(db)]

    @staticmethod
    def add_member(db: Session, payload: MemberCreate) -> Member:
        """Manual insertion: no team password, no capacity check"""
        first_name = sanitize_string(payload.first_name, 128)
        last_name = sanitize_string(payload.last_name, 128)
        email = sanitize_string(payload.email, 256).lower()
        if not first_name or not last_name or not email:
            raise ValidationError("Missing required fields: teamId, firstName, lastName, email")
        if not is_valid_email(email):
            raise ValidationError("Invalid email format")
        bac_level = parse_bac_level(payload.bac_level)
        if bac_level is None:
            raise ValidationError("Invalid BAC level")

        with atomic(db):
            team = TeamDirectory.get_or_404(db, payload.team_id)
            if MemberRepo.find_person(db, first_name, last_name):
                raise DuplicateError("Member with this name already exists")
            member = Member(
                team_id=team.id,
                first_name=first_name,
                last_name=last_name,
                email=email,
                bac_level=bac_level,
                is_leader=payload.is_leader,
                food_diet=sanitize_string(payload.food_diet, 64),
            )
            db.add(member)
            try:
                db.flush()
            except IntegrityError as exc:
                raise DuplicateError("Member with this name already exists") from exc
        logger.info(f"Member {member.id} added to team {team.id} by admin")
        return member

    @staticmethod
    def update_member(db: Session, member_id: int, payload: MemberUpdate) -> Member:
        updates = {k: v for k, v in payload.model_dump(exclude_unset=True).items()
                   if k in MEMBER_UPDATE_FIELDS and v is not None}
        with atomic(db):
            member = MemberRepo.get_or_404(db, member_id)
            if "email" in updates:
                updates["email"] = sanitize_string(updates["email"], 256).lower()
                if not is_valid_email(updates["email"]):
                    raise ValidationError("Invalid email format")
            if "bac_level" in updates:
                updates["bac_level"] = parse_bac_level(updates["bac_level"])
                if updates["bac_level"] is None:
                    raise ValidationError("Invalid BAC level")
            if "team_id" in updates:
                TeamDirectory.get_or_404(db, updates["team_id"])
            for field in ("first_name", "last_name"):
                if field in updates:
                    updates[field] = sanitize_string(updates[field], 128)
                    if not updates[field]:
                        raise ValidationError(f"{field} cannot be empty")
            if "food_diet" in updates:
                updates["food_diet"] = sanitize_string(updates["food_diet"], 64)

            for field, value in updates.items():
                setattr(member, field, value)
            try:
                db.flush()
            except IntegrityError as exc:
                raise DuplicateError("Member with this name already exists") from exc
        logger.info(f"Member {member_id} updated: {', '.join(sorted(updates))}")
        return member

    @staticmethod
    def delete_member(db: Session, member_id: int) -> None:
        with atomic(db):
            member = MemberRepo.get_or_404(db, member_id)
            db.delete(member)
        logger.info(f"Member {member_id} deleted")

    @staticmethod
    def delete_members(db: Session, member_ids: List[int]) -> int:
        if not member_ids:
            raise ValidationError("memberIds array is required")
        with atomic(db):
            members = MemberRepo.list_by_ids(db, member_ids)
            for member in members:
                db.delete(member)
        logger.info(f"{len(members)} member(s) deleted in batch")
        return len(members)
