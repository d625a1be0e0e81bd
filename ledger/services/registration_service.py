"""
Registration orchestrator - create-or-join a team plus N members in one transaction
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger.core.config import Settings
from ledger.core.db import atomic
from ledger.core.errors import AuthError, CapacityError, DuplicateError, ValidationError
from ledger.models import Member, Team
from ledger.schemas.registration import RegistrationRequest
from ledger.services.capacity import (
    check_global_capacity, check_team_capacity, count_team_members, remaining_spots,
)
from ledger.services.repositories import MemberRepo
from ledger.services.settings_service import CapacitySettings, SettingsService
from ledger.services.team_directory import TeamDirectory, check_password
from ledger.utils.validation import CleanMember, sanitize_string, validate_members, validate_team_name

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 4


@dataclass
class RegistrationResult:
    team: Team
    members: List[Member]
    is_new: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team": {"id": self.team.id, "name": self.team.name, "isNew": self.is_new},
            "members": [
                {"id": m.id, "firstName": m.first_name, "lastName": m.last_name}
                for m in self.members
            ],
        }


class RegistrationService:
    """Validate, check duplicates and capacity, and persist, all or nothing"""

    @staticmethod
    def register(db: Session, request: RegistrationRequest, config: Settings) -> RegistrationResult:
        with atomic(db):
            capacity = SettingsService.capacity(db, config)

            # 1. structural
            members = RegistrationService._validate_structure(request, capacity)

            # 2. nobody may register twice
            for member in members:
                if MemberRepo.find_person(db, member.first_name, member.last_name):
                    raise DuplicateError(f"{member.first_name} {member.last_name} is already registered")

            # 3. create or join
            password = sanitize_string(request.team_password, 64)
            if request.create_new_team:
                team = RegistrationService._create_team(db, request, password, members, capacity)
                is_new = True
            else:
                team = RegistrationService._join_team(db, request, password, capacity)
                is_new = False

            # 4. ceilings, evaluated against counts read inside this transaction
            if not team.is_organisation:
                check_global_capacity(db, len(members), capacity.max_total_participants)
                check_team_capacity(db, team, len(members), capacity.max_team_size)

            persisted = RegistrationService._insert_members(db, team, members)

        logger.info(
            f"Registered {len(persisted)} member(s) to team {team.id}"
            f"{' (new team)' if is_new else ''}"
        )
        return RegistrationResult(team=team, members=persisted, is_new=is_new)

    @staticmethod
    def _validate_structure(request: RegistrationRequest, capacity: CapacitySettings) -> List[CleanMember]:
        members, errors = validate_members(request.members, capacity.max_team_size)
        if request.create_new_team:
            _, name_error = validate_team_name(request.team_name)
            if name_error:
                errors.append(name_error)
        elif request.team_id is None:
            errors.append("Please select a team")
        if errors:
            raise ValidationError("; ".join(errors), errors=errors)
        return members

    @staticmethod
    def _create_team(db: Session, request: RegistrationRequest, password: str,
                     members: List[CleanMember], capacity: CapacitySettings) -> Team:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Team password must be at least {MIN_PASSWORD_LENGTH} characters")
        if not any(m.is_leader for m in members):
            raise ValidationError("A new team needs at least one team leader")
        if len(members) < capacity.min_team_size:
            raise ValidationError(f"A new team needs at least {capacity.min_team_size} members")

        name, _ = validate_team_name(request.team_name)
        description = sanitize_string(request.team_description, 256)
        return TeamDirectory.create_team(db, name, description, password)

    @staticmethod
    def _join_team(db: Session, request: RegistrationRequest, password: str,
                   capacity: CapacitySettings) -> Team:
        team = TeamDirectory.get_or_404(db, request.team_id)
        if not team.is_organisation:
            current = count_team_members(db, team.id)
            if current >= capacity.max_team_size:
                raise CapacityError("Team is full", remaining=remaining_spots(current, capacity.max_team_size))
        if not check_password(password, team.password_hash):
            raise AuthError("Incorrect password", status_code=403)
        return team

    @staticmethod
    def _insert_members(db: Session, team: Team, members: List[CleanMember]) -> List[Member]:
        rows = [
            Member(
                team_id=team.id,
                first_name=m.first_name,
                last_name=m.last_name,
                email=m.email,
                bac_level=m.bac_level,
                is_leader=m.is_leader,
                food_diet=m.food_diet,
            )
            for m in members
        ]
        db.add_all(rows)
        try:
            db.flush()
        except IntegrityError as exc:
            raise DuplicateError("One of these participants is already registered") from exc
        return rows
