"""
Team directory - team identity and password verification
"""

import logging
from typing import Optional

from passlib.context import CryptContext
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger.core.errors import DuplicateError, NotFoundError
from ledger.models import Team, ORGANISATION_TEAM_NAME

logger = logging.getLogger(__name__)

# Salted PBKDF2; verification compares digests in constant time
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def check_password(candidate: str, password_hash: Optional[str]) -> bool:
    """A team without a stored hash cannot be unlocked by any password."""
    if not candidate or not password_hash:
        return False
    try:
        return pwd_context.verify(candidate, password_hash)
    except ValueError:
        # unrecognised hash format
        return False


class TeamDirectory:
    @staticmethod
    def get(db: Session, team_id: int) -> Optional[Team]:
        return db.query(Team).filter(Team.id == team_id).first()

    @staticmethod
    def get_or_404(db: Session, team_id: int) -> Team:
        team = TeamDirectory.get(db, team_id)
        if not team:
            raise NotFoundError("Team")
        return team

    @staticmethod
    def find_by_name(db: Session, name: str) -> Optional[Team]:
        return db.query(Team).filter(func.lower(Team.name) == name.lower()).first()

    @staticmethod
    def create_team(db: Session, name: str, description: str = "", password: str = "") -> Team:
        """Insert a team inside the caller's transaction.

        The name check runs under the transaction's write lock; the unique
        constraint catches anything that slips past on other backends.
        """
        if TeamDirectory.find_by_name(db, name):
            raise DuplicateError("Team name already exists")

        team = Team(
            name=name,
            description=description,
            password_hash=hash_password(password) if password else "",
        )
        db.add(team)
        try:
            db.flush()
        except IntegrityError as exc:
            raise DuplicateError("Team name already exists") from exc
        logger.info(f"Team {team.id} created")
        return team

    @staticmethod
    def verify_team_password(db: Session, team_id: int, candidate: str) -> bool:
        team = TeamDirectory.get(db, team_id)
        if not team:
            return False
        return check_password(candidate, team.password_hash)

    @staticmethod
    def ensure_organisation_team(db: Session, password: str = "") -> Team:
        """Seed the staff team; an existing one is left as it is."""
        team = db.query(Team).filter(Team.name == ORGANISATION_TEAM_NAME).first()
        if team:
            return team
        team = Team(
            name=ORGANISATION_TEAM_NAME,
            description="Équipe d'organisation",
            password_hash=hash_password(password) if password else "",
        )
        db.add(team)
        db.flush()
        logger.info("Organisation team seeded")
        return team
