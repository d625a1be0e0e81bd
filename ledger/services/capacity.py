"""
Capacity ledger - admission checks against participant ceilings
"""

from sqlalchemy import func
from sqlalchemy.orm import Session

from ledger.core.errors import CapacityError
from ledger.models import Member, Team, ORGANISATION_TEAM_NAME


def can_admit(current_count: int, incoming_count: int, ceiling: int) -> bool:
    """Inclusive: filling the last spot exactly is allowed."""
    return current_count + incoming_count <= ceiling


def remaining_spots(current_count: int, ceiling: int) -> int:
    return max(0, ceiling - current_count)


def count_participants(db: Session) -> int:
    """Registered members, Organisation excluded"""
    return db.query(func.count(Member.id)).join(Team, Member.team_id == Team.id).filter(
        Team.name != ORGANISATION_TEAM_NAME
    ).scalar() or 0


def count_team_members(db: Session, team_id: int) -> int:
    return db.query(func.count(Member.id)).filter(Member.team_id == team_id).scalar() or 0


def check_global_capacity(db: Session, incoming_count: int, ceiling: int) -> None:
    current = count_participants(db)
    if not can_admit(current, incoming_count, ceiling):
        remaining = remaining_spots(current, ceiling)
        raise CapacityError(
            f"Registration would exceed maximum capacity. Only {remaining} spots available.",
            remaining=remaining,
        )


def check_team_capacity(db: Session, team: Team, incoming_count: int, ceiling: int) -> None:
    if team.is_organisation:
        return
    current = count_team_members(db, team.id)
    if not can_admit(current, incoming_count, ceiling):
        remaining = remaining_spots(current, ceiling)
        raise CapacityError(
            f"Team is full or would exceed capacity. Only {remaining} spots available.",
            remaining=remaining,
        )
