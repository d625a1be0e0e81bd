"""
Public API routes - registration form, team directory and statistics
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from ledger.api.deps import get_config, get_notifier
from ledger.core.config import Settings
from ledger.core.db import get_db
from ledger.schemas.registration import RegistrationRequest, TeamViewRequest
from ledger.services.notifier import RegistrationNotifier, registration_contacts
from ledger.services.registration_service import RegistrationService
from ledger.services.team_service import TeamService
from ledger.utils.responses import success_response

router = APIRouter()

@router.get("/config")
def get_public_config(
    db: Session = Depends(get_db),
    config: Settings = Depends(get_config)
):
    """Choices and ceilings the registration form needs"""
    return success_response(
        message="Configuration retrieved successfully",
        data=TeamService.public_config(db, config)
    )

@router.get("/teams")
def list_teams(
    db: Session = Depends(get_db),
    config: Settings = Depends(get_config)
):
    """List teams with their fill level"""
    return success_response(
        message="Teams retrieved successfully",
        data=TeamService.list_teams(db, config)
    )

@router.get("/teams/{team_id}")
def get_team(
    team_id: int,
    db: Session = Depends(get_db)
):
    return success_response(
        message="Team retrieved successfully",
        data=TeamService.get_team(db, team_id)
    )

@router.post("/teams/{team_id}/view")
def view_team_members(
    team_id: int,
    view_data: TeamViewRequest,
    db: Session = Depends(get_db)
):
    """Full roster, behind the team password"""
    return success_response(
        message="Team members retrieved successfully",
        data=TeamService.view_team_members(db, team_id, view_data.password)
    )

@router.get("/stats")
def get_stats(
    db: Session = Depends(get_db),
    config: Settings = Depends(get_config)
):
    return success_response(
        message="Statistics retrieved successfully",
        data=TeamService.public_stats(db, config)
    )

@router.post("/register")
def register(
    registration: RegistrationRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_config),
    notifier: Optional[RegistrationNotifier] = Depends(get_notifier)
):
    """Create a team or join one, with all members in one transaction"""
    result = RegistrationService.register(db, registration, config)
    if notifier is not None:
        # Sent after the response; a mail failure never affects the registration
        background_tasks.add_task(
            notifier.notify_registration, result.team.name, result.is_new, registration_contacts(result.members)
        )
    count = len(result.members)
    return success_response(
        message=f"Registration successful: {count} member{'s' if count > 1 else ''} registered",
        data=result.to_dict(),
        status_code=201
    )
