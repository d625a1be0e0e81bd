"""
Registration request schemas

Fields are loose; the registration service does the structural checks.
"""

from typing import Any, List, Optional
from ledger.schemas.common import CamelModel

class MemberIn(CamelModel):
    """One person in a registration request"""
    first_name: Optional[Any] = None
    last_name: Optional[Any] = None
    email: Optional[Any] = None
    bac_level: Optional[Any] = 0
    is_leader: bool = False
    food_diet: Optional[Any] = None

class RegistrationRequest(CamelModel):
    """Create-mode (team_name, team_password) or join-mode (team_id, team_password)"""
    create_new_team: bool = False
    team_name: Optional[Any] = None
    team_description: Optional[Any] = None
    team_id: Optional[int] = None
    team_password: Optional[Any] = None
    members: List[MemberIn] = []

class TeamViewRequest(CamelModel):
    """Team roster request, unlocked by the team password"""
    password: str = ""
