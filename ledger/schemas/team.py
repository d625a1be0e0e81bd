"""
Team-related Pydantic schemas
"""

from typing import List, Optional
from ledger.schemas.common import CamelModel

class TeamCreate(CamelModel):
    """Schema for creating a team from the admin console"""
    name: str
    description: str = ""
    password: str = ""

class TeamUpdate(CamelModel):
    """Schema for updating a team"""
    name: Optional[str] = None
    description: Optional[str] = None
    password: Optional[str] = None

class RoomAssignment(CamelModel):
    """Room for one team; null or empty clears it"""
    room: Optional[str] = None

class BatchRoomAssignment(CamelModel):
    team_ids: List[int]
    room: Optional[str] = None
