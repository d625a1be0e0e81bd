"""
Member-related Pydantic schemas
"""

from typing import List, Optional
from ledger.schemas.common import CamelModel

class MemberCreate(CamelModel):
    """Admin-side member insertion; bypasses team password and capacity"""
    team_id: int
    first_name: str
    last_name: str
    email: str
    bac_level: int = 0
    is_leader: bool = False
    food_diet: str = ""

class MemberUpdate(CamelModel):
    """Schema for updating a member"""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    bac_level: Optional[int] = None
    is_leader: Optional[bool] = None
    food_diet: Optional[str] = None
    team_id: Optional[int] = None

class MemberIds(CamelModel):
    """Batch operations over members"""
    member_ids: List[int]

class CheckInRequest(CamelModel):
    """Check-in with on-site payment capture"""
    payment_tier: Optional[str] = None
    payment_amount: Optional[int] = None
    skip_payment: bool = False
