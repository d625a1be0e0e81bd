"""
Archive and reset Pydantic schemas
"""

from typing import Optional
from ledger.schemas.common import CamelModel

class ArchiveCreate(CamelModel):
    """Year defaults to the detected event year"""
    year: Optional[int] = None

class ResetRequest(CamelModel):
    confirmation: str = ""
    force: bool = False
    create_archive_first: bool = False
