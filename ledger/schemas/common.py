"""
Common Pydantic schemas
"""

from typing import Any, Optional
from pydantic import BaseModel
from pydantic.alias_generators import to_camel

class CamelModel(BaseModel):
    """Accepts camelCase or snake_case keys"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True

class StandardResponse(BaseModel):
    """Standard API response"""
    success: bool
    message: str
    data: Optional[Any] = None

class ErrorResponse(BaseModel):
    """Error response schema"""
    success: bool = False
    message: str
    error_code: Optional[str] = None
    details: Optional[Any] = None
