"""
Pydantic schemas package
"""

from .common import *
from .registration import *
from .team import *
from .member import *
from .payment import *
from .archive import *

__all__ = [
    "CamelModel",
    "StandardResponse",
    "ErrorResponse",
    "MemberIn",
    "RegistrationRequest",
    "TeamViewRequest",
    "TeamCreate",
    "TeamUpdate",
    "RoomAssignment",
    "BatchRoomAssignment",
    "MemberCreate",
    "MemberUpdate",
    "MemberIds",
    "CheckInRequest",
    "CheckoutRequest",
    "VerifyRequest",
    "DelayRequest",
    "ArchiveCreate",
    "ResetRequest"
]
