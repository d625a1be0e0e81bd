"""
Database models package
"""

from .team import Team, ORGANISATION_TEAM_NAME
from .member import Member
from .payment_event import PaymentEvent
from .setting import Setting
from .archive import Archive

__all__ = ["Team", "Member", "PaymentEvent", "Setting", "Archive", "ORGANISATION_TEAM_NAME"]
