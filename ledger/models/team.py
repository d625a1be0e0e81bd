"""
Team model
"""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from ledger.core.db import Base, utcnow

# Staff team: exempt from capacity counting, cannot be deleted
ORGANISATION_TEAM_NAME = "Organisation"

class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(String(256), default="")
    password_hash = Column(String(255), default="")
    room = Column(String(50), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    members = relationship(
        "Member",
        back_populates="team",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Member.created_at",
    )

    @property
    def is_organisation(self) -> bool:
        return self.name == ORGANISATION_TEAM_NAME
