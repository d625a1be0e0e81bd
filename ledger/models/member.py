"""
Member model
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from ledger.core.db import Base, utcnow

class Member(Base):
    __tablename__ = "members"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    first_name = Column(String(128), nullable=False)
    last_name = Column(String(128), nullable=False)
    email = Column(String(256), nullable=False, index=True)
    bac_level = Column(Integer, default=0)
    is_leader = Column(Boolean, default=False)
    food_diet = Column(String(64), default="")

    # Attendance
    checked_in = Column(Boolean, default=False)
    checked_in_at = Column(DateTime, nullable=True)
    pizza_received = Column(Boolean, default=False)
    pizza_received_at = Column(DateTime, nullable=True)

    # Payment: unpaid, pending, paid, delayed
    payment_status = Column(String(16), default="unpaid", nullable=False, index=True)
    payment_method = Column(String(16), nullable=True)  # online, on_site
    checkout_id = Column(String(64), nullable=True, index=True)
    transaction_id = Column(String(64), nullable=True)
    registration_tier = Column(String(16), nullable=True)  # tier1, tier2
    payment_amount = Column(Integer, nullable=True)  # cents
    payment_tier = Column(String(16), nullable=True)  # asso_member, non_member, late, organisation
    payment_confirmed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    # Relationships
    team = relationship("Team", back_populates="members")

    # Anti-duplicate-registration guard
    __table_args__ = (
        UniqueConstraint("first_name", "last_name", name="uq_members_person"),
    )
