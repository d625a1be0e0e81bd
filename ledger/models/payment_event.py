"""
Payment event model - append-only audit trail
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey

from ledger.core.db import Base, utcnow

class PaymentEvent(Base):
    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True)
    checkout_id = Column(String(64), nullable=True, index=True)
    # checkout_created, payment_completed, payment_failed, payment_delayed, onsite_payment_collected
    event_type = Column(String(32), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # cents
    tier = Column(String(16), nullable=False)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", Text, nullable=True)  # JSON
    created_at = Column(DateTime, default=utcnow)
