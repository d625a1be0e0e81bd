"""
Archive model - yearly snapshot with retention date
"""

from sqlalchemy import Column, Integer, String, Boolean, Text, DateTime

from ledger.core.db import Base, utcnow

class Archive(Base):
    __tablename__ = "archives"

    id = Column(Integer, primary_key=True, index=True)
    event_year = Column(Integer, unique=True, nullable=False, index=True)
    archived_at = Column(DateTime, nullable=False, default=utcnow)
    expiration_date = Column(DateTime, nullable=False)
    is_expired = Column(Boolean, default=False, index=True)

    # Serialized snapshots (JSON)
    teams_blob = Column(Text, nullable=False)
    members_blob = Column(Text, nullable=False)
    payment_events_blob = Column(Text, nullable=False)

    # Summary statistics survive anonymization
    stats_blob = Column(Text, nullable=False)
    total_teams = Column(Integer, nullable=False)
    total_participants = Column(Integer, nullable=False)
    total_revenue = Column(Integer, default=0)

    # SHA-256 over the three data blobs
    data_hash = Column(String(64), nullable=False)
