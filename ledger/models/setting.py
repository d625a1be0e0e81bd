"""
Runtime settings - flat key/value store mutated by admins
"""

from sqlalchemy import Column, String, Text, DateTime

from ledger.core.db import Base, utcnow

class Setting(Base):
    __tablename__ = "settings"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
    description = Column(String(256), default="")
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
