"""Blocked slot model definitions."""

from sqlalchemy import Column, DateTime, Integer, String
from dentalcare.database import Base


class BlockedSlot(Base):
    """An ad hoc closure of a single slot timestamp."""
    __tablename__ = "blocked_slots"

    id = Column(Integer, primary_key=True)
    date = Column(DateTime, unique=True, nullable=False)
    reason = Column(String, default="Blocked")
