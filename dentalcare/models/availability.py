"""Availability model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from dentalcare.database import Base


class Availability(Base):
    """Weekly working hours, per doctor or clinic-wide when doctor_id is null."""
    __tablename__ = "availability"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(String, nullable=False)
    end_time = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)
