"""User model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String
from dentalcare.database import Base


ROLE_PATIENT = "PATIENT"
ROLE_DOCTOR = "DOCTOR"
ROLE_ADMIN = "ADMIN"


class User(Base):
    """Represents a patient, doctor or admin account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String)
    phone = Column(String)
    hashed_password = Column(String, default="")  # empty for guest patients
    role = Column(String, default=ROLE_PATIENT, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
