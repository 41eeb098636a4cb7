"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from dentalcare.database import Base


STATUS_PENDING = "PENDING"
STATUS_CONFIRMED = "CONFIRMED"
STATUS_CANCELLED = "CANCELLED"
STATUS_COMPLETED = "COMPLETED"
APPOINTMENT_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_COMPLETED)
INACTIVE_STATUSES = (STATUS_CANCELLED, STATUS_COMPLETED)

PAYMENT_PENDING = "PENDING"
PAYMENT_PAID = "PAID"
PAYMENT_PARTIAL = "PARTIAL"
PAYMENT_STATUSES = (PAYMENT_PAID, PAYMENT_PENDING, PAYMENT_PARTIAL)

TREATMENT_STATUSES = ("PENDING", "PARTIAL", "COMPLETED")

CREATED_BY_USER = "USER"
CREATED_BY_DOCTOR = "DOCTOR"


class Appointment(Base):
    """Represents a booked chair slot for a patient."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    service = Column(String, nullable=False)
    date = Column(DateTime, nullable=False, index=True)
    status = Column(String, default=STATUS_CONFIRMED)
    payment_status = Column(String, default=PAYMENT_PENDING)
    treatment_status = Column(String)
    payment_amount = Column(Numeric(10, 2))
    notes = Column(String)
    created_by = Column(String)
    admin_confirmed = Column(Boolean, default=False)

    patient_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    doctor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))

    # Guest bookings carry their contact details inline
    patient_name = Column(String)
    patient_email = Column(String, index=True)
    patient_phone = Column(String)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    patient = relationship("User", foreign_keys=[patient_id])
    doctor = relationship("User", foreign_keys=[doctor_id])

    @property
    def display_name(self) -> str:
        if self.patient is not None and self.patient.name:
            return self.patient.name
        return self.patient_name or "N/A"

    @property
    def display_email(self) -> str:
        if self.patient is not None and self.patient.email:
            return self.patient.email
        return self.patient_email or "N/A"

    @property
    def display_phone(self) -> str:
        if self.patient is not None and self.patient.phone:
            return self.patient.phone
        return self.patient_phone or "N/A"
