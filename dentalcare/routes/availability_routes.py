from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dentalcare.database import get_db
from dentalcare.routes.common import (
    database_unavailable,
    ensure_database_ready,
    parse_date_param,
    parse_doctor_id_param,
)
from dentalcare.services import scheduling

router = APIRouter(tags=['availability'])


class DoctorOptionResponse(BaseModel):
    id: int
    name: str | None = None
    email: str

    class Config:
        from_attributes = True


class TimeSlotResponse(BaseModel):
    time: str
    is_filled: bool


class SlotStatusResponse(BaseModel):
    time_slots: list[TimeSlotResponse]


class AvailabilityResponse(BaseModel):
    available: bool
    slots: list[str]


@router.get('/doctors')
def list_doctors(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        doctors = scheduling.list_doctors(db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return {'doctors': [DoctorOptionResponse.model_validate(doctor) for doctor in doctors]}


@router.get('/slots', response_model=SlotStatusResponse)
def list_slot_statuses(
    date: str | None = Query(default=None),
    doctor_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    requested_day = parse_date_param(date, 'date')
    requested_doctor_id = parse_doctor_id_param(doctor_id)

    ensure_database_ready()

    try:
        slots = scheduling.slot_statuses(db, requested_day, requested_doctor_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return SlotStatusResponse(time_slots=[TimeSlotResponse(**slot) for slot in slots])


@router.get('/availability', response_model=AvailabilityResponse)
def get_availability(
    date: str | None = Query(default=None),
    doctor_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    requested_day = parse_date_param(date, 'date')
    requested_doctor_id = parse_doctor_id_param(doctor_id)

    ensure_database_ready()

    try:
        window = scheduling.resolve_working_hours(db, requested_day, requested_doctor_id)
        if window is None:
            return AvailabilityResponse(available=False, slots=[])
        slots = scheduling.vacant_slots(db, requested_day, requested_doctor_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return AvailabilityResponse(available=True, slots=slots)
