from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dentalcare.auth.dependencies import get_current_user, get_optional_user, require_roles
from dentalcare.database import get_db
from dentalcare.models.appointment import (
    APPOINTMENT_STATUSES,
    Appointment,
    CREATED_BY_USER,
    PAYMENT_PENDING,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
)
from dentalcare.models.user import ROLE_ADMIN, ROLE_PATIENT, User
from dentalcare.routes.common import (
    AppointmentResponse,
    database_unavailable,
    ensure_can_reactivate,
    ensure_database_ready,
    get_appointment_or_404,
    normalize_email,
    normalize_notes,
    parse_doctor_id_param,
)
from dentalcare.services import scheduling
from dentalcare.services.email import queue_confirmation_email

router = APIRouter(tags=['appointments'])

ACTIVE_APPOINTMENT_DETAIL = (
    'You already have an active appointment. Please cancel it first from Dash Board before booking a new one.'
)
NO_DENTIST_DETAIL = 'No dentist is available at this time slot. Please choose another time.'
OFF_GRID_DETAIL = 'Appointments must start at one of the offered time slots.'


def to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return scheduling.normalize_slot_start(value)


class CreateAppointmentRequest(BaseModel):
    service: str = Field(min_length=1)
    date: datetime
    name: str = Field(min_length=1)
    email: EmailStr
    phone: str = Field(min_length=1)
    notes: str | None = None
    doctor_id: str | None = None

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator('service', 'name', 'phone')
    @classmethod
    def strip_required(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Field is required.')
        return normalized

    @field_validator('date')
    @classmethod
    def normalize_date(cls, value: datetime) -> datetime:
        return to_local_naive(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return normalize_notes(value)

    @field_validator('doctor_id', mode='before')
    @classmethod
    def stringify_doctor_id(cls, value):
        return str(value) if isinstance(value, int) else value


class BookingResponse(BaseModel):
    success: bool
    appointment: AppointmentResponse


class UpdateAppointmentRequest(BaseModel):
    status: str | None = None
    date: datetime | None = None
    notes: str | None = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().upper()
        if normalized not in APPOINTMENT_STATUSES:
            raise ValueError('Invalid appointment status.')
        return normalized

    @field_validator('date')
    @classmethod
    def normalize_date(cls, value: datetime | None) -> datetime | None:
        return to_local_naive(value) if value is not None else None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return normalize_notes(value)


def is_owner(appointment: Appointment, user: User) -> bool:
    if appointment.patient_id is not None and appointment.patient_id == user.id:
        return True
    return bool(appointment.patient_email) and appointment.patient_email == user.email


def validate_booking_time(start_time: datetime, now: datetime | None = None) -> None:
    now = now or datetime.now()
    if start_time <= now:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Appointments must be scheduled in the future.',
        )


@router.post('', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    validate_booking_time(data.date)
    requested_doctor_id = parse_doctor_id_param(data.doctor_id)

    ensure_database_ready()

    try:
        user = db.query(User).filter(User.email == data.email).first()

        if scheduling.find_active_appointment(db, user.id if user else None, data.email):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=ACTIVE_APPOINTMENT_DETAIL)

        if not scheduling.is_slot_start(db, data.date, requested_doctor_id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=OFF_GRID_DETAIL)

        if scheduling.is_blocked(db, data.date):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='This time slot is blocked.')

        doctor_id = scheduling.assign_doctor(db, data.date, requested_doctor_id)
        if doctor_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=NO_DENTIST_DETAIL)

        if user is None:
            # Guest bookings get a passwordless patient record they can claim later.
            user = User(email=data.email, name=data.name, phone=data.phone, hashed_password='', role=ROLE_PATIENT)
            db.add(user)
            db.flush()

        appointment = Appointment(
            service=data.service,
            date=data.date,
            notes=data.notes,
            status=STATUS_CONFIRMED,
            payment_status=PAYMENT_PENDING,
            created_by=CREATED_BY_USER,
            doctor_id=doctor_id,
            patient_id=user.id,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)

        queue_confirmation_email(background_tasks, appointment)

        return BookingResponse(success=True, appointment=AppointmentResponse.model_validate(appointment))
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    user_id: int | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if current_user.role == ROLE_ADMIN:
        patient_id = user_id
    elif current_user.role == ROLE_PATIENT:
        if user_id is not None and user_id != current_user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Patients can only view their own appointments.',
            )
        patient_id = current_user.id
    else:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Unauthorized')

    ensure_database_ready()

    try:
        query = db.query(Appointment)
        if patient_id is not None:
            query = query.filter(Appointment.patient_id == patient_id)
        return query.order_by(Appointment.date.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/check')
def check_active_appointment(
    current_user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    if current_user is None:
        return {'has_appointment': False}

    ensure_database_ready()

    try:
        active = scheduling.find_active_appointment(db, current_user.id, None)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
    return {'has_appointment': active is not None}


@router.patch('/{appointment_id}', response_model=BookingResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(appointment_id, db)
        is_admin = current_user.role == ROLE_ADMIN

        if not is_admin:
            if not is_owner(appointment, current_user):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail='Only the patient who booked this appointment can change it.',
                )
            if data.date is not None or (data.status is not None and data.status != STATUS_CANCELLED):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail='Patients can only cancel their appointments or update notes.',
                )

        if data.date is not None and data.date != appointment.date:
            if scheduling.is_blocked(db, data.date):
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='This time slot is blocked.')
            if appointment.doctor_id is not None and scheduling.doctor_is_double_booked(
                db, appointment.doctor_id, data.date, exclude_id=appointment.id
            ):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail='This doctor already has an appointment at that time.',
                )
            appointment.date = data.date

        ensure_can_reactivate(db, appointment, data.status, ACTIVE_APPOINTMENT_DETAIL)
        if data.status is not None:
            appointment.status = data.status
        if 'notes' in data.model_fields_set:
            appointment.notes = data.notes

        db.commit()
        db.refresh(appointment)
        return BookingResponse(success=True, appointment=AppointmentResponse.model_validate(appointment))
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{appointment_id}')
def delete_appointment(
    appointment_id: int,
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(appointment_id, db)
        db.delete(appointment)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
    return {'success': True}
