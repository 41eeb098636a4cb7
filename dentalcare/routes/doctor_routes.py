from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dentalcare.auth.dependencies import require_roles
from dentalcare.database import get_db
from dentalcare.models.appointment import (
    Appointment,
    CREATED_BY_DOCTOR,
    PAYMENT_PENDING,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    TREATMENT_STATUSES,
)
from dentalcare.models.user import ROLE_DOCTOR, User
from dentalcare.routes.common import (
    AppointmentResponse,
    build_report_response,
    combine_date_time,
    database_unavailable,
    ensure_database_ready,
    get_appointment_or_404,
    normalize_email,
    normalize_notes,
    parse_date_param,
    parse_optional_datetime_param,
    validate_hhmm,
)
from dentalcare.services import reports, scheduling

router = APIRouter(tags=['doctor'])

REPORT_FORMATS = ('pdf', 'excel')


class DoctorAppointmentRequest(BaseModel):
    date: date
    time: str
    name: str = Field(min_length=1)
    email: EmailStr
    phone: str = Field(min_length=1)
    service: str = Field(min_length=1)
    notes: str | None = None

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return validate_hhmm(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return normalize_notes(value)


class PaymentUpdateRequest(BaseModel):
    appointment_id: int
    amount: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    treatment_status: str

    @field_validator('treatment_status')
    @classmethod
    def validate_treatment_status(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in TREATMENT_STATUSES:
            raise ValueError('Invalid treatment status.')
        return normalized


class DoctorBookingResponse(BaseModel):
    success: bool
    appointment: AppointmentResponse


def check_doctor_schedule(db: Session, doctor_id: int, when: datetime) -> None:
    """Reject times that fall on the doctor's day off or outside their hours."""
    weekday = scheduling.day_of_week(when.date())
    minute = scheduling.minutes_of(when)

    doctor_row = scheduling.get_doctor_row(db, doctor_id, weekday)
    if doctor_row is not None:
        if not doctor_row.is_active:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='This doctor is not available on the selected day.',
            )
        if not scheduling.covers(scheduling.window_of(doctor_row), minute):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="This time is outside the doctor's working hours.",
            )
        return

    global_row = scheduling.get_global_row(db, weekday)
    if global_row is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='No schedule is configured for the selected day.',
        )
    if not scheduling.covers(scheduling.window_of(global_row), minute):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='This time is outside the working hours.',
        )


def query_doctor_appointments(
    db: Session,
    doctor_id: int,
    start: datetime | None,
    end: datetime | None,
) -> list[Appointment]:
    query = db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.status != STATUS_CANCELLED,
    )
    if start is not None:
        query = query.filter(Appointment.date >= start)
    if end is not None:
        query = query.filter(Appointment.date <= end)
    return query.order_by(Appointment.date.asc()).all()


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_doctor_appointments(
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
    current_user: User = Depends(require_roles(ROLE_DOCTOR)),
    db: Session = Depends(get_db),
):
    start = parse_optional_datetime_param(start_date)
    end = parse_optional_datetime_param(end_date, end_of_day=True)

    ensure_database_ready()

    try:
        return query_doctor_appointments(db, current_user.id, start, end)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/appointments', response_model=DoctorBookingResponse, status_code=status.HTTP_201_CREATED)
def create_doctor_appointment(
    data: DoctorAppointmentRequest,
    current_user: User = Depends(require_roles(ROLE_DOCTOR)),
    db: Session = Depends(get_db),
):
    appointment_date = combine_date_time(data.date, data.time)

    ensure_database_ready()

    try:
        check_doctor_schedule(db, current_user.id, appointment_date)

        if scheduling.is_blocked(db, appointment_date):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='This time slot is blocked.')

        if scheduling.doctor_is_double_booked(db, current_user.id, appointment_date):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='This slot is already filled. Please select another time.',
            )

        patient = db.query(User).filter(User.email == data.email).first()
        if scheduling.find_active_appointment(db, patient.id if patient else None, data.email):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='This patient already has an active upcoming appointment.',
            )

        appointment = Appointment(
            service=data.service,
            date=appointment_date,
            notes=data.notes,
            status=STATUS_CONFIRMED,
            payment_status=PAYMENT_PENDING,
            created_by=CREATED_BY_DOCTOR,
            doctor_id=current_user.id,
        )
        if patient is not None:
            appointment.patient_id = patient.id
        else:
            appointment.patient_name = data.name
            appointment.patient_email = data.email
            appointment.patient_phone = data.phone

        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return DoctorBookingResponse(success=True, appointment=AppointmentResponse.model_validate(appointment))
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/payments', response_model=DoctorBookingResponse)
def record_payment(
    data: PaymentUpdateRequest,
    current_user: User = Depends(require_roles(ROLE_DOCTOR)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(data.appointment_id, db)

        # Payment status itself stays with the front desk (admin).
        appointment.payment_amount = data.amount
        appointment.treatment_status = data.treatment_status
        appointment.doctor_id = current_user.id
        db.commit()
        db.refresh(appointment)
        return DoctorBookingResponse(success=True, appointment=AppointmentResponse.model_validate(appointment))
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/reports')
def doctor_report(
    type: str = Query(default='appointments'),
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
    format: str | None = Query(default=None),
    download: bool = Query(default=False),
    current_user: User = Depends(require_roles(ROLE_DOCTOR)),
    db: Session = Depends(get_db),
):
    if not start_date or not end_date or not format:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='start_date, end_date, and format are required',
        )
    report_format = format.strip().lower()
    if report_format not in REPORT_FORMATS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='format must be pdf or excel')

    start_day = parse_date_param(start_date, 'start_date')
    end_day = parse_date_param(end_date, 'end_date')

    ensure_database_ready()

    try:
        appointments = query_doctor_appointments(
            db,
            current_user.id,
            parse_optional_datetime_param(start_day.isoformat()),
            parse_optional_datetime_param(end_day.isoformat(), end_of_day=True),
        )
        rows = reports.build_report_rows(appointments)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return build_report_response(
        rows,
        filename=reports.report_filename(type, start_day, end_day),
        report_format=report_format,
        title='Doctor Appointment Report',
        include_doctor=False,
        download=download,
    )
