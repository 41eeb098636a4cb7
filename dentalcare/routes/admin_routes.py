from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dentalcare.auth.dependencies import require_roles
from dentalcare.auth.passwords import hash_password
from dentalcare.core import config
from dentalcare.core.clinic import get_active_clinic
from dentalcare.database import get_db
from dentalcare.models.appointment import (
    APPOINTMENT_STATUSES,
    Appointment,
    PAYMENT_PAID,
    PAYMENT_PENDING,
    PAYMENT_STATUSES,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
)
from dentalcare.models.availability import Availability
from dentalcare.models.blocked_slot import BlockedSlot
from dentalcare.models.user import ROLE_ADMIN, ROLE_DOCTOR, User
from dentalcare.routes.common import (
    AppointmentResponse,
    build_report_response,
    combine_date_time,
    database_unavailable,
    ensure_can_reactivate,
    ensure_database_ready,
    get_appointment_or_404,
    normalize_email,
    normalize_notes,
    parse_date_param,
    parse_doctor_id_param,
    parse_optional_datetime_param,
    validate_hhmm,
)
from dentalcare.services import reports, scheduling

router = APIRouter(tags=['admin'])

REPORT_FORMATS = ('pdf', 'excel')
SLOT_ACTIONS = ('block', 'unblock')
DOUBLE_BOOKED_DETAIL = 'This doctor already has an appointment at that time.'
OptionalDate = date | None

ACTIVE_APPOINTMENT_DETAIL = (
    'This patient already has an active upcoming appointment. '
    'Please cancel or complete the existing booking before creating a new one.'
)


class AdminAppointmentRequest(BaseModel):
    date: date
    time: str
    name: str = Field(min_length=1)
    email: EmailStr
    phone: str = Field(min_length=1)
    service: str = Field(min_length=1)
    notes: str | None = None
    doctor_id: str | None = None

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

    @field_validator('doctor_id', mode='before')
    @classmethod
    def stringify_doctor_id(cls, value):
        return str(value) if isinstance(value, int) else value


class AdminAppointmentUpdateRequest(BaseModel):
    date: OptionalDate = None
    time: str | None = None
    name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    service: str | None = None
    notes: str | None = None
    status: str | None = None
    admin_confirmed: bool | None = None

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, value: str | None) -> str | None:
        return normalize_email(value) if value is not None else None

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        return validate_hhmm(value) if value is not None else None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return normalize_notes(value)

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().upper()
        if normalized not in APPOINTMENT_STATUSES:
            raise ValueError('Invalid appointment status.')
        return normalized

    @model_validator(mode='after')
    def require_date_with_time(self):
        if (self.date is None) != (self.time is None):
            raise ValueError('date and time must be provided together.')
        return self


class PaymentStatusRequest(BaseModel):
    payment_status: str = PAYMENT_PAID

    @field_validator('payment_status')
    @classmethod
    def validate_payment_status(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in PAYMENT_STATUSES:
            raise ValueError('Invalid payment status.')
        return normalized


class AdminBookingResponse(BaseModel):
    success: bool
    appointment: AppointmentResponse


class AvailabilityDay(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str
    is_active: bool = True

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return validate_hhmm(value)

    @model_validator(mode='after')
    def validate_window(self):
        if scheduling.parse_hhmm(self.start_time) >= scheduling.parse_hhmm(self.end_time):
            raise ValueError('start_time must be before end_time.')
        return self


class DoctorAvailabilityRequest(BaseModel):
    doctor_id: int
    days: list[AvailabilityDay]


class GlobalAvailabilityRequest(BaseModel):
    days: list[AvailabilityDay]


class AvailabilityRowResponse(BaseModel):
    id: int
    doctor_id: int | None = None
    day_of_week: int
    start_time: str
    end_time: str
    is_active: bool | None = None

    class Config:
        from_attributes = True


class CreateDoctorRequest(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    phone: str | None = None

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return normalize_email(value)


class DoctorResponse(BaseModel):
    id: int
    name: str | None = None
    email: str
    phone: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class SlotReference(BaseModel):
    date: date
    time: str

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return validate_hhmm(value)


class BlockSlotsRequest(BaseModel):
    action: str
    slots: list[SlotReference] = []
    reason: str | None = None


class SlotOverviewResponse(BaseModel):
    date: date
    time: str
    is_booked: bool
    is_blocked: bool
    appointment: AppointmentResponse | None = None


def admin_created_by(admin: User) -> str:
    return admin.email.split('@', 1)[0]


def upsert_availability(db: Session, doctor_id: int | None, days: list[AvailabilityDay]) -> list[Availability]:
    saved = []
    for day in days:
        query = db.query(Availability).filter(Availability.day_of_week == day.day_of_week)
        if doctor_id is None:
            query = query.filter(Availability.doctor_id.is_(None))
        else:
            query = query.filter(Availability.doctor_id == doctor_id)

        row = query.first()
        if row is None:
            row = Availability(doctor_id=doctor_id, day_of_week=day.day_of_week)
            db.add(row)
        row.start_time = day.start_time
        row.end_time = day.end_time
        row.is_active = day.is_active
        saved.append(row)
    return saved


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_all_appointments(
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias='status'),
    doctor_id: str | None = Query(default=None),
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    del current_user
    start = parse_optional_datetime_param(start_date)
    end = parse_optional_datetime_param(end_date, end_of_day=True)
    requested_doctor_id = parse_doctor_id_param(doctor_id)

    ensure_database_ready()

    try:
        query = db.query(Appointment)
        if status_filter:
            query = query.filter(Appointment.status == status_filter.strip().upper())
        else:
            query = query.filter(Appointment.status != STATUS_CANCELLED)
        if start is not None:
            query = query.filter(Appointment.date >= start)
        if end is not None:
            query = query.filter(Appointment.date <= end)
        if requested_doctor_id is not None:
            query = query.filter(Appointment.doctor_id == requested_doctor_id)
        return query.order_by(Appointment.date.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/appointments', response_model=AdminBookingResponse, status_code=status.HTTP_201_CREATED)
def create_admin_appointment(
    data: AdminAppointmentRequest,
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    appointment_date = combine_date_time(data.date, data.time)
    requested_doctor_id = parse_doctor_id_param(data.doctor_id)

    ensure_database_ready()

    try:
        if scheduling.is_blocked(db, appointment_date):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='This time slot is blocked.')

        if requested_doctor_id is not None:
            doctor = db.query(User).filter(User.id == requested_doctor_id, User.role == ROLE_DOCTOR).first()
            if doctor is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Doctor not found')
            if scheduling.doctor_is_double_booked(db, doctor.id, appointment_date):
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=DOUBLE_BOOKED_DETAIL)
            doctor_id = doctor.id
        else:
            # Left unassigned when nobody is free; the desk can assign later.
            doctor_id = scheduling.assign_doctor(db, appointment_date, None)

        patient = db.query(User).filter(User.email == data.email).first()
        if scheduling.find_active_appointment(db, patient.id if patient else None, data.email):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=ACTIVE_APPOINTMENT_DETAIL)

        appointment = Appointment(
            service=data.service,
            date=appointment_date,
            notes=data.notes,
            status=STATUS_CONFIRMED,
            payment_status=PAYMENT_PENDING,
            created_by=admin_created_by(current_user),
            doctor_id=doctor_id,
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
        return AdminBookingResponse(success=True, appointment=AppointmentResponse.model_validate(appointment))
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.patch('/appointments/{appointment_id}', response_model=AdminBookingResponse)
def update_admin_appointment(
    appointment_id: int,
    data: AdminAppointmentUpdateRequest,
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(appointment_id, db)

        if data.date is not None and data.time is not None:
            new_date = combine_date_time(data.date, data.time)
            if new_date != appointment.date:
                if scheduling.is_blocked(db, new_date):
                    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='This time slot is blocked.')
                if appointment.doctor_id is not None and scheduling.doctor_is_double_booked(
                    db, appointment.doctor_id, new_date, exclude_id=appointment.id
                ):
                    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DOUBLE_BOOKED_DETAIL)
                appointment.date = new_date

        if data.name is not None:
            appointment.patient_name = data.name.strip()
        if data.email is not None:
            appointment.patient_email = data.email
        if data.phone is not None:
            appointment.patient_phone = data.phone.strip()
        if data.service is not None:
            appointment.service = data.service.strip()
        if 'notes' in data.model_fields_set:
            appointment.notes = data.notes
        ensure_can_reactivate(db, appointment, data.status, ACTIVE_APPOINTMENT_DETAIL)
        if data.status is not None:
            appointment.status = data.status
        if data.admin_confirmed is not None:
            appointment.admin_confirmed = data.admin_confirmed

        db.commit()
        db.refresh(appointment)
        return AdminBookingResponse(success=True, appointment=AppointmentResponse.model_validate(appointment))
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/appointments/{appointment_id}')
def cancel_admin_appointment(
    appointment_id: int,
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(appointment_id, db)
        appointment.status = STATUS_CANCELLED
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
    return {'success': True}


@router.post('/appointments/{appointment_id}/payment', response_model=AdminBookingResponse)
def update_payment_status(
    appointment_id: int,
    data: PaymentStatusRequest,
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(appointment_id, db)
        appointment.payment_status = data.payment_status
        db.commit()
        db.refresh(appointment)
        return AdminBookingResponse(success=True, appointment=AppointmentResponse.model_validate(appointment))
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/appointments/{appointment_id}/receipt')
def download_receipt(
    appointment_id: int,
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(appointment_id, db)
        if appointment.payment_amount is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='No payment has been recorded for this appointment.',
            )

        clinic = get_active_clinic()
        details = reports.ReceiptDetails(
            clinic_name=clinic.name,
            clinic_phone=clinic.phone,
            clinic_email=clinic.email,
            patient_name=appointment.display_name,
            service=appointment.service,
            amount=Decimal(appointment.payment_amount),
            appointment_date=appointment.date,
            payment_date=appointment.updated_at or datetime.now(),
            issued_by=current_user.name or current_user.email,
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return Response(
        content=reports.build_receipt_pdf(details),
        media_type='application/pdf',
        headers={'Content-Disposition': f'attachment; filename="receipt_{appointment_id}.pdf"'},
    )


@router.get('/availability')
def get_admin_availability(
    doctor_id: str | None = Query(default=None),
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    del current_user
    requested_doctor_id = parse_doctor_id_param(doctor_id)

    ensure_database_ready()

    try:
        global_rows = db.query(Availability).filter(
            Availability.doctor_id.is_(None),
        ).order_by(Availability.day_of_week.asc()).all()

        doctor_rows = []
        if requested_doctor_id is not None:
            doctor_rows = db.query(Availability).filter(
                Availability.doctor_id == requested_doctor_id,
            ).order_by(Availability.day_of_week.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return {
        'doctor_availability': [AvailabilityRowResponse.model_validate(row) for row in doctor_rows],
        'global_defaults': [AvailabilityRowResponse.model_validate(row) for row in global_rows],
    }


@router.post('/availability', response_model=list[AvailabilityRowResponse])
def save_doctor_availability(
    data: DoctorAvailabilityRequest,
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    try:
        doctor = db.query(User).filter(User.id == data.doctor_id, User.role == ROLE_DOCTOR).first()
        if doctor is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Doctor not found')

        rows = upsert_availability(db, doctor.id, data.days)
        db.commit()
        for row in rows:
            db.refresh(row)
        return rows
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/availability/global', response_model=list[AvailabilityRowResponse])
def save_global_availability(
    data: GlobalAvailabilityRequest,
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    try:
        rows = upsert_availability(db, None, data.days)
        db.commit()
        for row in rows:
            db.refresh(row)
        return rows
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/doctors', response_model=list[DoctorResponse])
def list_doctor_accounts(
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    try:
        return db.query(User).filter(User.role == ROLE_DOCTOR).order_by(User.created_at.asc(), User.id.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/doctors', response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor_account(
    data: CreateDoctorRequest,
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    try:
        doctor_count = db.query(User).filter(User.role == ROLE_DOCTOR).count()
        if doctor_count >= config.MAX_DOCTORS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f'Maximum of {config.MAX_DOCTORS} doctor logins allowed',
            )

        if db.query(User).filter(User.email == data.email).first() is not None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='User already exists')

        doctor = User(
            email=data.email,
            name=data.name.strip(),
            phone=data.phone.strip() if data.phone else None,
            hashed_password=hash_password(data.password),
            role=ROLE_DOCTOR,
        )
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        return doctor
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/doctors/{doctor_id}')
def delete_doctor_account(
    doctor_id: int,
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    try:
        doctor = db.query(User).filter(User.id == doctor_id, User.role == ROLE_DOCTOR).first()
        if doctor is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Doctor not found')

        # SQLite does not enforce the foreign key actions unless asked to.
        db.query(Availability).filter(Availability.doctor_id == doctor.id).delete(synchronize_session=False)
        db.query(Appointment).filter(Appointment.doctor_id == doctor.id).update(
            {Appointment.doctor_id: None},
            synchronize_session=False,
        )
        db.delete(doctor)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
    return {'success': True}


@router.get('/slots', response_model=list[SlotOverviewResponse])
def list_clinic_slots(
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    del current_user
    start_day = parse_date_param(start_date, 'start_date')
    end_day = parse_date_param(end_date, 'end_date')
    if end_day < start_day:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='end_date must not be before start_date')

    ensure_database_ready()

    try:
        overview = scheduling.clinic_slot_overview(db, start_day, end_day)
        return [
            SlotOverviewResponse(
                date=entry['date'],
                time=entry['time'],
                is_booked=entry['is_booked'],
                is_blocked=entry['is_blocked'],
                appointment=(
                    AppointmentResponse.model_validate(entry['appointment'])
                    if entry['appointment'] is not None else None
                ),
            )
            for entry in overview
        ]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/slots/block')
def update_blocked_slots(
    data: BlockSlotsRequest,
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    del current_user
    action = data.action.strip().lower()
    if action not in SLOT_ACTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid action. Expected 'block' or 'unblock'.",
        )
    if not data.slots:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='No slots provided to update.')

    timestamps = sorted({combine_date_time(slot.date, slot.time) for slot in data.slots})

    ensure_database_ready()

    try:
        if action == 'block':
            existing = {
                blocked for (blocked,) in db.query(BlockedSlot.date).filter(BlockedSlot.date.in_(timestamps)).all()
            }
            reason = (data.reason or '').strip() or 'Blocked'
            for timestamp in timestamps:
                if timestamp not in existing:
                    db.add(BlockedSlot(date=timestamp, reason=reason))
        else:
            db.query(BlockedSlot).filter(BlockedSlot.date.in_(timestamps)).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return {'success': True, 'action': action, 'count': len(timestamps)}


@router.get('/reports')
def admin_report(
    type: str = Query(default='appointments'),
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
    format: str | None = Query(default=None),
    doctor_id: str | None = Query(default=None),
    download: bool = Query(default=False),
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    del current_user
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
    requested_doctor_id = parse_doctor_id_param(doctor_id)

    ensure_database_ready()

    try:
        query = db.query(Appointment).filter(
            Appointment.status != STATUS_CANCELLED,
            Appointment.date >= parse_optional_datetime_param(start_day.isoformat()),
            Appointment.date <= parse_optional_datetime_param(end_day.isoformat(), end_of_day=True),
        )
        if requested_doctor_id is not None:
            query = query.filter(Appointment.doctor_id == requested_doctor_id)
        rows = reports.build_report_rows(query.order_by(Appointment.date.asc()).all())
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return build_report_response(
        rows,
        filename=reports.report_filename(type, start_day, end_day),
        report_format=report_format,
        title='Appointment Report',
        include_doctor=True,
        download=download,
    )
