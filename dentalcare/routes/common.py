from dataclasses import asdict
from datetime import date, datetime, time

from fastapi import HTTPException, status
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dentalcare.database import ensure_appointment_schema, ensure_availability_schema
from dentalcare.models.appointment import Appointment, INACTIVE_STATUSES, STATUS_CANCELLED
from dentalcare.services import reports, scheduling
from dentalcare.services.scheduling import parse_doctor_id, parse_hhmm

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'
MAX_NOTES_LENGTH = 1000


class PersonSummary(BaseModel):
    id: int
    name: str | None = None
    email: str
    phone: str | None = None

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    id: int
    service: str
    date: datetime
    status: str | None = None
    payment_status: str | None = None
    treatment_status: str | None = None
    payment_amount: float | None = None
    notes: str | None = None
    created_by: str | None = None
    admin_confirmed: bool | None = None
    patient_id: int | None = None
    doctor_id: int | None = None
    patient_name: str | None = None
    patient_email: str | None = None
    patient_phone: str | None = None
    patient: PersonSummary | None = None
    doctor: PersonSummary | None = None

    class Config:
        from_attributes = True


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def get_appointment_or_404(appointment_id: int, db: Session) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Appointment not found')
    return appointment


def ensure_can_reactivate(db: Session, appointment: Appointment, new_status: str | None, active_detail: str) -> None:
    """Re-run the booking checks when a cancelled appointment is brought back."""
    if appointment.status != STATUS_CANCELLED or new_status is None or new_status == STATUS_CANCELLED:
        return

    if appointment.doctor_id is not None and scheduling.doctor_is_double_booked(
        db, appointment.doctor_id, appointment.date, exclude_id=appointment.id
    ):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='This doctor already has an appointment at that time.',
        )

    if new_status not in INACTIVE_STATUSES and scheduling.find_active_appointment(
        db, appointment.patient_id, appointment.patient_email, exclude_id=appointment.id
    ):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=active_detail)


def normalize_email(value: str) -> str:
    return value.strip().lower()


def normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    if len(normalized) > MAX_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_NOTES_LENGTH} characters or fewer.')
    return normalized


def validate_hhmm(value: str) -> str:
    minutes = parse_hhmm(value)
    if minutes >= 24 * 60:
        raise ValueError('Time must be before 24:00.')
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def combine_date_time(day: date, hhmm: str) -> datetime:
    minutes = parse_hhmm(hhmm)
    return datetime.combine(day, time(minutes // 60, minutes % 60))


def parse_doctor_id_param(value: str | None) -> int | None:
    try:
        return parse_doctor_id(value)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid doctor id.') from exc


def parse_date_param(value: str | None, name: str) -> date:
    if not value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f'{name} query parameter is required')
    try:
        # Full timestamps are allowed; only the calendar date is used.
        return date.fromisoformat(value.strip().split('T', 1)[0])
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid date format') from exc


def parse_optional_datetime_param(value: str | None, end_of_day: bool = False) -> datetime | None:
    """Accept ``YYYY-MM-DD`` or a full ISO timestamp; bare dates cover the whole day."""
    if not value:
        return None
    normalized = value.strip()
    try:
        if len(normalized) == 10:
            day = date.fromisoformat(normalized)
            return datetime.combine(day, time.max if end_of_day else time.min)
        parsed = datetime.fromisoformat(normalized.replace('Z', '+00:00'))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid date format') from exc
    return parsed.replace(tzinfo=None)


def build_report_response(
    rows: list[reports.ReportRow],
    filename: str,
    report_format: str,
    title: str,
    include_doctor: bool,
    download: bool,
):
    """``excel`` returns JSON rows for the browser to build a sheet unless ``download`` asks for CSV."""
    if report_format == 'excel':
        if not download:
            return {'data': [asdict(row) for row in rows], 'filename': filename}
        return Response(
            content=reports.generate_csv_report(rows, include_doctor=include_doctor),
            media_type='text/csv',
            headers={'Content-Disposition': f'attachment; filename="{filename}.csv"'},
        )

    return Response(
        content=reports.generate_pdf_report(rows, title=title, include_doctor=include_doctor),
        media_type='application/pdf',
        headers={'Content-Disposition': f'attachment; filename="{filename}.pdf"'},
    )
