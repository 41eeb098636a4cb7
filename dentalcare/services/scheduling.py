"""Slot generation and doctor assignment.

Working hours come from ``Availability`` rows keyed by weekday (0 = Sunday).
A doctor's own row for a weekday always wins over the clinic-wide default, and
an inactive own row marks the day off for that doctor. Slots are fixed
``SLOT_INTERVAL_MINUTES`` steps inside the working window; an appointment
occupies its doctor at its exact start timestamp.
"""

from datetime import date, datetime, time, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Session

from dentalcare.core import config
from dentalcare.models.appointment import Appointment, INACTIVE_STATUSES, STATUS_CANCELLED
from dentalcare.models.availability import Availability
from dentalcare.models.blocked_slot import BlockedSlot
from dentalcare.models.user import ROLE_DOCTOR, User

SLOT_INTERVAL_MINUTES = config.SLOT_INTERVAL_MINUTES
ANY_DOCTOR = 'ANY'

Window = tuple[int, int]


def parse_hhmm(value: str) -> int:
    """Convert ``"HH:MM"`` to minutes since midnight."""
    hours_text, minutes_text = value.strip().split(':')
    hours, minutes = int(hours_text), int(minutes_text)
    if not (0 <= hours <= 24 and 0 <= minutes < 60) or hours * 60 + minutes > 24 * 60:
        raise ValueError(f'Invalid time: {value}')
    return hours * 60 + minutes


def format_minutes(total_minutes: int) -> str:
    return f'{total_minutes // 60:02d}:{total_minutes % 60:02d}'


def minutes_of(when: datetime) -> int:
    return when.hour * 60 + when.minute


def day_of_week(day: date) -> int:
    return (day.weekday() + 1) % 7


def normalize_slot_start(when: datetime) -> datetime:
    return when.replace(second=0, microsecond=0)


def parse_doctor_id(value: str | int | None) -> int | None:
    """``None``, blank and ``"ANY"`` all mean "any dentist"."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    normalized = value.strip()
    if not normalized or normalized.upper() in {ANY_DOCTOR, 'ALL'}:
        return None
    return int(normalized)


def generate_slot_times(start_minutes: int, end_minutes: int, interval: int = SLOT_INTERVAL_MINUTES) -> list[str]:
    slots = []
    current = start_minutes
    while current < end_minutes:
        slots.append(format_minutes(current))
        current += interval
    return slots


def window_of(row: Availability | None) -> Window | None:
    if row is None:
        return None
    start, end = parse_hhmm(row.start_time), parse_hhmm(row.end_time)
    if end <= start:
        return None
    return start, end


def covers(window: Window | None, minute: int) -> bool:
    return window is not None and window[0] <= minute < window[1]


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def get_doctor_row(db: Session, doctor_id: int, weekday: int) -> Availability | None:
    return db.query(Availability).filter(
        Availability.doctor_id == doctor_id,
        Availability.day_of_week == weekday,
    ).first()


def get_global_row(db: Session, weekday: int) -> Availability | None:
    return db.query(Availability).filter(
        Availability.doctor_id.is_(None),
        Availability.day_of_week == weekday,
        Availability.is_active.is_(True),
    ).first()


def doctor_schedule_for(db: Session, doctor_id: int, day: date) -> Window | None:
    weekday = day_of_week(day)
    doctor_row = get_doctor_row(db, doctor_id, weekday)
    if doctor_row is not None:
        return window_of(doctor_row) if doctor_row.is_active else None
    return window_of(get_global_row(db, weekday))


def resolve_working_hours(db: Session, day: date, doctor_id: int | None = None) -> Window | None:
    if doctor_id is not None:
        return doctor_schedule_for(db, doctor_id, day)

    rows = db.query(Availability).filter(
        Availability.day_of_week == day_of_week(day),
        Availability.is_active.is_(True),
    ).all()
    windows = [window for window in (window_of(row) for row in rows) if window]
    if not windows:
        return None
    return min(start for start, _ in windows), max(end for _, end in windows)


def is_slot_start(db: Session, when: datetime, doctor_id: int | None = None) -> bool:
    """True when ``when`` lands on a slot ``generate_slot_times`` would offer.

    Days without working hours pass here and are left to doctor assignment.
    """
    window = resolve_working_hours(db, when.date(), doctor_id)
    if window is None:
        return True
    return (minutes_of(when) - window[0]) % SLOT_INTERVAL_MINUTES == 0


def doctor_works_at(db: Session, doctor_id: int, when: datetime) -> bool:
    return covers(doctor_schedule_for(db, doctor_id, when.date()), minutes_of(when))


def list_doctors(db: Session) -> list[User]:
    return db.query(User).filter(User.role == ROLE_DOCTOR).order_by(User.name.asc(), User.id.asc()).all()


def appointments_on(db: Session, day: date, doctor_id: int | None = None) -> list[Appointment]:
    start, end = day_bounds(day)
    query = db.query(Appointment).filter(
        Appointment.date >= start,
        Appointment.date < end,
        Appointment.status != STATUS_CANCELLED,
    )
    if doctor_id is not None:
        query = query.filter(Appointment.doctor_id == doctor_id)
    return query.order_by(Appointment.date.asc()).all()


def busy_doctor_ids(db: Session, when: datetime) -> set[int]:
    rows = db.query(Appointment.doctor_id).filter(
        Appointment.date == normalize_slot_start(when),
        Appointment.status != STATUS_CANCELLED,
        Appointment.doctor_id.is_not(None),
    ).all()
    return {doctor_id for (doctor_id,) in rows}


def daily_load(db: Session, doctor_ids: list[int], day: date) -> dict[int, int]:
    start, end = day_bounds(day)
    counts = {doctor_id: 0 for doctor_id in doctor_ids}
    rows = db.query(Appointment.doctor_id).filter(
        Appointment.doctor_id.in_(doctor_ids),
        Appointment.date >= start,
        Appointment.date < end,
        Appointment.status != STATUS_CANCELLED,
    ).all()
    for (doctor_id,) in rows:
        counts[doctor_id] = counts.get(doctor_id, 0) + 1
    return counts


def assign_doctor(db: Session, when: datetime, requested_doctor_id: int | None = None) -> int | None:
    """Pick the dentist for a slot, or ``None`` when nobody can take it.

    A requested dentist must be working and free. Otherwise the free, working
    dentist with the fewest appointments that day gets it, which spreads the
    load round-robin style across the team.
    """
    when = normalize_slot_start(when)
    busy = busy_doctor_ids(db, when)

    if requested_doctor_id is not None:
        doctor = db.query(User).filter(User.id == requested_doctor_id, User.role == ROLE_DOCTOR).first()
        if doctor is None or doctor.id in busy or not doctor_works_at(db, doctor.id, when):
            return None
        return doctor.id

    candidates = [
        doctor for doctor in list_doctors(db)
        if doctor.id not in busy and doctor_works_at(db, doctor.id, when)
    ]
    if not candidates:
        return None

    load = daily_load(db, [doctor.id for doctor in candidates], when.date())
    chosen = min(candidates, key=lambda doctor: (load.get(doctor.id, 0), (doctor.name or '').lower(), doctor.id))
    return chosen.id


def blocked_times_on(db: Session, day: date) -> set[str]:
    start, end = day_bounds(day)
    rows = db.query(BlockedSlot.date).filter(BlockedSlot.date >= start, BlockedSlot.date < end).all()
    return {blocked.strftime('%H:%M') for (blocked,) in rows}


def is_blocked(db: Session, when: datetime) -> bool:
    return db.query(BlockedSlot).filter(BlockedSlot.date == normalize_slot_start(when)).first() is not None


def doctor_is_double_booked(db: Session, doctor_id: int, when: datetime, exclude_id: int | None = None) -> bool:
    query = db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.date == normalize_slot_start(when),
        Appointment.status != STATUS_CANCELLED,
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    return query.first() is not None


def find_active_appointment(
    db: Session,
    patient_id: int | None,
    patient_email: str | None,
    today: date | None = None,
    exclude_id: int | None = None,
) -> Appointment | None:
    conditions = []
    if patient_id is not None:
        conditions.append(Appointment.patient_id == patient_id)
    if patient_email:
        conditions.append(Appointment.patient_email == patient_email.strip().lower())
    if not conditions:
        return None

    active_from = datetime.combine(today or date.today(), time.min)
    query = db.query(Appointment).filter(
        or_(*conditions),
        Appointment.status.not_in(INACTIVE_STATUSES),
        Appointment.date >= active_from,
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    return query.first()


def slot_statuses(db: Session, day: date, doctor_id: int | None = None) -> list[dict]:
    window = resolve_working_hours(db, day, doctor_id)
    if window is None:
        return []

    blocked = blocked_times_on(db, day)
    booked_by_time: dict[str, set[int | None]] = {}
    for appointment in appointments_on(db, day, doctor_id):
        booked_by_time.setdefault(appointment.date.strftime('%H:%M'), set()).add(appointment.doctor_id)

    schedules: dict[int, Window | None] = {}
    if doctor_id is None:
        schedules = {doctor.id: doctor_schedule_for(db, doctor.id, day) for doctor in list_doctors(db)}

    slots = []
    for slot_time in generate_slot_times(*window):
        if slot_time in blocked:
            continue

        booked = booked_by_time.get(slot_time, set())
        if doctor_id is not None:
            is_filled = bool(booked)
        else:
            minute = parse_hhmm(slot_time)
            free_doctors = [
                candidate for candidate, schedule in schedules.items()
                if covers(schedule, minute) and candidate not in booked
            ]
            is_filled = not free_doctors

        slots.append({'time': slot_time, 'is_filled': is_filled})

    return slots


def vacant_slots(db: Session, day: date, doctor_id: int | None = None) -> list[str]:
    return [slot['time'] for slot in slot_statuses(db, day, doctor_id) if not slot['is_filled']]


def clinic_slot_overview(db: Session, start_day: date, end_day: date) -> list[dict]:
    """Every slot of the clinic-wide window between two days, with its booking."""
    overview = []
    current_day = start_day
    while current_day <= end_day:
        window = resolve_working_hours(db, current_day)
        if window is not None:
            blocked = blocked_times_on(db, current_day)
            by_time = {}
            for appointment in appointments_on(db, current_day):
                by_time.setdefault(appointment.date.strftime('%H:%M'), appointment)

            for slot_time in generate_slot_times(*window):
                overview.append({
                    'date': current_day,
                    'time': slot_time,
                    'is_booked': slot_time in by_time,
                    'is_blocked': slot_time in blocked,
                    'appointment': by_time.get(slot_time),
                })

        current_day += timedelta(days=1)

    return overview
