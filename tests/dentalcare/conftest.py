import os
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret-key-for-the-dentalcare-suite')

from dentalcare.database import Base  # noqa: E402
from dentalcare.models.appointment import Appointment  # noqa: E402
from dentalcare.models.availability import Availability  # noqa: E402
from dentalcare.models.blocked_slot import BlockedSlot  # noqa: E402
from dentalcare.models.user import ROLE_ADMIN, ROLE_DOCTOR, ROLE_PATIENT, User  # noqa: E402

ROUTE_MODULES = (
    'dentalcare.routes.admin_routes',
    'dentalcare.routes.appointment_routes',
    'dentalcare.routes.auth_routes',
    'dentalcare.routes.availability_routes',
    'dentalcare.routes.doctor_routes',
)

TABLES = [User.__table__, Availability.__table__, Appointment.__table__, BlockedSlot.__table__]


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    for module in ROUTE_MODULES:
        monkeypatch.setattr(f'{module}.ensure_database_ready', lambda: None)


@pytest.fixture
def make_user(db):
    def factory(email: str, role: str = ROLE_PATIENT, name: str | None = None, **fields) -> User:
        user = User(email=email, role=role, name=name or email.split('@')[0].title(), **fields)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return factory


@pytest.fixture
def make_doctor(make_user):
    def factory(name: str, email: str | None = None) -> User:
        return make_user(email or f'{name.lower().replace(" ", ".")}@example.com', role=ROLE_DOCTOR, name=name)

    return factory


@pytest.fixture
def admin(make_user) -> User:
    return make_user('frontdesk@example.com', role=ROLE_ADMIN, name='Front Desk')


@pytest.fixture
def make_availability(db):
    def factory(day_of_week: int, start: str = '09:00', end: str = '19:00', doctor_id: int | None = None,
                is_active: bool = True) -> Availability:
        row = Availability(
            doctor_id=doctor_id,
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
            is_active=is_active,
        )
        db.add(row)
        db.commit()
        return row

    return factory


@pytest.fixture
def clinic_hours(make_availability) -> None:
    # Monday to Saturday, 0 = Sunday
    for weekday in range(1, 7):
        make_availability(weekday)


@pytest.fixture
def make_appointment(db):
    def factory(when: datetime, doctor: User | None = None, patient: User | None = None, **fields) -> Appointment:
        fields.setdefault('service', 'Checkup')
        appointment = Appointment(
            date=when,
            doctor_id=doctor.id if doctor else None,
            patient_id=patient.id if patient else None,
            **fields,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return factory
