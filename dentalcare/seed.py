"""Load the clinic's default opening hours and the first staff accounts.

Run with ``python -m dentalcare.seed``. Passwords come only from the
``SEED_*`` environment variables; accounts without one are skipped.
"""

from sqlalchemy.orm import Session

from dentalcare.auth.passwords import hash_password
from dentalcare.core import config
from dentalcare.database import Base, SessionLocal, engine, ensure_appointment_schema, ensure_availability_schema
from dentalcare.models import appointment, blocked_slot  # noqa: F401
from dentalcare.models.availability import Availability
from dentalcare.models.user import ROLE_ADMIN, ROLE_DOCTOR, User

# Monday to Saturday, 0 = Sunday
DEFAULT_WORKING_DAYS = (1, 2, 3, 4, 5, 6)
DEFAULT_START_TIME = '09:00'
DEFAULT_END_TIME = '19:00'


def seed_global_availability(db: Session) -> int:
    for weekday in DEFAULT_WORKING_DAYS:
        row = db.query(Availability).filter(
            Availability.doctor_id.is_(None),
            Availability.day_of_week == weekday,
        ).first()
        if row is None:
            row = Availability(doctor_id=None, day_of_week=weekday)
            db.add(row)
        row.start_time = DEFAULT_START_TIME
        row.end_time = DEFAULT_END_TIME
        row.is_active = True
    return len(DEFAULT_WORKING_DAYS)


def seed_account(db: Session, email: str, password: str, role: str, name: str) -> User | None:
    email = email.strip().lower()
    if not email or not password:
        return None

    account = db.query(User).filter(User.email == email).first()
    if account is None:
        account = User(email=email)
        db.add(account)
    account.name = account.name or name
    account.role = role
    account.hashed_password = hash_password(password)
    return account


def doctor_limit_reached(db: Session, email: str) -> bool:
    """True when promoting ``email`` to doctor would go past ``MAX_DOCTORS``."""
    already_doctor = db.query(User).filter(User.email == email.strip().lower(), User.role == ROLE_DOCTOR).first()
    if already_doctor is not None:
        return False
    return db.query(User).filter(User.role == ROLE_DOCTOR).count() >= config.MAX_DOCTORS


def seed_all(db: Session) -> None:
    days = seed_global_availability(db)
    print(f'Global availability set for {days} days ({DEFAULT_START_TIME}-{DEFAULT_END_TIME}).')

    accounts = (
        (config.SEED_ADMIN_EMAIL, config.SEED_ADMIN_PASSWORD, ROLE_ADMIN, 'Admin'),
        (config.SEED_DOCTOR_EMAIL, config.SEED_DOCTOR_PASSWORD, ROLE_DOCTOR, config.SEED_DOCTOR_NAME),
    )
    for email, password, role, name in accounts:
        if role == ROLE_DOCTOR and email and doctor_limit_reached(db, email):
            print(f'Skipping doctor account {email}: maximum of {config.MAX_DOCTORS} doctor logins reached.')
            continue
        account = seed_account(db, email, password, role, name)
        if account is None:
            print(f'Skipping {role.lower()} account: set SEED_{role}_EMAIL and SEED_{role}_PASSWORD.')
        else:
            print(f'Upserted {role.lower()} account {account.email}.')


def main() -> None:
    Base.metadata.create_all(bind=engine)
    ensure_availability_schema()
    ensure_appointment_schema()

    db = SessionLocal()
    try:
        seed_all(db)
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    print('Seed complete.')


if __name__ == '__main__':
    main()
