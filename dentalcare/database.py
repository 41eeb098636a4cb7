from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from dentalcare.core import config


DATABASE_URL = config.DATABASE_URL

connect_args = {'check_same_thread': False} if DATABASE_URL.startswith('sqlite') else {}
engine = create_engine(DATABASE_URL, pool_pre_ping=True, echo=config.DATABASE_ECHO, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked = False
_appointment_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        if 'availability' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('availability')}
        migration_steps = [
            ('doctor_id', 'ALTER TABLE availability ADD COLUMN doctor_id INTEGER REFERENCES users(id) ON DELETE CASCADE'),
            ('is_active', 'ALTER TABLE availability ADD COLUMN is_active BOOLEAN DEFAULT TRUE'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_availability_day_doctor ON availability(day_of_week, doctor_id)')
            )

        _availability_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('treatment_status', 'ALTER TABLE appointments ADD COLUMN treatment_status VARCHAR'),
            ('payment_amount', 'ALTER TABLE appointments ADD COLUMN payment_amount NUMERIC(10, 2)'),
            ('admin_confirmed', 'ALTER TABLE appointments ADD COLUMN admin_confirmed BOOLEAN DEFAULT FALSE'),
            ('created_by', 'ALTER TABLE appointments ADD COLUMN created_by VARCHAR'),
            ('patient_name', 'ALTER TABLE appointments ADD COLUMN patient_name VARCHAR'),
            ('patient_email', 'ALTER TABLE appointments ADD COLUMN patient_email VARCHAR'),
            ('patient_phone', 'ALTER TABLE appointments ADD COLUMN patient_phone VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_date_doctor ON appointments(date, doctor_id)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_patient_email ON appointments(patient_email)')
            )

        _appointment_schema_checked = True
