import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from dentalcare.core import config
from dentalcare.database import Base, engine, ensure_availability_schema, ensure_appointment_schema
from dentalcare.models import appointment, availability, blocked_slot, user  # noqa: F401
from dentalcare.routes import (
    admin_routes,
    appointment_routes,
    auth_routes,
    availability_routes,
    doctor_routes,
)

logging.basicConfig(level=config.LOG_LEVEL)

app = FastAPI(title='Dental Care API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Dental Care API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(availability_routes.router)
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(doctor_routes.router, prefix='/doctor')
app.include_router(admin_routes.router, prefix='/admin')
