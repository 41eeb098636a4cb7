import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dentalcare.auth import jwt_handler, supabase
from dentalcare.auth.dependencies import get_current_user
from dentalcare.auth.passwords import hash_password, verify_password
from dentalcare.database import get_db
from dentalcare.models.user import ROLE_PATIENT, User
from dentalcare.routes.common import database_unavailable, ensure_database_ready, normalize_email

router = APIRouter(tags=['auth'])
logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class UserResponse(BaseModel):
    id: int
    email: str
    name: str | None = None
    role: str
    phone: str | None = None

    class Config:
        from_attributes = True


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)
    phone: str | None = None

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        return normalized


class RegisterResponse(BaseModel):
    success: bool
    user: UserResponse


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return normalize_email(value)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = 'bearer'
    user: UserResponse


class EmailStatusResponse(BaseModel):
    exists: bool
    has_password: bool
    verified: bool


class ResendVerificationRequest(BaseModel):
    email: EmailStr


class UpdatePasswordRequest(BaseModel):
    access_token: str = Field(min_length=10)
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)


def patient_email_is_verified(email: str) -> bool:
    """Patients must confirm their email; legacy accounts unknown to Supabase are let through."""
    try:
        email_status = supabase.get_email_status_by_email(email)
    except supabase.SupabaseAuthError:
        logger.warning('Email verification provider unavailable; not blocking %s', email)
        return True
    if not email_status.supabase_user_exists:
        return True
    return email_status.email_confirmed


@router.post('/register', response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        user = db.query(User).filter(User.email == data.email).first()

        if user is not None and user.hashed_password:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='User already exists')

        if user is None:
            user = User(email=data.email, role=ROLE_PATIENT)
            db.add(user)

        # A guest created by an earlier booking claims its account here.
        user.name = data.name
        user.phone = data.phone or user.phone
        user.hashed_password = hash_password(data.password)
        db.commit()
        db.refresh(user)

        return RegisterResponse(success=True, user=UserResponse.model_validate(user))
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/login', response_model=TokenResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        user = db.query(User).filter(User.email == data.email).first()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if user is None or not verify_password(data.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid email or password')

    if user.role == ROLE_PATIENT and not patient_email_is_verified(user.email):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Please verify your email before signing in.',
        )

    token = jwt_handler.create_access_token(subject=user.email, role=user.role)
    return TokenResponse(access_token=token, user=UserResponse.model_validate(user))


@router.get('/me', response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.get('/exists')
def user_exists(email: str = Query(default=''), db: Session = Depends(get_db)):
    normalized_email = normalize_email(email)
    if not normalized_email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Email is required')

    ensure_database_ready()

    try:
        user = db.query(User.id).filter(User.email == normalized_email).first()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
    return {'exists': user is not None}


@router.get('/email-status', response_model=EmailStatusResponse)
def email_status(email: str = Query(default=''), db: Session = Depends(get_db)):
    normalized_email = normalize_email(email)
    if not normalized_email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Missing email')

    ensure_database_ready()

    try:
        user = db.query(User).filter(User.email == normalized_email).first()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if user is None:
        return EmailStatusResponse(exists=False, has_password=False, verified=False)

    has_password = bool(user.hashed_password)

    # Verification only applies to patients.
    if user.role != ROLE_PATIENT:
        return EmailStatusResponse(exists=True, has_password=has_password, verified=True)

    # Guest placeholders have not registered yet.
    if not has_password:
        return EmailStatusResponse(exists=False, has_password=False, verified=False)

    return EmailStatusResponse(
        exists=True,
        has_password=True,
        verified=patient_email_is_verified(normalized_email),
    )


@router.post('/resend-verification')
def resend_verification(data: ResendVerificationRequest):
    try:
        supabase.resend_signup_verification(normalize_email(data.email))
    except supabase.SupabaseAuthError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return {'success': True}


@router.post('/update-password')
def update_password(data: UpdatePasswordRequest, db: Session = Depends(get_db)):
    try:
        supabase_user = supabase.get_user_for_access_token(data.access_token)
    except supabase.SupabaseAuthError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Invalid or expired password reset link. Please request a new one.',
        ) from exc

    email = normalize_email(supabase_user.get('email') or '')
    supabase_user_id = supabase_user.get('id')
    if not email or not supabase_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Invalid or expired password reset link. Please request a new one.',
        )

    ensure_database_ready()

    try:
        user = db.query(User).filter(User.email == email).first()
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User not found')
        user.hashed_password = hash_password(data.password)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    # Keeping the Supabase password in sync is best effort; sign-in uses ours.
    try:
        supabase.update_user_password(supabase_user_id, data.password)
    except supabase.SupabaseAuthError:
        logger.warning('Could not sync password to Supabase for %s', email)

    return {'success': True}
