"""Authentication routes: register, login, passwords."""
import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.auth.dependencies import get_current_user
from app.auth.security import create_access_token
from app.database import get_db
from app.models.user import User
from app.schemas.user import (
    AuthResponse,
    PasswordChange,
    PasswordResetConfirm,
    PasswordResetRequest,
    UserLogin,
    UserOut,
    UserRegister,
)
from app.services import identity_service
from app.services.analytics_service import request_metadata
from app.services.notification_service import NotificationDispatcher, get_notifications

logger = logging.getLogger(__name__)
router = APIRouter()


def _auth_response(user: User) -> AuthResponse:
    return AuthResponse(access_token=create_access_token(user.user_id), user=UserOut.model_validate(user))


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(payload: UserRegister, request: Request, db: Session = Depends(get_db)):
    """Create a poster account and return a bearer token."""
    user = identity_service.register(
        db,
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        metadata=request_metadata(request),
    )
    return _auth_response(user)


@router.post("/login", response_model=AuthResponse)
def login(payload: UserLogin, request: Request, db: Session = Depends(get_db)):
    user = identity_service.authenticate(db, payload.email, payload.password, metadata=request_metadata(request))
    return _auth_response(user)


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user


@router.post("/change-password")
def change_password(payload: PasswordChange, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    identity_service.change_password(db, user, payload.current_password, payload.new_password)
    return {"message": "Password updated successfully"}


@router.post("/password-reset", status_code=status.HTTP_202_ACCEPTED)
def request_password_reset(
    payload: PasswordResetRequest,
    db: Session = Depends(get_db),
    notifications: NotificationDispatcher = Depends(get_notifications),
):
    """Always answers the same way so addresses cannot be probed."""
    identity_service.request_password_reset(db, payload.email, notifications)
    return {"message": "If the email exists, a password reset link has been sent"}


@router.post("/password-reset/confirm")
def confirm_password_reset(
    payload: PasswordResetConfirm,
    db: Session = Depends(get_db),
    notifications: NotificationDispatcher = Depends(get_notifications),
):
    identity_service.reset_password(db, payload.token, payload.new_password, notifications)
    return {"message": "Password updated successfully"}
