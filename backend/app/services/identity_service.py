"""Identity store: registration, login, passwords and admin promotion."""
import logging
from datetime import timedelta
from typing import Any, Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth.security import generate_url_token, hash_password, verify_password
from app.config import settings
from app.database import utcnow
from app.errors import InvalidOrExpiredToken, NotFound, Unauthorized
from app.models.analytics import ActivityType
from app.models.tokens import PasswordResetToken
from app.models.user import User, UserRole
from app.services import analytics_service, email_templates
from app.services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)


def _email_taken() -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email).first()


def register(
    db: Session,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    metadata: Optional[dict[str, Any]] = None,
) -> User:
    """Create a poster account. Email must be unique."""
    if get_user_by_email(db, email):
        raise _email_taken()

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        role=UserRole.poster,
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        # lost a race with a concurrent registration for the same email
        db.rollback()
        raise _email_taken()
    analytics_service.log_activity(db, ActivityType.registration, user_id=user.user_id, metadata=metadata, commit=False)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s (%s)", user.user_id, user.email)
    return user


def authenticate(db: Session, email: str, password: str, metadata: Optional[dict[str, Any]] = None) -> User:
    user = get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Failed login for %s", email)
        raise Unauthorized("Invalid email or password")
    analytics_service.log_activity(db, ActivityType.login, user_id=user.user_id, metadata=metadata)
    logger.info("User %s logged in", user.user_id)
    return user


def _set_password(user: User, new_password: str) -> None:
    user.password_hash = hash_password(new_password)
    user.updated_at = utcnow()


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")
    _set_password(user, new_password)
    db.commit()
    logger.info("User %s changed their password", user.user_id)


def request_password_reset(db: Session, email: str, notifications: NotificationDispatcher) -> None:
    """Email a one-hour reset link. Silent when the address is unknown."""
    user = get_user_by_email(db, email)
    if user is None:
        logger.info("Password reset requested for unknown email")
        return

    db.query(PasswordResetToken).filter(PasswordResetToken.user_id == user.user_id).delete(synchronize_session=False)
    token = generate_url_token()
    db.add(PasswordResetToken(
        user_id=user.user_id,
        token=token,
        expires_at=utcnow() + timedelta(minutes=settings.PASSWORD_RESET_TOKEN_TTL_MINUTES),
    ))
    db.commit()

    reset_link = f"{settings.FRONTEND_URL.rstrip('/')}/reset-password?token={token}"
    subject, body = email_templates.password_reset(
        user.display_name, reset_link, settings.PASSWORD_RESET_TOKEN_TTL_MINUTES
    )
    notifications.dispatch(user.email, subject, body)
    logger.info("Password reset token issued for user %s", user.user_id)


def reset_password(db: Session, token: str, new_password: str, notifications: NotificationDispatcher) -> User:
    """Consume a reset token and set the new password in one transaction."""
    row = db.query(PasswordResetToken.user_id).filter(PasswordResetToken.token == token).first()
    changed = 0
    if row is not None:
        changed = (
            db.query(PasswordResetToken)
            .filter(
                PasswordResetToken.token == token,
                PasswordResetToken.used.is_(False),
                PasswordResetToken.expires_at > utcnow(),
            )
            .update({PasswordResetToken.used: True}, synchronize_session=False)
        )
    if changed != 1:
        db.rollback()
        logger.warning("Rejected password reset token")
        raise InvalidOrExpiredToken("Invalid or expired reset token")

    user = db.query(User).filter(User.user_id == row.user_id).first()
    if user is None:
        db.rollback()
        raise InvalidOrExpiredToken("Invalid or expired reset token")
    _set_password(user, new_password)
    db.commit()

    subject, body = email_templates.password_reset_success(user.display_name)
    notifications.dispatch(user.email, subject, body)
    logger.info("Password reset completed for user %s", user.user_id)
    return user


def promote_to_admin(db: Session, email: str) -> User:
    """Out-of-band role change; not reachable over HTTP."""
    user = get_user_by_email(db, email)
    if user is None:
        raise NotFound(f"No user with email {email}")
    user.role = UserRole.admin
    user.updated_at = utcnow()
    db.commit()
    db.refresh(user)
    logger.info("Promoted user %s to admin", user.user_id)
    return user
