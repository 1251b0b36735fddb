"""Per-request identity resolution.

Every request resolves to either ``None`` (anonymous) or an ``Identity``.
The role is re-read from the database on each request, so a promotion or
demotion takes effect immediately and no admin flag outlives a request.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.auth.security import verify_access_token
from app.database import get_db
from app.errors import Forbidden, Unauthorized
from app.models.user import User, UserRole

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin


def _load_user(credentials: Optional[HTTPAuthorizationCredentials], db: Session) -> Optional[User]:
    if credentials is None:
        return None
    user_id = verify_access_token(credentials.credentials)
    if user_id is None:
        raise Unauthorized("Invalid or expired token")
    user = db.query(User).filter(User.user_id == user_id).first()
    if user is None:
        raise Unauthorized("User not found")
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    user = _load_user(credentials, db)
    if user is None:
        raise Unauthorized()
    return user


def get_optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[Identity]:
    """Anonymous callers get None; a bad token is still rejected."""
    user = _load_user(credentials, db)
    if user is None:
        return None
    return Identity(user_id=user.user_id, role=user.role)


def get_identity(user: User = Depends(get_current_user)) -> Identity:
    return Identity(user_id=user.user_id, role=user.role)


def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_admin:
        raise Forbidden()
    return identity
