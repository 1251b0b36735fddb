"""Moderation workflow: the event approval state machine.

    pending --approve--> approved
    pending --reject---> rejected
    any     --owner edit--> pending

Authorization follows two separate paths. Content changes belong to the
event's owner; status transitions belong to admins. An admin needs no
ownership to moderate and an owner can never approve their own event.

Emails are dispatched only after the state change has been committed, and
a delivery failure never reverts it.
"""
import logging
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.auth.dependencies import Identity
from app.auth.security import generate_url_token
from app.config import settings
from app.database import utcnow
from app.errors import Forbidden, InvalidOrExpiredToken, InvalidState
from app.models.analytics import ActivityType
from app.models.event import Event, ApprovalStatus
from app.models.tokens import EventApprovalToken, TokenAction
from app.models.user import User
from app.services import analytics_service, email_templates, event_store
from app.services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)

_TARGET_STATUS = {
    TokenAction.approve: ApprovalStatus.approved,
    TokenAction.reject: ApprovalStatus.rejected,
}


# ── Approval tokens ────────────────────────────────────────────────


def issue_approval_tokens(db: Session, event_id: str) -> tuple[str, str]:
    """Replace any earlier tokens for the event with a fresh approve/reject pair.

    Does not commit; the caller's transaction owns the write.
    """
    db.query(EventApprovalToken).filter(EventApprovalToken.event_id == event_id).delete(synchronize_session=False)
    expires_at = utcnow() + timedelta(days=settings.APPROVAL_TOKEN_TTL_DAYS)
    approve_token, reject_token = generate_url_token(), generate_url_token()
    db.add_all([
        EventApprovalToken(event_id=event_id, token=approve_token, action=TokenAction.approve, expires_at=expires_at),
        EventApprovalToken(event_id=event_id, token=reject_token, action=TokenAction.reject, expires_at=expires_at),
    ])
    return approve_token, reject_token


def _invalidate_tokens(db: Session, event_id: str) -> None:
    db.query(EventApprovalToken).filter(
        EventApprovalToken.event_id == event_id,
        EventApprovalToken.used.is_(False),
    ).update({EventApprovalToken.used: True}, synchronize_session=False)


def _consume_token(db: Session, token: str, action: TokenAction) -> Optional[str]:
    """Mark a matching, unused, unexpired token as used. Returns its event id.

    The used/expiry check and the write are one conditional UPDATE, so two
    clicks on the same link cannot both succeed.
    """
    row = (
        db.query(EventApprovalToken.event_id)
        .filter(EventApprovalToken.token == token, EventApprovalToken.action == action)
        .first()
    )
    if row is None:
        return None
    changed = (
        db.query(EventApprovalToken)
        .filter(
            EventApprovalToken.token == token,
            EventApprovalToken.action == action,
            EventApprovalToken.used.is_(False),
            EventApprovalToken.expires_at > utcnow(),
        )
        .update({EventApprovalToken.used: True}, synchronize_session=False)
    )
    return row.event_id if changed == 1 else None


def preview_token(db: Session, token: str, action: TokenAction) -> Event:
    """Event behind a still-usable token. Read-only; the token stays unused."""
    row = (
        db.query(EventApprovalToken.event_id)
        .filter(
            EventApprovalToken.token == token,
            EventApprovalToken.action == action,
            EventApprovalToken.used.is_(False),
            EventApprovalToken.expires_at > utcnow(),
        )
        .first()
    )
    if row is None:
        raise InvalidOrExpiredToken()
    return event_store.get_by_id(db, row.event_id)


def action_link(token: str, action: TokenAction) -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/api/events/{action.value}-email/{token}"


# ── Notifications ──────────────────────────────────────────────────


def _notify_admin_pending(event: Event, approve_token: str, reject_token: str, notifications: NotificationDispatcher) -> None:
    subject, body = email_templates.event_pending_approval(
        event,
        approve_link=action_link(approve_token, TokenAction.approve),
        reject_link=action_link(reject_token, TokenAction.reject),
        ttl_days=settings.APPROVAL_TOKEN_TTL_DAYS,
    )
    notifications.dispatch(settings.ADMIN_EMAIL, subject, body)


def _notify_owner(db: Session, event: Event, notifications: NotificationDispatcher) -> None:
    owner = db.query(User).filter(User.user_id == event.user_id).first()
    if owner is None:
        logger.warning("Event %s has no owner record; skipping notification", event.event_id)
        return
    if event.approval_status == ApprovalStatus.approved:
        subject, body = email_templates.event_approved(event, owner.display_name)
    else:
        subject, body = email_templates.event_rejected(event, owner.display_name)
    notifications.dispatch(owner.email, subject, body)


# ── Owner operations ───────────────────────────────────────────────


def submit(
    db: Session,
    owner_id: str,
    fields: Any,
    notifications: NotificationDispatcher,
    metadata: Optional[dict[str, Any]] = None,
) -> Event:
    """Create a pending event, log it, mint approval tokens and email the admin."""
    event = event_store.create(db, owner_id, fields, commit=False)
    analytics_service.log_activity(
        db,
        ActivityType.event_post,
        user_id=owner_id,
        event_id=event.event_id,
        metadata={"category": event.category.value, **(metadata or {})},
        commit=False,
    )
    approve_token, reject_token = issue_approval_tokens(db, event.event_id)
    db.commit()
    db.refresh(event)

    _notify_admin_pending(event, approve_token, reject_token, notifications)
    logger.info("Event %s submitted for review by %s", event.event_id, owner_id)
    return event


def update(db: Session, event_id: str, owner_id: str, fields: Any, notifications: NotificationDispatcher) -> Event:
    """Owner edit. The event re-enters the review queue and old email links stop working."""
    event = event_store.update(db, event_id, owner_id, fields)
    if settings.NOTIFY_ADMIN_ON_RESUBMIT:
        approve_token, reject_token = issue_approval_tokens(db, event_id)
        db.commit()
        _notify_admin_pending(event, approve_token, reject_token, notifications)
    else:
        _invalidate_tokens(db, event_id)
        db.commit()
    return event


def delete(db: Session, event_id: str, actor: Identity) -> None:
    """Owners delete their own events; admins may delete any event."""
    event_store.delete(db, event_id, owner_id=None if actor.is_admin else actor.user_id)


# ── Admin transitions ──────────────────────────────────────────────


def _transition(db: Session, event_id: str, target: ApprovalStatus, notifications: NotificationDispatcher) -> Event:
    event_store.get_by_id(db, event_id)
    if not event_store.transition_status(db, event_id, target):
        db.rollback()
        raise InvalidState()
    _invalidate_tokens(db, event_id)
    db.commit()

    event = event_store.get_by_id(db, event_id)
    logger.info("Event %s moved to %s", event_id, target.value)
    _notify_owner(db, event, notifications)
    return event


def approve(db: Session, event_id: str, actor_is_admin: bool, notifications: NotificationDispatcher) -> Event:
    if not actor_is_admin:
        raise Forbidden()
    return _transition(db, event_id, ApprovalStatus.approved, notifications)


def reject(db: Session, event_id: str, actor_is_admin: bool, notifications: NotificationDispatcher) -> Event:
    if not actor_is_admin:
        raise Forbidden()
    return _transition(db, event_id, ApprovalStatus.rejected, notifications)


def _transition_via_token(db: Session, token: str, action: TokenAction, notifications: NotificationDispatcher) -> Event:
    """Consume the token and move the event in one transaction.

    The sibling token is invalidated as well, so the first link clicked
    decides the outcome.
    """
    event_id = _consume_token(db, token, action)
    if event_id is None:
        db.rollback()
        logger.warning("Rejected %s token: missing, used, expired or wrong action", action.value)
        raise InvalidOrExpiredToken()

    target = _TARGET_STATUS[action]
    if not event_store.transition_status(db, event_id, target):
        db.rollback()
        raise InvalidState()
    _invalidate_tokens(db, event_id)
    db.commit()

    event = event_store.get_by_id(db, event_id)
    logger.info("Event %s moved to %s via email token", event_id, target.value)
    _notify_owner(db, event, notifications)
    return event


def approve_via_token(db: Session, token: str, notifications: NotificationDispatcher) -> Event:
    return _transition_via_token(db, token, TokenAction.approve, notifications)


def reject_via_token(db: Session, token: str, notifications: NotificationDispatcher) -> Event:
    return _transition_via_token(db, token, TokenAction.reject, notifications)


# ── Public reads ───────────────────────────────────────────────────


def record_view(
    db: Session,
    event_id: str,
    viewer_id: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> None:
    """Count a detail view. Never fails the read that triggered it."""
    event_store.increment_views(db, event_id)
    try:
        analytics_service.log_activity(db, ActivityType.event_view, user_id=viewer_id, event_id=event_id, metadata=metadata)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to log view of event %s", event_id)
