"""Event store: CRUD and status-scoped queries for events.

Owner-scoped writes and status transitions are single conditional
statements (``UPDATE ... WHERE``), so the ownership or status check and the
write cannot be separated by a concurrent request.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional, Union

import pytz
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import utcnow
from app.errors import NotFound, NotFoundOrUnauthorized, ValidationError
from app.models.analytics import AnalyticsRecord
from app.models.event import Event, ApprovalStatus
from app.models.tokens import EventApprovalToken
from app.schemas.event import EventCreate, EventUpdate, AdminEventUpdate

logger = logging.getLogger(__name__)

DATE_WINDOWS = {"this_week": 7, "next_month": 30}


def _validated(schema, fields: Union[dict[str, Any], Any]):
    if isinstance(fields, schema):
        return fields
    try:
        return schema.model_validate(fields)
    except PydanticValidationError as exc:
        raise ValidationError(exc.errors(include_url=False, include_context=False, include_input=False))


def _contains_pattern(text: str) -> str:
    """LIKE pattern matching ``text`` literally anywhere in the column."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def local_today() -> date:
    """Today's date in the configured app timezone."""
    return datetime.now(pytz.timezone(settings.APP_TIMEZONE)).date()


def create(db: Session, owner_id: str, fields: Union[EventCreate, dict[str, Any]], commit: bool = True) -> Event:
    """Insert a new event: pending, active, zero views."""
    payload = _validated(EventCreate, fields)
    event = Event(
        user_id=owner_id,
        approval_status=ApprovalStatus.pending,
        is_active=True,
        views_count=0,
        **payload.to_columns(),
    )
    db.add(event)
    if commit:
        db.commit()
        db.refresh(event)
    else:
        db.flush()
    logger.info("Created event '%s' (%s) for owner %s", event.title, event.event_id, owner_id)
    return event


def get_by_id(db: Session, event_id: str) -> Event:
    event = db.query(Event).filter(Event.event_id == event_id).first()
    if not event:
        raise NotFound()
    return event


def list_approved_active(
    db: Session,
    search: Optional[str] = None,
    date_filter: Optional[str] = None,
    today: Optional[date] = None,
) -> list[Event]:
    """Public feed: approved and active events, soonest first."""
    query = db.query(Event).filter(
        Event.approval_status == ApprovalStatus.approved,
        Event.is_active.is_(True),
    )
    if search:
        query = query.filter(Event.title.ilike(_contains_pattern(search.strip()), escape="\\"))
    if date_filter:
        today = today or local_today()
        if date_filter == "today":
            query = query.filter(Event.date == today)
        elif date_filter in DATE_WINDOWS:
            query = query.filter(Event.date >= today, Event.date <= today + timedelta(days=DATE_WINDOWS[date_filter]))
        else:
            raise ValidationError([{"loc": ["query", "filter"], "msg": f"Unknown date filter '{date_filter}'"}])
    return query.order_by(Event.date.asc(), Event.time.asc()).all()


def list_by_owner(db: Session, owner_id: str) -> list[Event]:
    return db.query(Event).filter(Event.user_id == owner_id).order_by(Event.created_at.desc()).all()


def list_pending(db: Session) -> list[Event]:
    return (
        db.query(Event)
        .filter(Event.approval_status == ApprovalStatus.pending)
        .order_by(Event.created_at.desc())
        .all()
    )


def list_all(db: Session) -> list[Event]:
    return db.query(Event).order_by(Event.created_at.desc()).all()


def update(db: Session, event_id: str, owner_id: str, fields: Union[EventUpdate, dict[str, Any]]) -> Event:
    """Owner edit. Always sends the event back to pending for re-review."""
    payload = _validated(EventUpdate, fields)
    values = payload.to_columns()
    values.update(approval_status=ApprovalStatus.pending, updated_at=utcnow())

    changed = (
        db.query(Event)
        .filter(Event.event_id == event_id, Event.user_id == owner_id)
        .update(values, synchronize_session=False)
    )
    if changed != 1:
        db.rollback()
        raise NotFoundOrUnauthorized()
    db.commit()
    event = get_by_id(db, event_id)
    logger.info("Owner %s updated event %s; status reset to pending", owner_id, event_id)
    return event


def admin_update(db: Session, event_id: str, fields: Union[AdminEventUpdate, dict[str, Any]]) -> Event:
    """Admin edit. Re-pends only when ADMIN_EDITS_REPEND is enabled."""
    payload = _validated(AdminEventUpdate, fields)
    event = get_by_id(db, event_id)
    for field, value in payload.to_columns().items():
        setattr(event, field, value)
    if settings.ADMIN_EDITS_REPEND:
        event.approval_status = ApprovalStatus.pending
    event.updated_at = utcnow()
    db.commit()
    db.refresh(event)
    logger.info("Admin updated event %s (status %s)", event_id, event.approval_status.value)
    return event


def delete(db: Session, event_id: str, owner_id: Optional[str]) -> None:
    """Hard-delete an event.

    ``owner_id`` restricts the delete to that owner; ``None`` is the admin
    path. Approval tokens go with the event and analytics records keep their
    row with the event reference cleared.
    """
    query = db.query(Event).filter(Event.event_id == event_id)
    if owner_id is not None:
        query = query.filter(Event.user_id == owner_id)
    if query.first() is None:
        raise NotFoundOrUnauthorized() if owner_id is not None else NotFound()

    db.query(EventApprovalToken).filter(EventApprovalToken.event_id == event_id).delete(synchronize_session=False)
    db.query(AnalyticsRecord).filter(AnalyticsRecord.event_id == event_id).update(
        {AnalyticsRecord.event_id: None}, synchronize_session=False
    )
    deleted = query.delete(synchronize_session=False)
    if deleted != 1:
        db.rollback()
        raise NotFoundOrUnauthorized() if owner_id is not None else NotFound()
    db.commit()
    logger.info("Deleted event %s (%s)", event_id, "owner " + owner_id if owner_id else "admin")


def increment_views(db: Session, event_id: str) -> None:
    """Best-effort view counter bump; errors are logged, never raised."""
    try:
        db.query(Event).filter(Event.event_id == event_id).update(
            {Event.views_count: Event.views_count + 1}, synchronize_session=False
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to increment views for event %s", event_id)


def transition_status(db: Session, event_id: str, target: ApprovalStatus) -> bool:
    """Move a pending event to ``target``. Does not commit.

    Returns False when the event is missing or no longer pending, which is
    also what the loser of two concurrent transitions sees.
    """
    changed = (
        db.query(Event)
        .filter(Event.event_id == event_id, Event.approval_status == ApprovalStatus.pending)
        .update({Event.approval_status: target, Event.updated_at: utcnow()}, synchronize_session=False)
    )
    return changed == 1
