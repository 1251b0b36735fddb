"""Event API routes: public feed, owner CRUD and email-link moderation."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from app.auth.dependencies import Identity, get_identity, get_optional_identity
from app.config import settings
from app.database import get_db
from app.errors import NotFound
from app.models.tokens import TokenAction
from app.schemas.event import DateFilter, EventCreate, EventOut, EventUpdate
from app.services import email_templates, event_store, moderation_service
from app.services.analytics_service import request_metadata
from app.services.notification_service import NotificationDispatcher, get_notifications

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def submit_event(
    payload: EventCreate,
    request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
    notifications: NotificationDispatcher = Depends(get_notifications),
):
    """Submit an event for review. It starts pending and hidden from the feed."""
    return moderation_service.submit(
        db, identity.user_id, payload, notifications, metadata=request_metadata(request)
    )


@router.get("/", response_model=list[EventOut])
def list_events(
    search: Optional[str] = Query(None, max_length=200),
    date_filter: Optional[DateFilter] = Query(None, alias="filter"),
    db: Session = Depends(get_db),
):
    """Public feed of approved, active events, soonest first."""
    return event_store.list_approved_active(db, search=search, date_filter=date_filter)


@router.get("/my", response_model=list[EventOut])
def list_my_events(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """All of the caller's events, whatever their status."""
    return event_store.list_by_owner(db, identity.user_id)


@router.get("/approve-email/{token}", response_class=HTMLResponse)
def confirm_approve_via_email(token: str, db: Session = Depends(get_db)):
    """Confirmation page for the emailed approve link. Opening it changes nothing."""
    event = moderation_service.preview_token(db, token, TokenAction.approve)
    return HTMLResponse(email_templates.moderation_confirmation_page(event, TokenAction.approve.value))


@router.post("/approve-email/{token}", response_model=EventOut)
def approve_via_email(
    token: str,
    db: Session = Depends(get_db),
    notifications: NotificationDispatcher = Depends(get_notifications),
):
    """Approve with the single-use token from the admin email. No session needed."""
    return moderation_service.approve_via_token(db, token, notifications)


@router.get("/reject-email/{token}", response_class=HTMLResponse)
def confirm_reject_via_email(token: str, db: Session = Depends(get_db)):
    """Confirmation page for the emailed reject link. Opening it changes nothing."""
    event = moderation_service.preview_token(db, token, TokenAction.reject)
    return HTMLResponse(email_templates.moderation_confirmation_page(event, TokenAction.reject.value))


@router.post("/reject-email/{token}", response_model=EventOut)
def reject_via_email(
    token: str,
    db: Session = Depends(get_db),
    notifications: NotificationDispatcher = Depends(get_notifications),
):
    """Reject with the single-use token from the admin email. No session needed."""
    return moderation_service.reject_via_token(db, token, notifications)


@router.get("/{event_id}", response_model=EventOut)
def get_event(
    event_id: str,
    request: Request,
    identity: Optional[Identity] = Depends(get_optional_identity),
    db: Session = Depends(get_db),
):
    """Fetch one event and count the view.

    With RESTRICT_UNPUBLISHED_EVENTS on, events outside the public feed are
    only visible to their owner and admins.
    """
    event = event_store.get_by_id(db, event_id)
    if not event.is_public and settings.RESTRICT_UNPUBLISHED_EVENTS:
        if identity is None or not (identity.is_admin or identity.user_id == event.user_id):
            raise NotFound()
    moderation_service.record_view(
        db,
        event_id,
        viewer_id=identity.user_id if identity else None,
        metadata=request_metadata(request),
    )
    return event_store.get_by_id(db, event_id)


@router.patch("/{event_id}", response_model=EventOut)
def update_event(
    event_id: str,
    payload: EventUpdate,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
    notifications: NotificationDispatcher = Depends(get_notifications),
):
    """Edit your own event. The event goes back to pending for re-review."""
    return moderation_service.update(db, event_id, identity.user_id, payload, notifications)


@router.delete("/{event_id}")
def delete_event(event_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Delete an event you own (admins may delete any event)."""
    moderation_service.delete(db, event_id, identity)
    return {"message": "Event deleted successfully"}
