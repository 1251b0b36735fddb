"""Admin API routes: review queue, approve/reject and analytics."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth.dependencies import Identity, require_admin
from app.database import get_db
from app.schemas.analytics import AnalyticsSummary
from app.schemas.event import AdminEventUpdate, EventOut
from app.services import analytics_service, event_store, moderation_service
from app.services.notification_service import NotificationDispatcher, get_notifications

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/pending", response_model=list[EventOut])
def list_pending(db: Session = Depends(get_db)):
    """Review queue, newest submissions first."""
    return event_store.list_pending(db)


@router.get("/events", response_model=list[EventOut])
def list_all_events(db: Session = Depends(get_db)):
    return event_store.list_all(db)


@router.patch("/events/{event_id}", response_model=EventOut)
def admin_update_event(event_id: str, payload: AdminEventUpdate, db: Session = Depends(get_db)):
    """Edit any event, including the active flag."""
    return event_store.admin_update(db, event_id, payload)


@router.post("/approve/{event_id}", response_model=EventOut)
def approve_event(
    event_id: str,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db),
    notifications: NotificationDispatcher = Depends(get_notifications),
):
    return moderation_service.approve(db, event_id, identity.is_admin, notifications)


@router.post("/reject/{event_id}", response_model=EventOut)
def reject_event(
    event_id: str,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db),
    notifications: NotificationDispatcher = Depends(get_notifications),
):
    return moderation_service.reject(db, event_id, identity.is_admin, notifications)


@router.get("/analytics/summary", response_model=AnalyticsSummary)
def analytics_summary(db: Session = Depends(get_db)):
    return analytics_service.summary(db)
