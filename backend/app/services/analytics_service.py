"""Analytics aggregator: append-only activity log plus admin summary counters.

All reads go straight to the store; nothing is cached, so figures reflect
the latest committed records.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.database import utcnow
from app.models.analytics import AnalyticsRecord, ActivityType
from app.models.event import Event, ApprovalStatus
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    event_type: ActivityType,
    user_id: Optional[str] = None,
    event_id: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
    commit: bool = True,
) -> AnalyticsRecord:
    """Append one record. With ``commit=False`` it joins the caller's transaction."""
    record = AnalyticsRecord(
        event_type=event_type,
        user_id=user_id,
        event_id=event_id,
        details=metadata or None,
    )
    db.add(record)
    if commit:
        db.commit()
    return record


def request_metadata(request) -> dict[str, Any]:
    """IP and user agent of an incoming request, for the metadata column."""
    return {
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


def _count_activity(db: Session, event_type: ActivityType) -> int:
    return db.query(func.count(AnalyticsRecord.record_id)).filter(AnalyticsRecord.event_type == event_type).scalar() or 0


def total_event_posters(db: Session) -> int:
    return db.query(func.count(User.user_id)).filter(User.role == UserRole.poster).scalar() or 0


def total_users(db: Session) -> int:
    return db.query(func.count(User.user_id)).scalar() or 0


def total_events(db: Session) -> int:
    return db.query(func.count(Event.event_id)).scalar() or 0


def count_events_by_status(db: Session, status: ApprovalStatus) -> int:
    return db.query(func.count(Event.event_id)).filter(Event.approval_status == status).scalar() or 0


def count_active_events(db: Session) -> int:
    return db.query(func.count(Event.event_id)).filter(Event.is_active.is_(True)).scalar() or 0


def unique_logins_last_7_days(db: Session, now: Optional[datetime] = None) -> int:
    since = (now or utcnow()) - timedelta(days=7)
    return (
        db.query(func.count(func.distinct(AnalyticsRecord.user_id)))
        .filter(
            AnalyticsRecord.event_type == ActivityType.login,
            AnalyticsRecord.timestamp >= since,
        )
        .scalar()
        or 0
    )


def event_click_through_rate(db: Session) -> float:
    """Event detail views per landing-page visit, as a percentage.

    A site-wide engagement proxy, not a per-event CTR.
    """
    views = _count_activity(db, ActivityType.event_view)
    home_visits = _count_activity(db, ActivityType.home_visit) or 1
    return views / home_visits * 100


def recent_activity(db: Session, limit: int = 20) -> list[dict[str, Any]]:
    """Newest records first, with the user's email and event title when they still exist."""
    rows = (
        db.query(AnalyticsRecord, User.email, Event.title)
        .outerjoin(User, AnalyticsRecord.user_id == User.user_id)
        .outerjoin(Event, AnalyticsRecord.event_id == Event.event_id)
        .order_by(AnalyticsRecord.timestamp.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "record_id": record.record_id,
            "timestamp": record.timestamp,
            "event_type": record.event_type.value,
            "user_id": record.user_id,
            "event_id": record.event_id,
            "user_email": email,
            "event_title": title,
        }
        for record, email, title in rows
    ]


def summary(db: Session, activity_limit: int = 20) -> dict[str, Any]:
    events = total_events(db)
    approved = count_events_by_status(db, ApprovalStatus.approved)
    result = {
        "total_posters": total_event_posters(db),
        "total_users": total_users(db),
        "total_events": events,
        "approved_events": approved,
        "pending_events": count_events_by_status(db, ApprovalStatus.pending),
        "active_events": count_active_events(db),
        "approval_rate": round(approved / events * 100, 2) if events else 0.0,
        "unique_logins_last_7_days": unique_logins_last_7_days(db),
        "event_ctr": round(event_click_through_rate(db), 2),
        "recent_activity": recent_activity(db, limit=activity_limit),
    }
    logger.info("Analytics summary computed: %d events, %d posters", events, result["total_posters"])
    return result
