"""Pydantic schemas for analytics logging and the admin summary."""
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict


class HomeVisitCreate(BaseModel):
    """Public clients may only report landing-page visits."""

    model_config = ConfigDict(extra="forbid")

    event_type: Literal["home_visit"] = "home_visit"
    metadata: Optional[dict[str, Any]] = None


class ActivityOut(BaseModel):
    record_id: str
    timestamp: datetime
    event_type: str
    user_id: Optional[str] = None
    event_id: Optional[str] = None
    user_email: Optional[str] = None
    event_title: Optional[str] = None


class AnalyticsSummary(BaseModel):
    total_posters: int
    total_users: int
    total_events: int
    approved_events: int
    pending_events: int
    active_events: int
    approval_rate: float
    unique_logins_last_7_days: int
    event_ctr: float
    recent_activity: list[ActivityOut]
