"""AnalyticsRecord ORM model (append-only activity log)."""
import enum
import uuid

from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Enum as SAEnum

from app.database import Base, utcnow


class ActivityType(str, enum.Enum):
    login = "login"
    registration = "registration"
    home_visit = "home_visit"
    event_view = "event_view"
    event_post = "event_post"


class AnalyticsRecord(Base):
    __tablename__ = "analytics"

    record_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    event_type = Column(SAEnum(ActivityType, native_enum=False), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True)
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="SET NULL"), nullable=True)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)
