"""Event ORM model."""
import enum
import uuid

from sqlalchemy import Column, String, Text, Date, Time, DateTime, Integer, Boolean, ForeignKey, Enum as SAEnum
from sqlalchemy.orm import relationship

from app.database import Base, utcnow


class ApprovalStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class EventCategory(str, enum.Enum):
    cultural = "Cultural"
    religious = "Religious"
    social = "Social"
    sports = "Sports"
    music = "Music"
    food = "Food"
    business = "Business"
    education = "Education"
    other = "Other"


class Event(Base):
    __tablename__ = "events"

    event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)
    location_text = Column(String(500), nullable=False)
    category = Column(SAEnum(EventCategory, native_enum=False), nullable=False)
    contact_email = Column(String(255), nullable=False)
    contact_phone = Column(String(50), nullable=True)
    booking_link = Column(String(500), nullable=True)
    image_url = Column(String(500), nullable=True)
    approval_status = Column(
        SAEnum(ApprovalStatus, native_enum=False), nullable=False, default=ApprovalStatus.pending, index=True
    )
    is_active = Column(Boolean, nullable=False, default=True)
    views_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    owner = relationship("User")

    @property
    def is_public(self) -> bool:
        return self.approval_status == ApprovalStatus.approved and bool(self.is_active)
