"""Pydantic schemas for Events."""
import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, field_validator, model_validator

from app.models.event import EventCategory

DateFilter = Literal["today", "this_week", "next_month"]

REQUIRED_FIELDS = ("title", "description", "date", "time", "location_text", "category", "contact_email")


def _parse_iso_date(value):
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        return dt.date.fromisoformat(value)
    raise ValueError("date must be an ISO 8601 date (YYYY-MM-DD)")


def _parse_iso_time(value):
    if isinstance(value, str):
        value = dt.time.fromisoformat(value)
    if not isinstance(value, dt.time):
        raise ValueError("time must be HH:MM or HH:MM:SS")
    # local wall-clock time; offsets would be dropped by the column
    if value.tzinfo is not None:
        raise ValueError("time must not carry a UTC offset")
    return value


def _to_columns(payload: BaseModel) -> dict:
    """Column values for the ORM, URLs flattened to plain strings."""
    values = payload.model_dump(exclude_unset=True)
    if values.get("booking_link") is not None:
        values["booking_link"] = str(values["booking_link"])
    return values


class EventCreate(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    date: dt.date
    time: dt.time
    location_text: str = Field(..., min_length=1, max_length=500)
    category: EventCategory
    contact_email: EmailStr
    contact_phone: Optional[str] = Field(None, max_length=50)
    booking_link: Optional[HttpUrl] = None
    image_url: Optional[str] = Field(None, max_length=500)

    @field_validator("date", mode="before")
    @classmethod
    def check_date(cls, value):
        return _parse_iso_date(value)

    @field_validator("time", mode="before")
    @classmethod
    def check_time(cls, value):
        return _parse_iso_time(value)

    def to_columns(self) -> dict:
        return _to_columns(self)


class EventUpdate(BaseModel):
    """Partial update. Required columns may be omitted but never nulled."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    date: Optional[dt.date] = None
    time: Optional[dt.time] = None
    location_text: Optional[str] = Field(None, min_length=1, max_length=500)
    category: Optional[EventCategory] = None
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(None, max_length=50)
    booking_link: Optional[HttpUrl] = None
    image_url: Optional[str] = Field(None, max_length=500)

    @field_validator("date", mode="before")
    @classmethod
    def check_date(cls, value):
        return None if value is None else _parse_iso_date(value)

    @field_validator("time", mode="before")
    @classmethod
    def check_time(cls, value):
        return None if value is None else _parse_iso_time(value)

    @model_validator(mode="after")
    def no_null_required(self):
        if not self.model_fields_set:
            raise ValueError("No fields to update")
        for name in REQUIRED_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def to_columns(self) -> dict:
        return _to_columns(self)


class AdminEventUpdate(EventUpdate):
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def no_null_active(self):
        if "is_active" in self.model_fields_set and self.is_active is None:
            raise ValueError("is_active cannot be null")
        return self


class EventOut(BaseModel):
    event_id: str
    user_id: str
    title: str
    description: str
    date: dt.date
    time: dt.time
    location_text: str
    category: EventCategory
    contact_email: str
    contact_phone: Optional[str] = None
    booking_link: Optional[str] = None
    image_url: Optional[str] = None
    approval_status: str
    is_active: bool
    views_count: int
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = {"from_attributes": True}
