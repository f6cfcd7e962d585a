"""
Request/response schemas for reminder authoring and delivery history
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


ReminderType = Literal["one_time", "recurring_week", "recurring_month", "recurring_year"]


class ReminderCreate(BaseModel):
    """Schema for creating a reminder on a contact"""
    label: Optional[str] = None
    day: Optional[int] = Field(default=None, ge=1, le=31)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = Field(default=None, ge=1, le=9999)
    calendar_type: Optional[str] = None
    original_day: Optional[int] = Field(default=None, ge=1, le=31)
    original_month: Optional[int] = Field(default=None, ge=-12, le=12)
    original_year: Optional[int] = Field(default=None, ge=1, le=9999)
    type: ReminderType
    frequency_number: int = Field(default=1, ge=1)
    important_date_id: Optional[int] = None

    @field_validator("original_month")
    @classmethod
    def _non_zero_month(cls, v: Optional[int]) -> Optional[int]:
        if v == 0:
            raise ValueError("original_month must not be 0")
        return v

    @field_validator("calendar_type", mode="before")
    @classmethod
    def _normalize_calendar(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip().lower()
        return v or None


class ReminderUpdate(ReminderCreate):
    """Full replacement of a reminder's editable fields"""


class ReminderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    contact_id: str
    important_date_id: Optional[int] = None
    label: str
    day: Optional[int] = None
    month: Optional[int] = None
    year: Optional[int] = None
    calendar_type: str
    original_day: Optional[int] = None
    original_month: Optional[int] = None
    original_year: Optional[int] = None
    type: ReminderType
    frequency_number: int
    last_triggered_at: Optional[datetime] = None
    number_times_triggered: int
    created_at: datetime
    updated_at: datetime


class ScheduledInstanceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    reminder_id: str
    channel_id: int
    scheduled_at: datetime
    triggered_at: Optional[datetime] = None


class DeliveryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    channel_id: int
    sent_at: datetime
    subject: str
    payload: Optional[str] = None
    error: Optional[str] = None
