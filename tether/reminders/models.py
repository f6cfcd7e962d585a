"""
Reminder engine tables: reminder definitions, scheduled per-channel instances
and the append-only delivery history.
"""
import uuid

from sqlalchemy import CheckConstraint, Column, String, Integer, ForeignKey, Index, Text, text
from sqlalchemy.orm import relationship

from tether.db.base import Base, UTCDateTime, utcnow
from tether.calendars import GREGORIAN
from tether.models import Contact, NotificationChannel


class Reminder(Base):
    __tablename__ = "contact_reminders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    contact_id = Column(String(36), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True)
    important_date_id = Column(
        Integer, ForeignKey("contact_important_dates.id", ondelete="CASCADE"), nullable=True, index=True
    )
    label = Column(String, nullable=False)

    # Gregorian anchor (derived when calendar_type is not gregorian)
    day = Column(Integer, nullable=True)
    month = Column(Integer, nullable=True)
    year = Column(Integer, nullable=True)

    # The user's date as entered in its own calendar
    calendar_type = Column(String, nullable=False, default=GREGORIAN)
    original_day = Column(Integer, nullable=True)
    original_month = Column(Integer, nullable=True)  # negative for lunar leap months
    original_year = Column(Integer, nullable=True)

    type = Column(String, nullable=False)  # one_time | recurring_week | recurring_month | recurring_year
    frequency_number = Column(Integer, nullable=False, default=1)

    last_triggered_at = Column(UTCDateTime, nullable=True)
    number_times_triggered = Column(Integer, nullable=False, default=0)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    contact = relationship(Contact)
    instances = relationship(
        "ScheduledInstance",
        back_populates="reminder",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("frequency_number >= 1", name="ck_contact_reminders_frequency_positive"),
    )

    @property
    def is_gregorian(self) -> bool:
        return not self.calendar_type or self.calendar_type == GREGORIAN

    @property
    def has_original_date(self) -> bool:
        return self.original_day is not None and self.original_month is not None

    @property
    def is_recurring(self) -> bool:
        return self.type != "one_time"

    def __repr__(self) -> str:
        return f"<Reminder {self.id} {self.type} {self.label!r}>"


class ScheduledInstance(Base):
    """One pending (or delivered) send of a reminder to one channel."""
    __tablename__ = "contact_reminder_scheduled"

    id = Column(Integer, primary_key=True, index=True)
    reminder_id = Column(String(36), ForeignKey("contact_reminders.id", ondelete="CASCADE"), nullable=False)
    channel_id = Column(
        Integer, ForeignKey("user_notification_channels.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scheduled_at = Column(UTCDateTime, nullable=False)
    triggered_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    reminder = relationship("Reminder", back_populates="instances")
    channel = relationship(NotificationChannel)

    __table_args__ = (
        Index("ix_contact_reminder_scheduled_due", "scheduled_at", "triggered_at"),
        # At most one pending row per (reminder, channel)
        Index(
            "uq_contact_reminder_scheduled_pending",
            "reminder_id",
            "channel_id",
            unique=True,
            postgresql_where=text("triggered_at IS NULL"),
            sqlite_where=text("triggered_at IS NULL"),
        ),
    )


class DeliveryRecord(Base):
    """Append-only send history; rows outlive their channel."""
    __tablename__ = "user_notification_sent"

    id = Column(Integer, primary_key=True, index=True)
    channel_id = Column(Integer, nullable=False, index=True)
    sent_at = Column(UTCDateTime, nullable=False)
    subject = Column(String, nullable=False)
    payload = Column(Text, nullable=True)
    error = Column(Text, nullable=True)

    @property
    def succeeded(self) -> bool:
        return not self.error
