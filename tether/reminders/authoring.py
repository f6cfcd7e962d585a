"""
Reminder authoring: validation, calendar normalization, persistence and the
initial fan-out of one scheduled instance per active channel in the
contact's vault.
"""
import logging
from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from tether.calendars import GREGORIAN, CalendarRegistry, InvalidDate, get_registry
from tether.utils.timezone import get_zoneinfo, now_utc, to_utc_aware
from .errors import LabelRequiredError, NotFoundError, StorageError, ValidationError
from .metrics import reminders_created_total, reminder_instances_enqueued_total
from .models import Reminder, ScheduledInstance
from .recurrence import initial_schedule
from .repository import ReminderStore
from .schemas import ReminderCreate, ReminderUpdate


logger = logging.getLogger(__name__)

# Leap year used to validate year-agnostic dates such as 29 February
_ANY_LEAP_YEAR = 2000


class ReminderService:
    def __init__(
        self,
        store: ReminderStore,
        calendars: Optional[CalendarRegistry] = None,
        tz: Optional[ZoneInfo] = None,
    ):
        self.store = store
        self.calendars = calendars or get_registry()
        self.tz = tz or get_zoneinfo()

    # --- queries ---

    def get(self, reminder_id: str, contact_id: Optional[str] = None) -> Reminder:
        reminder = self.store.get_reminder(reminder_id)
        if reminder is None or (contact_id is not None and reminder.contact_id != contact_id):
            raise NotFoundError("reminder", reminder_id)
        return reminder

    def list_for_contact(self, contact_id: str) -> List[Reminder]:
        if self.store.get_contact(contact_id) is None:
            raise NotFoundError("contact", contact_id)
        return self.store.list_reminders(contact_id)

    def pending_instances(self, reminder_id: str, contact_id: Optional[str] = None) -> List[ScheduledInstance]:
        reminder = self.get(reminder_id, contact_id=contact_id)
        return self.store.list_pending_instances(reminder.id)

    # --- commands ---

    def create(self, contact_id: str, request: ReminderCreate, now: Optional[datetime] = None) -> Reminder:
        now = to_utc_aware(now) if now else now_utc()
        contact = self.store.get_contact(contact_id)
        if contact is None:
            raise NotFoundError("contact", contact_id)

        reminder = Reminder(
            contact_id=contact_id,
            number_times_triggered=0,
            created_at=now,
            updated_at=now,
        )
        self._copy_fields(reminder, request)
        reminder.label = self._resolve_label(request.label, request.important_date_id)
        self.apply_calendar_fields(reminder, now)
        self._validate_gregorian(reminder)

        reminder = self.store.put_reminder(reminder)
        reminders_created_total.inc()
        logger.info(f"✅ [Reminders] Created reminder {reminder.id} ({reminder.type}) for contact {contact_id}")

        try:
            self._fan_out(reminder, contact.vault_id, now)
        except StorageError:
            logger.error(f"❌ [Reminders] Fan-out failed for reminder {reminder.id}, removing it")
            self.store.delete_reminder(reminder.id)
            raise
        return reminder

    def update(
        self,
        reminder_id: str,
        request: ReminderUpdate,
        contact_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Reminder:
        """Replace the reminder's fields. Pending instances are left as they are;
        the next occurrence is computed when the current one fires."""
        now = to_utc_aware(now) if now else now_utc()
        reminder = self.get(reminder_id, contact_id=contact_id)

        important_date_id = request.important_date_id or reminder.important_date_id
        self._copy_fields(reminder, request)
        reminder.important_date_id = important_date_id
        reminder.label = self._resolve_label(request.label, important_date_id)
        self.apply_calendar_fields(reminder, now)
        self._validate_gregorian(reminder)
        reminder.updated_at = now

        return self.store.update_reminder(reminder)

    def delete(self, reminder_id: str, contact_id: Optional[str] = None) -> None:
        reminder = self.get(reminder_id, contact_id=contact_id)
        self.store.delete_reminder(reminder.id)
        logger.info(f"🗑️ [Reminders] Deleted reminder {reminder.id}")

    # --- important dates ---

    def ensure_from_important_date(self, important_date, now: Optional[datetime] = None) -> Optional[Reminder]:
        """Keep the yearly companion reminder of an important date in line with its ``remind_me`` flag.

        Returns the companion reminder, or None when reminding is off.
        """
        existing = self.store.get_reminder_by_important_date(important_date.id)
        if not important_date.remind_me:
            if existing is not None:
                self.store.delete_reminder(existing.id)
                logger.info(
                    f"🗑️ [Reminders] Removed reminder {existing.id} for important date {important_date.id}"
                )
            return None

        request = ReminderCreate(
            label=important_date.label,
            day=important_date.day,
            month=important_date.month,
            year=important_date.year,
            calendar_type=important_date.calendar_type,
            original_day=important_date.original_day,
            original_month=important_date.original_month,
            original_year=important_date.original_year,
            type="recurring_year",
            important_date_id=important_date.id,
        )
        if existing is not None:
            return self.update(existing.id, ReminderUpdate(**request.model_dump()), now=now)
        return self.create(important_date.contact_id, request, now=now)

    def remove_for_important_date(self, important_date_id: int) -> bool:
        existing = self.store.get_reminder_by_important_date(important_date_id)
        if existing is None:
            return False
        return self.store.delete_reminder(existing.id)

    # --- normalization ---

    def apply_calendar_fields(self, reminder: Reminder, now: Optional[datetime] = None) -> None:
        """Derive the Gregorian anchor of a reminder from its original calendar fields.

        Unknown calendars and foreign dates that fail to convert are logged and
        left unconverted; neither is an error for the caller.
        """
        calendar_type = (reminder.calendar_type or "").strip().lower()
        if not calendar_type or calendar_type == GREGORIAN:
            reminder.calendar_type = GREGORIAN
            reminder.original_day = None
            reminder.original_month = None
            reminder.original_year = None
            return

        converter = self.calendars.lookup(calendar_type)
        if converter is None:
            logger.warning(f"⚠️ [Calendar] Unsupported calendar type {calendar_type!r}, falling back to gregorian")
            reminder.calendar_type = GREGORIAN
            return

        reminder.calendar_type = converter.name
        if reminder.original_day is None or reminder.original_month is None:
            logger.warning(
                f"⚠️ [Calendar] {converter.name} reminder without original day/month, treating as gregorian"
            )
            reminder.calendar_type = GREGORIAN
            return

        now = to_utc_aware(now) if now else now_utc()
        year = reminder.original_year or now.astimezone(self.tz).year
        try:
            converted = converter.to_gregorian(reminder.original_day, reminder.original_month, year)
        except InvalidDate as exc:
            logger.warning(f"⚠️ [Calendar] Could not convert {converter.name} date: {exc}")
            return
        reminder.day, reminder.month, reminder.year = converted.day, converted.month, converted.year

    # --- internals ---

    @staticmethod
    def _copy_fields(reminder: Reminder, request: ReminderCreate) -> None:
        reminder.day = request.day
        reminder.month = request.month
        reminder.year = request.year
        reminder.calendar_type = request.calendar_type or GREGORIAN
        reminder.original_day = request.original_day
        reminder.original_month = request.original_month
        reminder.original_year = request.original_year
        reminder.type = request.type
        reminder.frequency_number = request.frequency_number
        reminder.important_date_id = request.important_date_id

    def _resolve_label(self, label: Optional[str], important_date_id: Optional[int]) -> str:
        label = (label or "").strip()
        if label:
            return label
        if important_date_id is not None:
            important_date = self.store.get_important_date(important_date_id)
            if important_date is None:
                raise NotFoundError("important date", important_date_id)
            if important_date.date_type is not None and (important_date.date_type.label or "").strip():
                return important_date.date_type.label.strip()
        raise LabelRequiredError()

    def _validate_gregorian(self, reminder: Reminder) -> None:
        if reminder.calendar_type != GREGORIAN or reminder.day is None or reminder.month is None:
            return
        try:
            self.calendars.gregorian.to_gregorian(reminder.day, reminder.month, reminder.year or _ANY_LEAP_YEAR)
        except InvalidDate as exc:
            raise ValidationError(str(exc)) from exc

    def _fan_out(self, reminder: Reminder, vault_id: str, now: datetime) -> int:
        channels = self.store.list_channels_for_vault(vault_id, active_only=True)
        if not channels:
            logger.info(f"[Reminders] No active channels in vault {vault_id} for reminder {reminder.id}")
            return 0
        scheduled_at = initial_schedule(reminder, now, tz=self.tz, calendars=self.calendars)
        enqueued = 0
        for channel in channels:
            if self.store.enqueue_instance(reminder.id, channel.id, scheduled_at) is not None:
                enqueued += 1
                reminder_instances_enqueued_total.inc()
        logger.info(
            f"📅 [Reminders] Scheduled reminder {reminder.id} at {scheduled_at.isoformat()} on {enqueued} channel(s)"
        )
        return enqueued
