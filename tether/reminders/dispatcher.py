"""
Polling dispatcher: sends due scheduled instances, records the outcome and
queues the next occurrence of recurring reminders.

Run exactly one dispatcher per database. Two dispatchers can both send the
same pending instance before either marks it triggered.
"""
import html
import logging
import threading
from datetime import datetime
from typing import Callable, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from tether.calendars import CalendarRegistry, get_registry
from tether.utils.timezone import get_zoneinfo, now_utc, to_utc_aware, truncate_to_minute
from .errors import StorageError
from .metrics import (
    dispatcher_ticks_total,
    notification_channels_disabled_total,
    reminder_instances_enqueued_total,
    reminders_delivery_failed_total,
    reminders_delivery_success_total,
)
from .models import Reminder, ScheduledInstance
from .recurrence import next_schedule
from .repository import ReminderStore, SqlReminderStore
from .transports import TransportRegistry, build_default_transports


logger = logging.getLogger(__name__)

MAX_CHANNEL_FAILS = 10


def contact_name(contact) -> str:
    if contact is None:
        return "Unknown"
    parts = [p.strip() for p in (contact.first_name, contact.last_name) if p and p.strip()]
    return " ".join(parts) or "Unknown"


def render_notification(label: str, name: str) -> Tuple[str, str]:
    """Subject and HTML body for a reminder delivery.

    The label and contact name are HTML-escaped in the body, so the stored
    payload differs from the raw template when they contain markup. The
    subject is plain text and left as is.
    """
    safe_label = html.escape(label or "")
    subject = f"Reminder: {label}"
    body = (
        f"<h2>Reminder: {safe_label}</h2>"
        f"<p>You have a reminder for <strong>{html.escape(name)}</strong>.</p>"
        f"<p>{safe_label}</p>"
    )
    return subject, body


class ReminderDispatcher:
    def __init__(
        self,
        store: ReminderStore,
        transports: TransportRegistry,
        calendars: Optional[CalendarRegistry] = None,
        tz: Optional[ZoneInfo] = None,
    ):
        self.store = store
        self.transports = transports
        self.calendars = calendars or get_registry()
        self.tz = tz or get_zoneinfo()

    def tick(self, now: Optional[datetime] = None, stop_event: Optional[threading.Event] = None) -> int:
        """Process every instance due at ``now``. Returns the number delivered."""
        now = truncate_to_minute(to_utc_aware(now) if now else now_utc())
        dispatcher_ticks_total.inc()

        try:
            due = self.store.list_due(now)
        except StorageError as exc:
            logger.error(f"❌ [Dispatcher] Could not load due instances: {exc}")
            return 0
        if not due:
            return 0

        logger.info(f"🔍 [Dispatcher] Found {len(due)} due instance(s) at {now.isoformat()}")
        delivered = 0
        for instance in due:
            if stop_event is not None and stop_event.is_set():
                logger.info("🛑 [Dispatcher] Stop requested, leaving remaining instances for the next tick")
                break
            try:
                if self._process_one(instance, now):
                    delivered += 1
            except Exception:
                logger.exception(f"❌ [Dispatcher] Unexpected error on instance {instance.id}")
        return delivered

    def run_forever(self, interval_seconds: float, stop_event: threading.Event) -> None:
        logger.info(f"🚀 [Dispatcher] Polling every {interval_seconds}s")
        while not stop_event.is_set():
            try:
                self.tick(stop_event=stop_event)
            except Exception:
                logger.exception("❌ [Dispatcher] Tick failed")
            stop_event.wait(interval_seconds)
        logger.info("👋 [Dispatcher] Stopped")

    def _process_one(self, instance: ScheduledInstance, now: datetime) -> bool:
        channel = instance.channel
        reminder = instance.reminder
        if channel is None:
            logger.warning(f"⚠️ [Dispatcher] Instance {instance.id} points at missing channel {instance.channel_id}")
            return False
        if reminder is None:
            logger.warning(f"⚠️ [Dispatcher] Instance {instance.id} points at missing reminder {instance.reminder_id}")
            return False
        if not channel.active:
            logger.debug(f"[Dispatcher] Skipping instance {instance.id}: channel {channel.id} inactive")
            return False
        if reminder.contact is None:
            logger.error(f"❌ [Dispatcher] Reminder {reminder.id} has no contact {reminder.contact_id}")
            return False

        transport = self.transports.lookup(channel.type)
        if transport is None:
            logger.warning(f"⚠️ [Dispatcher] No transport for channel type {channel.type!r}, skipping")
            return False

        subject, body = render_notification(reminder.label, contact_name(reminder.contact))
        try:
            transport.send(channel.content, subject, body)
        except Exception as exc:  # any transport error is a transient delivery failure
            self._handle_failure(instance, subject, body, now, exc)
            delivered = False
        else:
            delivered = self._handle_success(instance, subject, body, now)

        self._reschedule_if_recurring(reminder, channel.id, now)
        return delivered

    def _handle_success(self, instance: ScheduledInstance, subject: str, body: str, now: datetime) -> bool:
        completed = self.store.complete_delivery(
            instance_id=instance.id,
            reminder_id=instance.reminder_id,
            channel_id=instance.channel_id,
            now=now,
            subject=subject,
            payload=body,
        )
        if not completed:
            logger.warning(f"⚠️ [Dispatcher] Instance {instance.id} was already triggered")
            return False
        reminders_delivery_success_total.inc()
        logger.info(f"✅ [Dispatcher] Delivered reminder {instance.reminder_id} on channel {instance.channel_id}")
        return True

    def _handle_failure(
        self, instance: ScheduledInstance, subject: str, body: str, now: datetime, exc: Exception
    ) -> None:
        error = str(exc) or type(exc).__name__
        reminders_delivery_failed_total.inc()
        logger.warning(f"⚠️ [Dispatcher] Delivery failed for instance {instance.id}: {error}")

        self.store.record_delivery(instance.channel_id, now, subject, body, error=error)
        fails = self.store.bump_channel_fails(instance.channel_id)
        if fails >= MAX_CHANNEL_FAILS:
            self.store.set_channel_active(instance.channel_id, False)
            notification_channels_disabled_total.inc()
            logger.warning(
                f"🚫 [Dispatcher] Channel {instance.channel_id} disabled after {fails} consecutive failures"
            )

    def _reschedule_if_recurring(self, reminder: Reminder, channel_id: int, now: datetime) -> None:
        if not reminder.is_recurring:
            return
        channel = self.store.get_channel(channel_id)
        if channel is None or not channel.active:
            logger.info(f"[Dispatcher] Not rescheduling reminder {reminder.id}: channel {channel_id} inactive")
            return
        next_at = next_schedule(reminder, now, tz=self.tz, calendars=self.calendars)
        if next_at is None:
            return
        if self.store.enqueue_instance(reminder.id, channel_id, next_at) is not None:
            reminder_instances_enqueued_total.inc()
            logger.info(f"📅 [Dispatcher] Next run of reminder {reminder.id} at {next_at.isoformat()}")


def build_dispatcher(session_factory: Optional[Callable[[], Session]] = None) -> ReminderDispatcher:
    if session_factory is None:
        from tether.db.session import SessionLocal
        session_factory = SessionLocal
    return ReminderDispatcher(SqlReminderStore(session_factory), build_default_transports())
