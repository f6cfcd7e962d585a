import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, List, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from tether.models import Contact, ImportantDate, NotificationChannel, VaultMembership
from tether.utils.timezone import to_utc_aware
from .errors import StorageError
from .models import Reminder, ScheduledInstance, DeliveryRecord


logger = logging.getLogger(__name__)


class ReminderStore(ABC):
    """Persistence contract used by authoring and the dispatcher.

    Every method is atomic on its own. Objects handed back are detached
    snapshots; mutate them and pass them to ``update_reminder`` to persist.
    """

    @abstractmethod
    def put_reminder(self, reminder: Reminder) -> Reminder: ...

    @abstractmethod
    def update_reminder(self, reminder: Reminder) -> Reminder: ...

    @abstractmethod
    def delete_reminder(self, reminder_id: str) -> bool:
        """Delete the reminder and its scheduled instances in one transaction."""

    @abstractmethod
    def enqueue_instance(
        self, reminder_id: str, channel_id: int, scheduled_at: datetime
    ) -> Optional[ScheduledInstance]:
        """Insert a pending instance; returns None when one is already pending for the pair."""

    @abstractmethod
    def list_due(self, now: datetime) -> List[ScheduledInstance]:
        """Pending instances with ``scheduled_at <= now``, oldest first, with
        reminder, contact, channel and user loaded."""

    @abstractmethod
    def mark_triggered(self, instance_id: int, now: datetime) -> bool: ...

    @abstractmethod
    def record_delivery(
        self,
        channel_id: int,
        sent_at: datetime,
        subject: str,
        payload: Optional[str],
        error: Optional[str] = None,
    ) -> DeliveryRecord: ...

    @abstractmethod
    def complete_delivery(
        self,
        instance_id: int,
        reminder_id: str,
        channel_id: int,
        now: datetime,
        subject: str,
        payload: Optional[str],
    ) -> bool:
        """Success path in one transaction: history row, instance triggered,
        channel fails reset, reminder counters bumped. False if the instance
        was no longer pending."""

    @abstractmethod
    def bump_channel_fails(self, channel_id: int) -> int: ...

    @abstractmethod
    def reset_channel_fails(self, channel_id: int) -> None: ...

    @abstractmethod
    def set_channel_active(self, channel_id: int, active: bool) -> None: ...

    @abstractmethod
    def get_channel(self, channel_id: int) -> Optional[NotificationChannel]: ...

    @abstractmethod
    def increment_reminder_trigger_counter(self, reminder_id: str, now: datetime) -> None: ...

    @abstractmethod
    def list_channels_for_vault(self, vault_id: str, active_only: bool = True) -> List[NotificationChannel]: ...

    @abstractmethod
    def get_reminder(self, reminder_id: str) -> Optional[Reminder]: ...

    @abstractmethod
    def get_reminder_by_important_date(self, important_date_id: int) -> Optional[Reminder]: ...

    @abstractmethod
    def list_reminders(self, contact_id: str) -> List[Reminder]: ...

    @abstractmethod
    def list_pending_instances(self, reminder_id: Optional[str] = None) -> List[ScheduledInstance]: ...

    @abstractmethod
    def list_deliveries(self, channel_id: int, limit: int = 100) -> List[DeliveryRecord]: ...

    @abstractmethod
    def get_contact(self, contact_id: str) -> Optional[Contact]: ...

    @abstractmethod
    def get_important_date(self, important_date_id: int) -> Optional[ImportantDate]: ...


class SqlReminderStore(ReminderStore):
    """SQLAlchemy-backed store; opens one short session per operation."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StorageError(f"reminder store failure: {exc}") from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # --- reminders ---

    def put_reminder(self, reminder: Reminder) -> Reminder:
        with self._transaction() as db:
            db.add(reminder)
            db.flush()
            db.refresh(reminder)
        return reminder

    def update_reminder(self, reminder: Reminder) -> Reminder:
        with self._transaction() as db:
            merged = db.merge(reminder)
            db.flush()
            db.refresh(merged)
        return merged

    def delete_reminder(self, reminder_id: str) -> bool:
        with self._transaction() as db:
            db.execute(delete(ScheduledInstance).where(ScheduledInstance.reminder_id == reminder_id))
            result = db.execute(delete(Reminder).where(Reminder.id == reminder_id))
            return result.rowcount > 0

    def get_reminder(self, reminder_id: str) -> Optional[Reminder]:
        with self._transaction() as db:
            return db.get(Reminder, reminder_id)

    def get_reminder_by_important_date(self, important_date_id: int) -> Optional[Reminder]:
        stmt = (
            select(Reminder)
            .where(Reminder.important_date_id == important_date_id)
            .order_by(Reminder.created_at.asc())
            .limit(1)
        )
        with self._transaction() as db:
            return db.execute(stmt).scalars().first()

    def list_reminders(self, contact_id: str) -> List[Reminder]:
        stmt = (
            select(Reminder)
            .where(Reminder.contact_id == contact_id)
            .order_by(Reminder.created_at.asc(), Reminder.id.asc())
        )
        with self._transaction() as db:
            return list(db.execute(stmt).scalars())

    def increment_reminder_trigger_counter(self, reminder_id: str, now: datetime) -> None:
        with self._transaction() as db:
            self._bump_reminder(db, reminder_id, now)

    # --- scheduled instances ---

    def enqueue_instance(
        self, reminder_id: str, channel_id: int, scheduled_at: datetime
    ) -> Optional[ScheduledInstance]:
        try:
            with self._transaction() as db:
                pending = db.execute(
                    select(ScheduledInstance.id)
                    .where(ScheduledInstance.reminder_id == reminder_id)
                    .where(ScheduledInstance.channel_id == channel_id)
                    .where(ScheduledInstance.triggered_at.is_(None))
                ).first()
                if pending is not None:
                    logger.debug(
                        f"[Reminders] Instance already pending for reminder={reminder_id} channel={channel_id}"
                    )
                    return None
                instance = ScheduledInstance(
                    reminder_id=reminder_id,
                    channel_id=channel_id,
                    scheduled_at=to_utc_aware(scheduled_at),
                )
                db.add(instance)
                db.flush()
                db.refresh(instance)
                return instance
        except StorageError as exc:
            if isinstance(exc.__cause__, IntegrityError):
                # Lost a race against a concurrent enqueue of the same pair
                logger.info(f"[Reminders] Concurrent enqueue for reminder={reminder_id} channel={channel_id}")
                return None
            raise

    def list_due(self, now: datetime) -> List[ScheduledInstance]:
        stmt = (
            select(ScheduledInstance)
            .options(
                joinedload(ScheduledInstance.reminder).joinedload(Reminder.contact),
                joinedload(ScheduledInstance.channel).joinedload(NotificationChannel.user),
            )
            .where(ScheduledInstance.scheduled_at <= to_utc_aware(now))
            .where(ScheduledInstance.triggered_at.is_(None))
            .order_by(ScheduledInstance.scheduled_at.asc(), ScheduledInstance.id.asc())
        )
        with self._transaction() as db:
            return list(db.execute(stmt).unique().scalars())

    def list_pending_instances(self, reminder_id: Optional[str] = None) -> List[ScheduledInstance]:
        stmt = (
            select(ScheduledInstance)
            .where(ScheduledInstance.triggered_at.is_(None))
            .order_by(ScheduledInstance.scheduled_at.asc(), ScheduledInstance.id.asc())
        )
        if reminder_id:
            stmt = stmt.where(ScheduledInstance.reminder_id == reminder_id)
        with self._transaction() as db:
            return list(db.execute(stmt).scalars())

    def mark_triggered(self, instance_id: int, now: datetime) -> bool:
        with self._transaction() as db:
            return self._mark_triggered(db, instance_id, now)

    # --- delivery history ---

    def record_delivery(
        self,
        channel_id: int,
        sent_at: datetime,
        subject: str,
        payload: Optional[str],
        error: Optional[str] = None,
    ) -> DeliveryRecord:
        record = DeliveryRecord(
            channel_id=channel_id,
            sent_at=to_utc_aware(sent_at),
            subject=subject,
            payload=payload,
            error=error or None,
        )
        with self._transaction() as db:
            db.add(record)
            db.flush()
            db.refresh(record)
        return record

    def complete_delivery(
        self,
        instance_id: int,
        reminder_id: str,
        channel_id: int,
        now: datetime,
        subject: str,
        payload: Optional[str],
    ) -> bool:
        with self._transaction() as db:
            if not self._mark_triggered(db, instance_id, now):
                return False
            db.add(DeliveryRecord(channel_id=channel_id, sent_at=to_utc_aware(now), subject=subject, payload=payload))
            db.execute(
                update(NotificationChannel)
                .where(NotificationChannel.id == channel_id)
                .where(NotificationChannel.fails > 0)
                .values(fails=0)
            )
            self._bump_reminder(db, reminder_id, now)
            return True

    def list_deliveries(self, channel_id: int, limit: int = 100) -> List[DeliveryRecord]:
        stmt = (
            select(DeliveryRecord)
            .where(DeliveryRecord.channel_id == channel_id)
            .order_by(DeliveryRecord.sent_at.desc(), DeliveryRecord.id.desc())
            .limit(limit)
        )
        with self._transaction() as db:
            return list(db.execute(stmt).scalars())

    # --- channels ---

    def get_channel(self, channel_id: int) -> Optional[NotificationChannel]:
        with self._transaction() as db:
            return db.get(NotificationChannel, channel_id)

    def bump_channel_fails(self, channel_id: int) -> int:
        with self._transaction() as db:
            db.execute(
                update(NotificationChannel)
                .where(NotificationChannel.id == channel_id)
                .values(fails=NotificationChannel.fails + 1)
            )
            fails = db.execute(
                select(NotificationChannel.fails).where(NotificationChannel.id == channel_id)
            ).scalar()
            return int(fails or 0)

    def reset_channel_fails(self, channel_id: int) -> None:
        with self._transaction() as db:
            db.execute(
                update(NotificationChannel).where(NotificationChannel.id == channel_id).values(fails=0)
            )

    def set_channel_active(self, channel_id: int, active: bool) -> None:
        with self._transaction() as db:
            db.execute(
                update(NotificationChannel).where(NotificationChannel.id == channel_id).values(active=active)
            )

    def list_channels_for_vault(self, vault_id: str, active_only: bool = True) -> List[NotificationChannel]:
        stmt = (
            select(NotificationChannel)
            .join(VaultMembership, VaultMembership.user_id == NotificationChannel.user_id)
            .where(VaultMembership.vault_id == vault_id)
            .order_by(NotificationChannel.id.asc())
        )
        if active_only:
            stmt = stmt.where(NotificationChannel.active.is_(True)).where(
                NotificationChannel.verified_at.is_not(None)
            )
        with self._transaction() as db:
            return list(db.execute(stmt).scalars())

    # --- external lookups ---

    def get_contact(self, contact_id: str) -> Optional[Contact]:
        with self._transaction() as db:
            return db.get(Contact, contact_id)

    def get_important_date(self, important_date_id: int) -> Optional[ImportantDate]:
        with self._transaction() as db:
            return db.get(ImportantDate, important_date_id, options=[joinedload(ImportantDate.date_type)])

    # --- helpers shared by single and batched operations ---

    @staticmethod
    def _mark_triggered(db: Session, instance_id: int, now: datetime) -> bool:
        result = db.execute(
            update(ScheduledInstance)
            .where(ScheduledInstance.id == instance_id)
            .where(ScheduledInstance.triggered_at.is_(None))
            .values(triggered_at=to_utc_aware(now))
        )
        return result.rowcount == 1

    @staticmethod
    def _bump_reminder(db: Session, reminder_id: str, now: datetime) -> None:
        db.execute(
            update(Reminder)
            .where(Reminder.id == reminder_id)
            .values(
                last_triggered_at=to_utc_aware(now),
                number_times_triggered=Reminder.number_times_triggered + 1,
            )
        )
