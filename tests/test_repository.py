import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from conftest import add_channel, add_user, get_channel_row, utc
from tether.models import Vault
from tether.reminders.errors import StorageError
from tether.reminders.models import Reminder
from tether.reminders.repository import SqlReminderStore


def put(store, contact_id, **fields) -> Reminder:
    fields.setdefault("label", "Dentist")
    fields.setdefault("type", "one_time")
    fields.setdefault("calendar_type", "gregorian")
    return store.put_reminder(Reminder(contact_id=contact_id, **fields))


def test_put_and_get_reminder_applies_defaults(store, world):
    reminder = put(store, world.contact_id)
    loaded = store.get_reminder(reminder.id)
    assert loaded.label == "Dentist"
    assert loaded.frequency_number == 1
    assert loaded.number_times_triggered == 0
    assert loaded.created_at.tzinfo is not None


def test_update_reminder(store, world):
    reminder = put(store, world.contact_id)
    reminder.label = "Dentist (moved)"
    store.update_reminder(reminder)
    assert store.get_reminder(reminder.id).label == "Dentist (moved)"


def test_enqueue_keeps_one_pending_per_pair(store, world):
    reminder = put(store, world.contact_id)
    first = store.enqueue_instance(reminder.id, world.channel_id, utc(2026, 2, 5, 9))
    assert first is not None
    assert store.enqueue_instance(reminder.id, world.channel_id, utc(2026, 2, 6, 9)) is None
    assert len(store.list_pending_instances(reminder.id)) == 1

    assert store.mark_triggered(first.id, utc(2026, 2, 5, 9))
    assert store.enqueue_instance(reminder.id, world.channel_id, utc(2026, 2, 6, 9)) is not None


def test_mark_triggered_is_one_shot(store, world):
    reminder = put(store, world.contact_id)
    instance = store.enqueue_instance(reminder.id, world.channel_id, utc(2026, 2, 5, 9))
    assert store.mark_triggered(instance.id, utc(2026, 2, 5, 9)) is True
    assert store.mark_triggered(instance.id, utc(2026, 2, 5, 10)) is False


def test_list_due_filters_orders_and_loads_refs(store, world, session_factory):
    other_channel = add_channel(session_factory, world.user_id, content="second@example.com")
    r1 = put(store, world.contact_id, label="Later")
    r2 = put(store, world.contact_id, label="Earlier")
    r3 = put(store, world.contact_id, label="Future")
    store.enqueue_instance(r1.id, world.channel_id, utc(2026, 2, 5, 9, 0))
    store.enqueue_instance(r2.id, other_channel, utc(2026, 2, 4, 9, 0))
    store.enqueue_instance(r3.id, world.channel_id, utc(2026, 2, 5, 9, 1))
    done = store.enqueue_instance(r2.id, world.channel_id, utc(2026, 2, 1, 9, 0))
    store.mark_triggered(done.id, utc(2026, 2, 1, 9, 0))

    due = store.list_due(utc(2026, 2, 5, 9, 0))

    assert [i.reminder.label for i in due] == ["Earlier", "Later"]
    # references are usable after the session is gone
    assert due[0].reminder.contact.first_name == "Ada"
    assert due[0].channel.user.email == "owner@example.com"
    assert due[0].scheduled_at == utc(2026, 2, 4, 9, 0)


def test_delete_reminder_removes_its_instances(store, world):
    reminder = put(store, world.contact_id)
    keep = put(store, world.contact_id, label="Keep")
    sent = store.enqueue_instance(reminder.id, world.channel_id, utc(2026, 2, 1, 9))
    store.mark_triggered(sent.id, utc(2026, 2, 1, 9))
    store.enqueue_instance(reminder.id, world.channel_id, utc(2026, 2, 5, 9))
    store.enqueue_instance(keep.id, world.channel_id, utc(2026, 2, 5, 9))

    assert store.delete_reminder(reminder.id) is True
    assert store.get_reminder(reminder.id) is None
    assert [i.reminder_id for i in store.list_pending_instances()] == [keep.id]
    assert store.delete_reminder(reminder.id) is False


def test_channel_fail_counter(store, world, session_factory):
    assert store.bump_channel_fails(world.channel_id) == 1
    assert store.bump_channel_fails(world.channel_id) == 2
    store.reset_channel_fails(world.channel_id)
    assert get_channel_row(session_factory, world.channel_id).fails == 0

    store.set_channel_active(world.channel_id, False)
    assert store.get_channel(world.channel_id).active is False


def test_increment_reminder_trigger_counter(store, world):
    reminder = put(store, world.contact_id)
    store.increment_reminder_trigger_counter(reminder.id, utc(2026, 2, 5, 9))
    store.increment_reminder_trigger_counter(reminder.id, utc(2026, 2, 6, 9))
    loaded = store.get_reminder(reminder.id)
    assert loaded.number_times_triggered == 2
    assert loaded.last_triggered_at == utc(2026, 2, 6, 9)


def test_complete_delivery_is_atomic_and_one_shot(store, world, session_factory):
    reminder = put(store, world.contact_id)
    instance = store.enqueue_instance(reminder.id, world.channel_id, utc(2026, 2, 5, 9))
    store.bump_channel_fails(world.channel_id)

    assert store.complete_delivery(instance.id, reminder.id, world.channel_id, utc(2026, 2, 5, 9), "s", "p")
    assert not store.complete_delivery(instance.id, reminder.id, world.channel_id, utc(2026, 2, 5, 9), "s", "p")

    assert get_channel_row(session_factory, world.channel_id).fails == 0
    assert store.get_reminder(reminder.id).number_times_triggered == 1
    deliveries = store.list_deliveries(world.channel_id)
    assert len(deliveries) == 1
    assert deliveries[0].error is None
    assert store.list_pending_instances() == []


def test_list_channels_for_vault(store, world, session_factory):
    inactive = add_channel(session_factory, world.user_id, active=False)
    unverified = add_channel(session_factory, world.user_id, verified=False)
    second_user = add_user(session_factory, world.vault_id, "partner@example.com")
    partner_channel = add_channel(session_factory, second_user, content="partner@example.com")

    db = session_factory()
    try:
        other_vault = Vault(name="Work")
        db.add(other_vault)
        db.commit()
        other_vault_id = other_vault.id
    finally:
        db.close()
    outsider = add_user(session_factory, other_vault_id, "outsider@example.com")
    add_channel(session_factory, outsider, content="outsider@example.com")

    active_ids = [c.id for c in store.list_channels_for_vault(world.vault_id)]
    assert active_ids == [world.channel_id, partner_channel]

    all_ids = [c.id for c in store.list_channels_for_vault(world.vault_id, active_only=False)]
    assert all_ids == [world.channel_id, inactive, unverified, partner_channel]


def test_delivery_history_newest_first_and_survives_missing_channel(store):
    store.record_delivery(999, utc(2026, 2, 5, 9), "Reminder: A", "<p>a</p>", error="boom")
    store.record_delivery(999, utc(2026, 2, 6, 9), "Reminder: B", "<p>b</p>")

    history = store.list_deliveries(999)
    assert [d.subject for d in history] == ["Reminder: B", "Reminder: A"]
    assert history[1].error == "boom"
    assert history[0].succeeded


def test_empty_error_is_stored_as_success(store):
    record = store.record_delivery(1, utc(2026, 2, 5, 9), "s", "p", error="")
    assert record.error is None


def test_storage_errors_are_wrapped():
    bare_engine = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    broken = SqlReminderStore(sessionmaker(bind=bare_engine, expire_on_commit=False))
    with pytest.raises(StorageError):
        broken.list_due(utc(2026, 2, 5, 9))
