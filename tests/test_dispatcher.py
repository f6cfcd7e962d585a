import threading

from conftest import RecordingTransport, add_channel, get_channel_row, utc
from tether.reminders.dispatcher import (
    MAX_CHANNEL_FAILS,
    ReminderDispatcher,
    contact_name,
    render_notification,
)
from tether.reminders.errors import StorageError
from tether.reminders.schemas import ReminderCreate
from tether.reminders.transports import TransportRegistry
from tether.models import Contact
from tether.reminders.models import ScheduledInstance


def create(service, world, now, **fields):
    fields.setdefault("label", "Dentist")
    fields.setdefault("type", "one_time")
    return service.create(world.contact_id, ReminderCreate(**fields), now=now)


def test_render_notification():
    subject, body = render_notification("Dentist", "Ada Lovelace")
    assert subject == "Reminder: Dentist"
    assert body == (
        "<h2>Reminder: Dentist</h2>"
        "<p>You have a reminder for <strong>Ada Lovelace</strong>.</p>"
        "<p>Dentist</p>"
    )


def test_render_notification_escapes_html_in_body_only():
    subject, body = render_notification("<b>Tea</b>", "A & B")
    assert subject == "Reminder: <b>Tea</b>"
    assert "&lt;b&gt;Tea&lt;/b&gt;" in body
    assert "A &amp; B" in body


def test_contact_name():
    assert contact_name(Contact(first_name="Ada", last_name="Lovelace")) == "Ada Lovelace"
    assert contact_name(Contact(first_name="Ada", last_name=None)) == "Ada"
    assert contact_name(Contact(first_name=None, last_name="Lovelace")) == "Lovelace"
    assert contact_name(Contact(first_name=" ", last_name=None)) == "Unknown"
    assert contact_name(None) == "Unknown"


def test_one_time_success(service, store, dispatcher, world, email_transport):
    reminder = create(service, world, utc(2026, 2, 1, 8, 0), day=5, month=2, year=2026)
    [instance] = store.list_pending_instances(reminder.id)
    assert instance.scheduled_at == utc(2026, 2, 5, 9, 0)

    assert dispatcher.tick(utc(2026, 2, 4, 9, 0)) == 0
    assert email_transport.sent == []

    assert dispatcher.tick(utc(2026, 2, 5, 9, 0)) == 1

    [(destination, subject, body)] = email_transport.sent
    assert destination == "owner@example.com"
    assert subject == "Reminder: Dentist"
    assert "<strong>Ada Lovelace</strong>" in body

    [record] = store.list_deliveries(world.channel_id)
    assert record.subject == "Reminder: Dentist"
    assert record.error is None
    assert record.sent_at == utc(2026, 2, 5, 9, 0)

    assert store.list_pending_instances() == []
    loaded = store.get_reminder(reminder.id)
    assert loaded.number_times_triggered == 1
    assert loaded.last_triggered_at == utc(2026, 2, 5, 9, 0)

    # nothing left for a later tick
    assert dispatcher.tick(utc(2026, 2, 6, 9, 0)) == 0
    assert len(email_transport.sent) == 1


def test_tick_truncates_now_to_the_minute(service, store, dispatcher, world, session_factory):
    reminder = create(service, world, utc(2026, 2, 1), day=5, month=2, year=2026)
    dispatcher.tick(utc(2026, 2, 5, 9, 0, 45, 123))
    db = session_factory()
    try:
        instance = db.query(ScheduledInstance).filter(ScheduledInstance.reminder_id == reminder.id).one()
        assert instance.triggered_at == utc(2026, 2, 5, 9, 0)
    finally:
        db.close()


def test_recurring_week_reschedule(service, store, dispatcher, world):
    reminder = create(
        service,
        world,
        utc(2026, 2, 20),
        label="Call mom",
        type="recurring_week",
        frequency_number=2,
        day=1,
        month=3,
        year=2026,
    )
    assert dispatcher.tick(utc(2026, 3, 1, 9, 0)) == 1

    [pending] = store.list_pending_instances(reminder.id)
    assert pending.channel_id == world.channel_id
    assert pending.scheduled_at == utc(2026, 3, 15, 9, 0)


def test_recurring_month_reschedule(service, store, dispatcher, world):
    reminder = create(service, world, utc(2026, 1, 20), type="recurring_month", day=31, month=1, year=2026)
    dispatcher.tick(utc(2026, 1, 31, 9, 0))
    [pending] = store.list_pending_instances(reminder.id)
    assert pending.scheduled_at == utc(2026, 2, 28, 9, 0)


def test_transient_failure_then_success(service, store, dispatcher, world, email_transport, session_factory):
    reminder = create(service, world, utc(2026, 3, 20), day=1, month=4, year=2026)

    email_transport.fail_with = "smtp timeout"
    assert dispatcher.tick(utc(2026, 4, 1, 9, 0)) == 0

    [failed] = store.list_deliveries(world.channel_id)
    assert failed.error == "smtp timeout"
    [still_pending] = store.list_pending_instances(reminder.id)
    assert still_pending.triggered_at is None
    assert get_channel_row(session_factory, world.channel_id).fails == 1
    assert store.get_reminder(reminder.id).number_times_triggered == 0

    email_transport.fail_with = None
    assert dispatcher.tick(utc(2026, 4, 1, 9, 1)) == 1

    history = store.list_deliveries(world.channel_id)
    assert [d.error for d in history] == [None, "smtp timeout"]
    assert store.list_pending_instances() == []
    assert get_channel_row(session_factory, world.channel_id).fails == 0
    assert store.get_reminder(reminder.id).number_times_triggered == 1


def test_auto_disable_stops_rescheduling(service, store, dispatcher, world, email_transport, session_factory):
    reminder = create(service, world, utc(2026, 4, 20), type="recurring_week", day=1, month=5, year=2026)
    for _ in range(MAX_CHANNEL_FAILS - 1):
        store.bump_channel_fails(world.channel_id)

    email_transport.fail_with = "mailbox unavailable"
    dispatcher.tick(utc(2026, 5, 1, 9, 0))

    channel = get_channel_row(session_factory, world.channel_id)
    assert channel.fails == MAX_CHANNEL_FAILS
    assert channel.active is False
    [pending] = store.list_pending_instances(reminder.id)
    assert pending.scheduled_at == utc(2026, 5, 1, 9, 0)

    # disabled channel is skipped on later ticks
    email_transport.fail_with = None
    assert dispatcher.tick(utc(2026, 5, 2, 9, 0)) == 0
    assert email_transport.sent == []


def test_failed_recurring_instance_is_not_duplicated(service, store, dispatcher, world, email_transport):
    reminder = create(service, world, utc(2026, 4, 20), type="recurring_week", day=1, month=5, year=2026)
    email_transport.fail_with = "down"
    dispatcher.tick(utc(2026, 5, 1, 9, 0))
    dispatcher.tick(utc(2026, 5, 1, 9, 1))
    [pending] = store.list_pending_instances(reminder.id)
    assert pending.scheduled_at == utc(2026, 5, 1, 9, 0)


def test_lunar_yearly_follows_lunar_calendar(service, store, dispatcher, world):
    reminder = create(
        service,
        world,
        utc(2026, 1, 15, 10, 0),
        label="Mid-Autumn",
        type="recurring_year",
        calendar_type="lunar",
        original_day=15,
        original_month=8,
    )
    [first] = store.list_pending_instances(reminder.id)
    assert first.scheduled_at == utc(2026, 9, 25, 9, 0)

    assert dispatcher.tick(utc(2026, 9, 25, 9, 0)) == 1

    [second] = store.list_pending_instances(reminder.id)
    assert second.scheduled_at == utc(2027, 9, 15, 9, 0)


def test_gregorian_yearly_adds_years(service, store, dispatcher, world):
    reminder = create(service, world, utc(2026, 2, 10), type="recurring_year", day=5, month=2)
    [first] = store.list_pending_instances(reminder.id)
    assert first.scheduled_at == utc(2027, 2, 5, 9, 0)
    dispatcher.tick(utc(2027, 2, 5, 9, 0))
    [second] = store.list_pending_instances(reminder.id)
    assert second.scheduled_at == utc(2028, 2, 5, 9, 0)


def test_inactive_channel_is_skipped(service, store, dispatcher, world, email_transport):
    reminder = create(service, world, utc(2026, 2, 1), day=5, month=2, year=2026)
    store.set_channel_active(world.channel_id, False)

    assert dispatcher.tick(utc(2026, 2, 5, 9, 0)) == 0
    assert email_transport.sent == []
    assert store.list_deliveries(world.channel_id) == []
    assert len(store.list_pending_instances(reminder.id)) == 1


def test_channel_without_transport_is_left_pending(service, store, dispatcher, world, session_factory):
    add_channel(session_factory, world.user_id, type="carrier-pigeon", content="loft 3")
    reminder = create(service, world, utc(2026, 2, 1), day=5, month=2, year=2026)

    assert dispatcher.tick(utc(2026, 2, 5, 9, 0)) == 1
    [pending] = store.list_pending_instances(reminder.id)
    assert pending.channel_id != world.channel_id


def test_error_in_one_instance_does_not_stop_the_tick(service, store, world, email_transport, tz, monkeypatch):
    first = create(service, world, utc(2026, 2, 1), label="First", day=5, month=2, year=2026)
    second = create(service, world, utc(2026, 2, 1), label="Second", day=5, month=2, year=2026)
    [broken_instance] = store.list_pending_instances(first.id)

    real_complete = store.complete_delivery

    def flaky_complete(instance_id, *args, **kwargs):
        if instance_id == broken_instance.id:
            raise RuntimeError("disk on fire")
        return real_complete(instance_id, *args, **kwargs)

    monkeypatch.setattr(store, "complete_delivery", flaky_complete)
    dispatcher = ReminderDispatcher(store, TransportRegistry({"email": email_transport}), tz=tz)

    assert dispatcher.tick(utc(2026, 2, 5, 9, 0)) == 1
    assert store.list_pending_instances(second.id) == []
    assert len(store.list_pending_instances(first.id)) == 1


def test_storage_failure_on_list_due_is_contained(store, transports, tz, monkeypatch):
    def broken(now):
        raise StorageError("database is gone")

    monkeypatch.setattr(store, "list_due", broken)
    assert ReminderDispatcher(store, transports, tz=tz).tick(utc(2026, 2, 5, 9, 0)) == 0


def test_stop_event_halts_processing(service, store, dispatcher, world, email_transport):
    reminder = create(service, world, utc(2026, 2, 1), day=5, month=2, year=2026)
    stop_event = threading.Event()
    stop_event.set()

    assert dispatcher.tick(utc(2026, 2, 5, 9, 0), stop_event=stop_event) == 0
    assert email_transport.sent == []
    assert len(store.list_pending_instances(reminder.id)) == 1


def test_run_forever_exits_when_stopped(dispatcher):
    stop_event = threading.Event()
    stop_event.set()
    dispatcher.run_forever(0.01, stop_event)


def test_fan_out_delivers_per_channel_independently(service, store, world, tz, session_factory):
    push = RecordingTransport("push")
    push.fail_with = "token expired"
    email = RecordingTransport("email")
    push_channel = add_channel(session_factory, world.user_id, type="push", content="device-token")
    dispatcher = ReminderDispatcher(store, TransportRegistry({"email": email, "push": push}), tz=tz)

    reminder = create(service, world, utc(2026, 2, 1), day=5, month=2, year=2026)
    assert dispatcher.tick(utc(2026, 2, 5, 9, 0)) == 1

    assert len(email.sent) == 1
    [pending] = store.list_pending_instances(reminder.id)
    assert pending.channel_id == push_channel
    assert get_channel_row(session_factory, push_channel).fails == 1
    assert get_channel_row(session_factory, world.channel_id).fails == 0
    assert store.get_reminder(reminder.id).number_times_triggered == 1
