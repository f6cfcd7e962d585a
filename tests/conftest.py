import os

# Settings are read at import time
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite://")
os.environ.setdefault("DEFAULT_TIMEZONE", "UTC")
os.environ.setdefault("REMINDER_METRICS_ENABLED", "false")

from datetime import datetime, timezone as dt_timezone  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from typing import List, Optional, Tuple  # noqa: E402
from zoneinfo import ZoneInfo  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from tether.db.base import Base  # noqa: E402
from tether.models import (  # noqa: E402
    Contact,
    ImportantDate,
    ImportantDateType,
    NotificationChannel,
    User,
    Vault,
    VaultMembership,
)
from tether.reminders import models as reminder_models  # noqa: E402,F401
from tether.reminders.authoring import ReminderService  # noqa: E402
from tether.reminders.dispatcher import ReminderDispatcher  # noqa: E402
from tether.reminders.errors import TransportError  # noqa: E402
from tether.reminders.repository import SqlReminderStore  # noqa: E402
from tether.reminders.transports import NotificationTransport, TransportRegistry  # noqa: E402


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=dt_timezone.utc)


class RecordingTransport(NotificationTransport):
    """Collects sends; raises TransportError while ``fail_with`` is set."""

    def __init__(self, kind: str = "email"):
        self.kind = kind
        self.sent: List[Tuple[str, str, str]] = []
        self.fail_with: Optional[str] = None

    def send(self, destination: str, subject: str, body_html: str) -> None:
        if self.fail_with is not None:
            raise TransportError(self.fail_with)
        self.sent.append((destination, subject, body_html))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def store(session_factory):
    return SqlReminderStore(session_factory)


@pytest.fixture
def tz():
    return ZoneInfo("UTC")


@pytest.fixture
def service(store, tz):
    return ReminderService(store, tz=tz)


@pytest.fixture
def email_transport():
    return RecordingTransport("email")


@pytest.fixture
def transports(email_transport):
    return TransportRegistry({"email": email_transport})


@pytest.fixture
def dispatcher(store, transports, tz):
    return ReminderDispatcher(store, transports, tz=tz)


def add_channel(
    session_factory,
    user_id: int,
    type: str = "email",
    content: str = "owner@example.com",
    active: bool = True,
    verified: bool = True,
    fails: int = 0,
) -> int:
    db = session_factory()
    try:
        channel = NotificationChannel(
            user_id=user_id,
            type=type,
            content=content,
            active=active,
            fails=fails,
            verified_at=utc(2026, 1, 1) if verified else None,
        )
        db.add(channel)
        db.commit()
        return channel.id
    finally:
        db.close()


def add_user(session_factory, vault_id: str, email: str) -> int:
    db = session_factory()
    try:
        user = User(email=email, first_name="Test", last_name="User")
        db.add(user)
        db.flush()
        db.add(VaultMembership(vault_id=vault_id, user_id=user.id))
        db.commit()
        return user.id
    finally:
        db.close()


def add_important_date(session_factory, contact_id: str, **fields) -> ImportantDate:
    db = session_factory()
    try:
        important_date = ImportantDate(contact_id=contact_id, **fields)
        db.add(important_date)
        db.commit()
        return important_date
    finally:
        db.close()


def get_channel_row(session_factory, channel_id: int) -> NotificationChannel:
    db = session_factory()
    try:
        return db.get(NotificationChannel, channel_id)
    finally:
        db.close()


@pytest.fixture
def world(session_factory):
    """One vault with one member, one verified email channel and one contact."""
    db = session_factory()
    try:
        vault = Vault(name="Family")
        db.add(vault)
        db.flush()
        user = User(email="owner@example.com", first_name="Olive", last_name="Owner")
        db.add(user)
        db.flush()
        db.add(VaultMembership(vault_id=vault.id, user_id=user.id))
        contact = Contact(vault_id=vault.id, first_name="Ada", last_name="Lovelace")
        db.add(contact)
        birthday = ImportantDateType(vault_id=vault.id, label="Birthday")
        db.add(birthday)
        db.commit()
        ids = SimpleNamespace(
            vault_id=vault.id,
            user_id=user.id,
            contact_id=contact.id,
            birthday_type_id=birthday.id,
        )
    finally:
        db.close()
    ids.channel_id = add_channel(session_factory, ids.user_id)
    return ids
