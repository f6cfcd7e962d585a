"""Channel-level operations: test sends and delivery history."""
import logging
from datetime import datetime
from typing import List, Optional

from tether.models import NotificationChannel
from tether.utils.timezone import now_utc, to_utc_aware
from .errors import NotFoundError, TransportError
from .models import DeliveryRecord
from .repository import ReminderStore
from .transports import TransportRegistry


logger = logging.getLogger(__name__)

TEST_SUBJECT = "Test notification"
TEST_BODY = "<p>This is a test notification from Tether.</p>"


def _owned_channel(store: ReminderStore, channel_id: int, user_id: Optional[int]) -> NotificationChannel:
    channel = store.get_channel(channel_id)
    if channel is None or (user_id is not None and channel.user_id != user_id):
        raise NotFoundError("channel", channel_id)
    return channel


def send_test_notification(
    store: ReminderStore,
    transports: TransportRegistry,
    channel_id: int,
    user_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> DeliveryRecord:
    """Send a fixed test message through the channel and record the attempt.

    Failures are recorded and re-raised as TransportError; they do not count
    toward the channel's failure streak.
    """
    now = to_utc_aware(now) if now else now_utc()
    channel = _owned_channel(store, channel_id, user_id)
    try:
        transports.send(channel.type, channel.content, TEST_SUBJECT, TEST_BODY)
    except Exception as exc:  # surfaced to the caller after recording
        error = str(exc) or type(exc).__name__
        store.record_delivery(channel.id, now, TEST_SUBJECT, TEST_BODY, error=error)
        logger.warning(f"⚠️ [Channels] Test send on channel {channel.id} failed: {error}")
        raise TransportError(error) from exc
    logger.info(f"✅ [Channels] Test notification sent on channel {channel.id}")
    return store.record_delivery(channel.id, now, TEST_SUBJECT, TEST_BODY)


def list_delivery_logs(
    store: ReminderStore,
    channel_id: int,
    user_id: Optional[int] = None,
    limit: int = 100,
) -> List[DeliveryRecord]:
    """Most recent delivery attempts on a channel, newest first."""
    _owned_channel(store, channel_id, user_id)
    return store.list_deliveries(channel_id, limit=limit)
