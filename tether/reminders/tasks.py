import redis
from celery import shared_task
from celery.utils.log import get_task_logger

from .config import settings
from .dispatcher import build_dispatcher


logger = get_task_logger(__name__)

DISPATCH_LOCK_NAME = "tether:reminders:dispatch"


def _dispatch_lock():
    if not settings.REDIS_URL:
        return None
    client = redis.Redis.from_url(settings.REDIS_URL)
    return client.lock(DISPATCH_LOCK_NAME, timeout=settings.DISPATCH_LOCK_TIMEOUT_SECONDS, blocking=False)


@shared_task(name="reminders.dispatch_due")
def dispatch_due_task() -> int:
    """Run one dispatcher tick. Returns the number of deliveries."""
    lock = _dispatch_lock()
    if lock is not None and not lock.acquire(blocking=False):
        logger.info("⏭️ [Reminders] Another dispatch tick holds the lock, skipping")
        return 0
    try:
        return build_dispatcher().tick()
    finally:
        if lock is not None:
            try:
                lock.release()
            except redis.exceptions.LockError:
                # Lock expired while the tick was running
                logger.warning("⚠️ [Reminders] Dispatch lock expired before release")
