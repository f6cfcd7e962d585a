#!/usr/bin/env python3
"""
Standalone dispatcher process.

Polls for due reminders without Celery; use either this or the Celery beat
schedule, never both against the same database.
"""
import logging
import signal
import sys
import threading

from dotenv import load_dotenv

load_dotenv()

from tether.core.config import settings as core_settings  # noqa: E402
from tether.utils.timezone import now_local  # noqa: E402
from .config import settings  # noqa: E402
from .dispatcher import build_dispatcher  # noqa: E402


logging.basicConfig(
    level=getattr(logging, core_settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)


def main() -> int:
    logger.info("🚀 Starting Tether reminder dispatcher")
    logger.info(f"📅 Started at: {now_local()} ({core_settings.DEFAULT_TIMEZONE})")

    stop_event = threading.Event()

    def _request_stop(signum, _frame):
        logger.info(f"🛑 Received signal {signum}, finishing current tick")
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    try:
        build_dispatcher().run_forever(settings.DISPATCH_INTERVAL_SECONDS, stop_event)
    except Exception as e:
        logger.error(f"❌ Dispatcher process error: {e}")
        return 1
    finally:
        logger.info("👋 Dispatcher process terminated")
    return 0


if __name__ == "__main__":
    sys.exit(main())
