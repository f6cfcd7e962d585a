from celery import Celery

from .config import settings


broker_url = settings.CELERY_BROKER_URL or settings.REDIS_URL or "redis://localhost:6379/0"
result_backend = settings.CELERY_RESULT_BACKEND or None

celery_app = Celery(
    "reminders",
    broker=broker_url,
    backend=result_backend,
)

celery_app.conf.update(
    task_acks_late=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    worker_prefetch_multiplier=1,
    timezone="UTC",
    enable_utc=True,
    include=["tether.reminders.tasks"],
)

# Celery Beat schedule for periodic dispatch; run a single beat per deployment
celery_app.conf.beat_schedule = {
    "dispatch-due-reminders": {
        "task": "reminders.dispatch_due",
        "schedule": settings.DISPATCH_INTERVAL_SECONDS,
    },
}
