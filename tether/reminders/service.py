from typing import Optional

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from tether.core.config import settings as core_settings
from .api import router as reminders_router
from .config import settings


def create_app(metrics_enabled: Optional[bool] = None) -> FastAPI:
    """App factory; serve with ``uvicorn tether.reminders.service:create_app --factory``."""
    app = FastAPI(title=f"{core_settings.PROJECT_NAME} Reminder Service", version=core_settings.VERSION)
    app.include_router(reminders_router, prefix=f"{core_settings.API_V1_STR}/reminders", tags=["reminders"])
    if settings.METRICS_ENABLED if metrics_enabled is None else metrics_enabled:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")
    return app
