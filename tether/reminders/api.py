from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from tether.db.session import SessionLocal
from .authoring import ReminderService
from .channels import list_delivery_logs, send_test_notification
from .errors import NotFoundError, ReminderError, StorageError, TransportError, ValidationError
from .repository import ReminderStore, SqlReminderStore
from .schemas import DeliveryRead, ReminderCreate, ReminderRead, ReminderUpdate, ScheduledInstanceRead
from .transports import TransportRegistry, build_default_transports


router = APIRouter()


def get_store() -> ReminderStore:
    return SqlReminderStore(SessionLocal)


@lru_cache(maxsize=1)
def get_transports() -> TransportRegistry:
    return build_default_transports()


def get_service(store: ReminderStore = Depends(get_store)) -> ReminderService:
    return ReminderService(store)


def _http_error(exc: ReminderError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, TransportError):
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, StorageError):
        return HTTPException(status_code=503, detail="storage unavailable")
    return HTTPException(status_code=500, detail=str(exc))


@router.get("/health")
def health_check():
    return {"status": "healthy", "service": "reminders"}


@router.get("/contacts/{contact_id}/reminders", response_model=List[ReminderRead])
def list_reminders_endpoint(contact_id: str, service: ReminderService = Depends(get_service)):
    try:
        return service.list_for_contact(contact_id)
    except ReminderError as exc:
        raise _http_error(exc)


@router.post("/contacts/{contact_id}/reminders", response_model=ReminderRead, status_code=201)
def create_reminder_endpoint(
    contact_id: str, payload: ReminderCreate, service: ReminderService = Depends(get_service)
):
    try:
        return service.create(contact_id, payload)
    except ReminderError as exc:
        raise _http_error(exc)


@router.get("/contacts/{contact_id}/reminders/{reminder_id}", response_model=ReminderRead)
def get_reminder_endpoint(contact_id: str, reminder_id: str, service: ReminderService = Depends(get_service)):
    try:
        return service.get(reminder_id, contact_id=contact_id)
    except ReminderError as exc:
        raise _http_error(exc)


@router.get(
    "/contacts/{contact_id}/reminders/{reminder_id}/instances", response_model=List[ScheduledInstanceRead]
)
def list_pending_instances_endpoint(
    contact_id: str, reminder_id: str, service: ReminderService = Depends(get_service)
):
    try:
        return service.pending_instances(reminder_id, contact_id=contact_id)
    except ReminderError as exc:
        raise _http_error(exc)


@router.put("/contacts/{contact_id}/reminders/{reminder_id}", response_model=ReminderRead)
def update_reminder_endpoint(
    contact_id: str,
    reminder_id: str,
    payload: ReminderUpdate,
    service: ReminderService = Depends(get_service),
):
    try:
        return service.update(reminder_id, payload, contact_id=contact_id)
    except ReminderError as exc:
        raise _http_error(exc)


@router.delete("/contacts/{contact_id}/reminders/{reminder_id}", status_code=204)
def delete_reminder_endpoint(contact_id: str, reminder_id: str, service: ReminderService = Depends(get_service)):
    try:
        service.delete(reminder_id, contact_id=contact_id)
    except ReminderError as exc:
        raise _http_error(exc)
    return Response(status_code=204)


@router.put("/important-dates/{important_date_id}/reminder", response_model=Optional[ReminderRead])
def sync_important_date_endpoint(
    important_date_id: int,
    store: ReminderStore = Depends(get_store),
    service: ReminderService = Depends(get_service),
):
    """Create, refresh or drop the yearly reminder that follows an important date's remind_me flag."""
    important_date = store.get_important_date(important_date_id)
    if important_date is None:
        raise HTTPException(status_code=404, detail=f"important date {important_date_id} not found")
    try:
        return service.ensure_from_important_date(important_date)
    except ReminderError as exc:
        raise _http_error(exc)


@router.delete("/important-dates/{important_date_id}/reminder", status_code=204)
def remove_important_date_reminder_endpoint(
    important_date_id: int, service: ReminderService = Depends(get_service)
):
    try:
        service.remove_for_important_date(important_date_id)
    except ReminderError as exc:
        raise _http_error(exc)
    return Response(status_code=204)


@router.get("/channels/{channel_id}/deliveries", response_model=List[DeliveryRead])
def list_deliveries_endpoint(
    channel_id: int,
    limit: int = 100,
    user_id: Optional[int] = None,
    store: ReminderStore = Depends(get_store),
):
    try:
        return list_delivery_logs(store, channel_id, user_id=user_id, limit=limit)
    except ReminderError as exc:
        raise _http_error(exc)


@router.post("/channels/{channel_id}/test", response_model=DeliveryRead)
def send_test_endpoint(
    channel_id: int,
    user_id: Optional[int] = None,
    store: ReminderStore = Depends(get_store),
    transports: TransportRegistry = Depends(get_transports),
):
    try:
        return send_test_notification(store, transports, channel_id, user_id=user_id)
    except ReminderError as exc:
        raise _http_error(exc)
