"""
StayConnected — HTTP API (FastAPI).

Endpoints:
- POST   /check-in              Reset an event's timer
- POST   /notify                Alert contacts for overdue (or forced) events
- POST   /check-inactivity      One cron-driven inactivity cycle
- POST   /test-notifications    Send a test message to a contact
- POST   /events                Create an event
- PATCH  /events/{id}           Edit an event
- POST   /events/{id}/pause     Pause an event
- POST   /events/{id}/resume    Resume an event
- DELETE /events/{id}           Soft-delete an event
- GET    /events/{id}/status    Live overdue status
- POST   /contacts              Create a contact
- DELETE /contacts/{id}         Soft-delete a contact
- GET    /health                Liveness

Caller identity arrives in the X-User-Id header, set by the upstream auth
layer. Every error response has the shape {"success": false, "error": ...}.
"""

from __future__ import annotations

import hmac
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import Callable, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from stayconnected.adapters.event_bus import InProcessEventBus
from stayconnected.adapters.sender_factory import create_senders
from stayconnected.core.checkin_service import CheckInService
from stayconnected.core.errors import (
    AuthorizationError,
    NotFoundError,
    StayConnectedError,
    UnauthenticatedError,
    ValidationError,
)
from stayconnected.core.inactivity_monitor import InactivityMonitor
from stayconnected.core.notification_dispatcher import NotificationDispatcher
from stayconnected.core.provider_check import send_test_notification
from stayconnected.data.db import ActivityLogDB, ContactDB, EventDB, NotificationLogDB, UserDB

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Check-in service unavailable, try again later"


# ============================================================
# SERVICE WIRING
# ============================================================

@dataclass
class Services:
    users: UserDB
    events: EventDB
    contacts: ContactDB
    logs: NotificationLogDB
    activity: ActivityLogDB
    bus: InProcessEventBus
    checkin: CheckInService
    monitor: InactivityMonitor
    sender_factory: Callable


def build_services(
    db_path: str | None = None,
    senders: dict | None = None,
    sender_factory: Callable | None = None,
    default_threshold: int | None = None,
) -> Services:
    """Wire stores, senders and services over one database file."""
    if default_threshold is None:
        from stayconnected.config import settings
        default_threshold = settings.DEFAULT_MISSED_CHECKIN_THRESHOLD

    sender_factory = sender_factory or create_senders
    users = UserDB(db_path)
    events = EventDB(db_path)
    contacts = ContactDB(db_path)
    logs = NotificationLogDB(db_path)
    activity = ActivityLogDB(db_path)
    bus = InProcessEventBus()
    dispatcher = NotificationDispatcher(logs, senders if senders is not None else sender_factory())

    return Services(
        users=users,
        events=events,
        contacts=contacts,
        logs=logs,
        activity=activity,
        bus=bus,
        checkin=CheckInService(events, contacts, logs, activity, publisher=bus),
        monitor=InactivityMonitor(
            events, users, logs, activity, dispatcher,
            publisher=bus, default_threshold=default_threshold,
        ),
        sender_factory=sender_factory,
    )


# ============================================================
# REQUEST MODELS
# ============================================================

class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CheckInRequest(_CamelModel):
    event_id: str = Field(..., alias="eventId")


class NotifyRequest(_CamelModel):
    event_ids: Optional[list[str]] = Field(None, alias="eventIds")
    force: bool = False


class TestNotificationRequest(_CamelModel):
    contact_id: str = Field(..., alias="contactId")
    notification_type: str = Field(..., alias="notificationType")


class CreateEventRequest(_CamelModel):
    name: str
    check_in_frequency: str = Field(..., alias="checkInFrequency")
    missed_checkin_threshold: int = Field(1, alias="missedCheckinThreshold")
    contact_ids: list[str] = Field(default_factory=list, alias="contactIds")
    memo: Optional[str] = None
    notification_content: Optional[str] = Field(None, alias="notificationContent")


class UpdateEventRequest(_CamelModel):
    name: Optional[str] = None
    check_in_frequency: Optional[str] = Field(None, alias="checkInFrequency")
    missed_checkin_threshold: Optional[int] = Field(None, alias="missedCheckinThreshold")
    memo: Optional[str] = None
    muted: Optional[bool] = None
    notification_content: Optional[str] = Field(None, alias="notificationContent")
    contact_ids: Optional[list[str]] = Field(None, alias="contactIds")


class CreateContactRequest(_CamelModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    notification_preference: str = Field("both", alias="notificationPreference")
    social_media: dict[str, str] = Field(default_factory=dict, alias="socialMedia")


# ============================================================
# DEPENDENCIES
# ============================================================

def get_services(request: Request) -> Services:
    return request.app.state.services


def get_caller_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id:
        raise UnauthenticatedError("Missing X-User-Id header")
    return x_user_id


def require_cron_secret(request: Request, x_cron_secret: Optional[str] = Header(None)) -> None:
    expected = request.app.state.cron_secret
    if expected and not hmac.compare_digest(x_cron_secret or "", expected):
        raise UnauthenticatedError("Invalid cron secret")


def _event_dict(event) -> dict:
    data = asdict(event)
    data["status"] = event.status.value
    return data


# ============================================================
# ROUTES
# ============================================================

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.post("/check-in")
def check_in(
    body: CheckInRequest,
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    result = services.checkin.check_in(body.event_id, caller_id)
    return {"success": True, "timestamp": result.timestamp}


@router.post("/notify")
async def notify(
    body: NotifyRequest,
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    processed = await services.monitor.notify(caller_id, body.event_ids, force=body.force)
    return {"success": True, "processed": [p.to_dict() for p in processed]}


@router.post("/check-inactivity", dependencies=[Depends(require_cron_secret)])
async def check_inactivity(services: Services = Depends(get_services)):
    report = await services.monitor.run_cycle()
    return {"success": True, **report.to_dict()}


@router.post("/test-notifications")
async def test_notifications(
    body: TestNotificationRequest,
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    results = await send_test_notification(
        body.contact_id,
        body.notification_type,
        caller_id,
        services.contacts,
        services.users,
        services.sender_factory,
    )
    return {"success": True, "results": results}


@router.post("/events", status_code=201)
def create_event(
    body: CreateEventRequest,
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    event = services.checkin.create_event(
        caller_id,
        name=body.name,
        check_in_frequency=body.check_in_frequency,
        missed_checkin_threshold=body.missed_checkin_threshold,
        contact_ids=body.contact_ids,
        memo=body.memo,
        notification_content=body.notification_content,
    )
    return {"success": True, "event": _event_dict(event)}


@router.patch("/events/{event_id}")
def update_event(
    event_id: str,
    body: UpdateEventRequest,
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    changes = body.model_dump(exclude_unset=True)
    contact_ids = changes.pop("contact_ids", None)
    event = services.checkin.update_event(event_id, caller_id, changes, contact_ids)
    return {"success": True, "event": _event_dict(event)}


@router.post("/events/{event_id}/pause")
def pause_event(
    event_id: str,
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    event = services.checkin.pause_event(event_id, caller_id)
    return {"success": True, "event": _event_dict(event)}


@router.post("/events/{event_id}/resume")
def resume_event(
    event_id: str,
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    event = services.checkin.resume_event(event_id, caller_id)
    return {"success": True, "event": _event_dict(event)}


@router.delete("/events/{event_id}")
def delete_event(
    event_id: str,
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    services.checkin.delete_event(event_id, caller_id)
    return {"success": True}


@router.get("/events/{event_id}/status")
def event_status(
    event_id: str,
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    view = services.checkin.event_status(event_id, caller_id)
    return {"success": True, "status": view.to_dict()}


@router.post("/contacts", status_code=201)
def create_contact(
    body: CreateContactRequest,
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    contact = services.checkin.create_contact(
        caller_id,
        name=body.name,
        email=body.email,
        phone=body.phone,
        notification_preference=body.notification_preference,
        social_media=body.social_media,
    )
    return {"success": True, "contact": asdict(contact)}


@router.delete("/contacts/{contact_id}")
def delete_contact(
    contact_id: str,
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    services.checkin.delete_contact(contact_id, caller_id)
    return {"success": True}


# ============================================================
# ERROR MAPPING
# ============================================================

def _status_for(exc: StayConnectedError) -> int:
    if isinstance(exc, UnauthenticatedError):
        return 401
    if isinstance(exc, AuthorizationError):
        return 403
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    return 500


async def _handle_domain_error(request: Request, exc: StayConnectedError) -> JSONResponse:
    status = _status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        message = GENERIC_ERROR
    else:
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, status, exc)
        message = str(exc)
    return JSONResponse(status_code=status, content={"success": False, "error": message})


async def _handle_request_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'][1:]) or 'body'}: {err['msg']}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"success": False, "error": problems})


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": GENERIC_ERROR})


# ============================================================
# APP FACTORY
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services()
    logger.info("StayConnected API started")
    yield
    logger.info("StayConnected API stopped")


def create_app(services: Services | None = None, cron_secret: str | None = None) -> FastAPI:
    """Build the app. Services default to the configured database and providers."""
    if cron_secret is None:
        from stayconnected.config import settings
        cron_secret = settings.CRON_SECRET

    app = FastAPI(title="StayConnected", version="1.0.0", lifespan=lifespan)
    app.state.services = services
    app.state.cron_secret = cron_secret
    app.include_router(router)
    app.add_exception_handler(StayConnectedError, _handle_domain_error)
    app.add_exception_handler(RequestValidationError, _handle_request_error)
    app.add_exception_handler(Exception, _handle_unexpected)
    return app
