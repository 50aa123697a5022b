"""FastAPI application for eventnotify."""

from __future__ import annotations

import logging
import secrets
import tomllib
from contextlib import asynccontextmanager
from dataclasses import asdict
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from . import database
from .config import settings
from .crud import get_reminder_config, list_notifications_for_user, save_reminder_config
from .database import ConfigurationError
from .dispatcher import process_due_notifications
from .events import UnknownEventError, handle_event
from .models import NOTIFICATION_STATUSES, ScheduledNotification
from .policy import ReminderConfig
from .scheduler import start_scheduler, stop_scheduler
from .storage import fetch_root_token, init_db
from .utils import humanize_time

# Use uvicorn's error logger so messages get the level prefix in the default log
# format (needed for downstream filtering like Loki).
logger = logging.getLogger("uvicorn.error")

SCHEDULED_LIST_LIMIT = 200


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("eventnotify")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    if settings.enable_scheduler:
        start_scheduler()
    try:
        yield
    finally:
        stop_scheduler()


app = FastAPI(title="eventnotify", version=APP_VERSION, lifespan=lifespan)


def get_db():
    try:
        db = database.require_session_factory()()
    except ConfigurationError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


class DomainEventPayload(BaseModel):
    name: str = Field(..., description="Event name, e.g. 'rsvp/created'")
    data: dict[str, Any] = Field(default_factory=dict)


class ReminderConfigPayload(BaseModel):
    reminder_7d: bool = True
    reminder_24h: bool = True
    reminder_2h: bool = True
    starting_nudge: bool = True
    feedback: bool = True
    # None defers to the configured default_feedback_delay_hours.
    feedback_delay_hours: int | None = Field(None, ge=1, le=168)


def _get_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization") or ""
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_root_token(request: Request) -> None:
    token = _get_bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        expected = fetch_root_token()
    except ConfigurationError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if not secrets.compare_digest(token, expected):
        raise HTTPException(status_code=403, detail="Invalid token")


def _serialize_scheduled(row: ScheduledNotification) -> dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "type": row.type,
        "status": row.status,
        "scheduled_for": row.scheduled_for.isoformat(),
        "scheduled_for_human": humanize_time(row.scheduled_for),
        "reference_type": row.reference_type,
        "reference_id": row.reference_id,
        "sent_at": row.sent_at.isoformat() if row.sent_at else None,
        "error_message": row.error_message,
        "payload": row.payload,
    }


@app.exception_handler(UnknownEventError)
async def unknown_event_handler(request: Request, exc: UnknownEventError):
    return JSONResponse({"detail": f"No handler for event {exc}"}, status_code=404)


@app.exception_handler(ValidationError)
async def payload_validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        {"detail": exc.errors(include_url=False, include_context=False)},
        status_code=422,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"detail": exc.errors()}, status_code=422)


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    if "database is locked" in raw.lower():
        logger.error(
            "SQLite database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        return JSONResponse(
            {"detail": "The database is busy. Please retry shortly."}, status_code=503
        )
    logger.error(
        "Operational database error on %s %s: %s",
        request.method,
        request.url.path,
        raw,
    )
    return JSONResponse({"detail": "Database error"}, status_code=500)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "version": APP_VERSION}


@app.post("/api/v1/events", dependencies=[Depends(require_root_token)])
def ingest_event(payload: DomainEventPayload) -> dict[str, Any]:
    """Run the handler subscribed to a domain event."""
    result = handle_event(payload.name, payload.data)
    logger.info("Handled %s: %s", payload.name, result)
    return {"event": payload.name, "result": result}


@app.post("/api/v1/dispatch", dependencies=[Depends(require_root_token)])
def dispatch_now() -> dict[str, Any]:
    """Run one dispatcher tick immediately."""
    return process_due_notifications()


@app.get(
    "/api/v1/users/{user_id}/scheduled", dependencies=[Depends(require_root_token)]
)
def user_scheduled_notifications(
    user_id: str,
    status: str | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    if status and status not in NOTIFICATION_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status filter")
    rows = list_notifications_for_user(
        db, user_id, status=status, limit=SCHEDULED_LIST_LIMIT
    )
    return {"user_id": user_id, "notifications": [_serialize_scheduled(r) for r in rows]}


@app.get(
    "/api/v1/events/{event_id}/reminder-config",
    dependencies=[Depends(require_root_token)],
)
def read_reminder_config(event_id: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    config = get_reminder_config(db, event_id)
    return {"event_id": event_id, **asdict(config)}


@app.put(
    "/api/v1/events/{event_id}/reminder-config",
    dependencies=[Depends(require_root_token)],
)
def update_reminder_config(
    event_id: str,
    payload: ReminderConfigPayload,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Store per-event reminder flags; applies to RSVPs scheduled afterwards."""
    config = ReminderConfig(**payload.model_dump())
    save_reminder_config(db, event_id, config)
    return {"event_id": event_id, **asdict(config)}
