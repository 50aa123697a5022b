"""RSVP reminder cascade.

Each handler is safe to re-run for the same RSVP: pending reminders for the
``(user, event)`` pair are cancelled before the new set is inserted, so the
store never holds two active rows for one slot.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from .config import settings
from .crud import cancel_pending_for_subject, enqueue_notification, get_reminder_config
from .database import ConfigurationError, get_session
from .models import (
    REFERENCE_EVENT_INTERESTED,
    REFERENCE_EVENT_RSVP,
    RSVP_REFERENCE_TYPES,
)
from .payloads import (
    ConfirmAttendance7dPayload,
    ConfirmAttendance24hPayload,
    DEFAULT_LOCATION_NAME,
    EventReminderPayload,
    EventStartingNudgePayload,
    FeedbackRequestPayload,
    FinalReminder2hPayload,
    NotificationPayload,
)
from .policy import (
    ReminderKind,
    compute_interested_reminder_time,
    compute_reminder_times,
)
from .utils import format_day_of_week, format_event_time, to_naive_utc, utcnow

logger = logging.getLogger("uvicorn.error")


class _EventData(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RsvpEventData(_EventData):
    user_id: str
    locale: str = "en"
    event_id: str
    event_title: str
    event_slug: str
    starts_at: datetime
    ends_at: datetime | None = None
    location_name: str | None = None
    google_maps_url: str | None = None


class RsvpCancelledData(_EventData):
    user_id: str
    event_id: str


def _coerce(model: type[_EventData], data: Any):
    return data if isinstance(data, model) else model.model_validate(data)


def _build_payload(kind: ReminderKind, data: RsvpEventData) -> NotificationPayload:
    tz = settings.event_timezone
    common = {
        "user_id": data.user_id,
        "locale": data.locale,
        "event_id": data.event_id,
        "event_slug": data.event_slug,
        "event_title": data.event_title,
    }
    location = data.location_name or DEFAULT_LOCATION_NAME
    if kind is ReminderKind.REMINDER_7D:
        return ConfirmAttendance7dPayload(
            **common,
            event_time=format_event_time(data.starts_at, tz),
            event_day_of_week=format_day_of_week(data.starts_at, tz),
        )
    if kind is ReminderKind.REMINDER_24H:
        return ConfirmAttendance24hPayload(
            **common, event_time=format_event_time(data.starts_at, tz)
        )
    if kind is ReminderKind.REMINDER_2H:
        return FinalReminder2hPayload(
            **common, location_name=location, google_maps_url=data.google_maps_url
        )
    if kind is ReminderKind.STARTING_NUDGE:
        return EventStartingNudgePayload(
            **common, location_name=location, google_maps_url=data.google_maps_url
        )
    if kind is ReminderKind.FEEDBACK:
        return FeedbackRequestPayload(**common)
    raise ValueError(f"Unknown reminder kind {kind!r}")


def _clear_pending(session: Session, *, user_id: str, event_id: str) -> int:
    return cancel_pending_for_subject(
        session,
        user_id=user_id,
        reference_id=event_id,
        reference_types=RSVP_REFERENCE_TYPES,
    )


def schedule_rsvp_reminders(data: Any, *, now: datetime | None = None) -> dict:
    """Handle ``rsvp/created``: replace the user's pending cascade for the event."""
    rsvp = _coerce(RsvpEventData, data)
    current = to_naive_utc(now) or utcnow()
    scheduled: list[str] = []
    try:
        with get_session() as session:
            config = get_reminder_config(session, rsvp.event_id)
            cancelled = _clear_pending(
                session, user_id=rsvp.user_id, event_id=rsvp.event_id
            )
            slots = compute_reminder_times(
                rsvp.starts_at,
                rsvp.ends_at,
                config,
                current,
                default_duration=timedelta(hours=settings.default_event_duration_hours),
                nudge_offset=timedelta(minutes=settings.starting_nudge_minutes),
                default_feedback_delay_hours=settings.default_feedback_delay_hours,
            )
            for kind, fire_at in slots:
                enqueue_notification(
                    session,
                    payload=_build_payload(kind, rsvp),
                    scheduled_for=fire_at,
                    reference_type=REFERENCE_EVENT_RSVP,
                    reference_id=rsvp.event_id,
                )
                scheduled.append(kind.value)
    except ConfigurationError as exc:
        logger.error("Cannot schedule RSVP reminders: %s", exc)
        return {"error": str(exc)}

    logger.info(
        "Scheduled RSVP reminders %s for user %s on event %s (replaced %d pending)",
        scheduled,
        rsvp.user_id,
        rsvp.event_id,
        cancelled,
    )
    return {"scheduled": scheduled, "cancelled": cancelled}


def schedule_interested_reminders(data: Any, *, now: datetime | None = None) -> dict:
    """Handle ``rsvp/interested``: a single 24h ``event_reminder`` nudge."""
    rsvp = _coerce(RsvpEventData, data)
    current = to_naive_utc(now) or utcnow()
    scheduled: list[str] = []
    try:
        with get_session() as session:
            cancelled = _clear_pending(
                session, user_id=rsvp.user_id, event_id=rsvp.event_id
            )
            fire_at = compute_interested_reminder_time(rsvp.starts_at, current)
            if fire_at is not None:
                payload = EventReminderPayload(
                    user_id=rsvp.user_id,
                    locale=rsvp.locale,
                    event_id=rsvp.event_id,
                    event_slug=rsvp.event_slug,
                    event_title=rsvp.event_title,
                    event_time=format_event_time(
                        rsvp.starts_at, settings.event_timezone
                    ),
                )
                enqueue_notification(
                    session,
                    payload=payload,
                    scheduled_for=fire_at,
                    reference_type=REFERENCE_EVENT_INTERESTED,
                    reference_id=rsvp.event_id,
                )
                scheduled.append(ReminderKind.REMINDER_24H.value)
    except ConfigurationError as exc:
        logger.error("Cannot schedule interested reminders: %s", exc)
        return {"error": str(exc)}

    logger.info(
        "Scheduled interested reminders %s for user %s on event %s",
        scheduled,
        rsvp.user_id,
        rsvp.event_id,
    )
    return {"scheduled": scheduled, "cancelled": cancelled}


def cancel_rsvp_reminders(data: Any) -> dict:
    """Handle ``rsvp/cancelled``: cancel every pending reminder for the pair."""
    request = _coerce(RsvpCancelledData, data)
    try:
        with get_session() as session:
            cancelled = _clear_pending(
                session, user_id=request.user_id, event_id=request.event_id
            )
    except ConfigurationError as exc:
        logger.error("Cannot cancel RSVP reminders: %s", exc)
        return {"error": str(exc)}

    logger.info(
        "Cancelled %d scheduled notification(s) for %s/%s",
        cancelled,
        request.event_id,
        request.user_id,
    )
    return {"cancelled": cancelled}
