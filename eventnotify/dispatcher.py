"""Due-notification dispatcher.

One tick claims up to ``dispatch_batch_size`` due rows and delivers them. Each
row is handled independently: a failure is recorded on that row and the tick
moves on. The ``pending -> processing`` conditional update is the only guard
against overlapping ticks sending the same row twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .config import settings
from .crud import (
    claim_notification,
    fetch_due_notifications,
    get_rsvp,
    mark_cancelled,
    mark_failed,
    mark_sent,
)
from .database import ConfigurationError, get_session
from .gateway import Gateway, notify
from .payloads import EventStartingNudgePayload, NotificationPayload, parse_payload
from .utils import to_naive_utc, utcnow

logger = logging.getLogger("uvicorn.error")

DELIVERY_FAILED_MESSAGE = "Notification failed to send"
ALREADY_CONFIRMED_MESSAGE = "Skipped: attendee already confirmed"

OUTCOME_SENT = "sent"
OUTCOME_FAILED = "failed"
OUTCOME_SUPPRESSED = "suppressed"
OUTCOME_SKIPPED = "skipped"


@dataclass(frozen=True)
class DueNotification:
    id: str
    user_id: str
    payload: dict[str, Any]


def collect_due(now: datetime, limit: int) -> list[DueNotification]:
    with get_session() as session:
        rows = fetch_due_notifications(session, now=now, limit=limit)
        return [DueNotification(row.id, row.user_id, dict(row.payload)) for row in rows]


def _attendee_confirmed(user_id: str, payload: EventStartingNudgePayload) -> bool:
    with get_session() as session:
        rsvp = get_rsvp(
            session, user_id=user_id, event_id=payload.event_id, status="going"
        )
        return bool(rsvp and rsvp.confirmed_at)


def _should_suppress(due: DueNotification, payload: NotificationPayload) -> bool:
    if isinstance(payload, EventStartingNudgePayload):
        return _attendee_confirmed(due.user_id, payload)
    return False


def _record_failure(notification_id: str, message: str) -> None:
    try:
        with get_session() as session:
            mark_failed(session, notification_id, error_message=message)
    except Exception:
        logger.exception("Could not record failure for notification %s", notification_id)


def process_notification(due: DueNotification, gateway: Gateway) -> str:
    """Claim, deliver and finalize a single row; returns the outcome label."""
    try:
        with get_session() as session:
            claimed = claim_notification(session, due.id)
        if not claimed:
            logger.debug("Notification %s already claimed; skipping", due.id)
            return OUTCOME_SKIPPED

        payload = parse_payload(due.payload)
        if _should_suppress(due, payload):
            with get_session() as session:
                mark_cancelled(session, due.id, reason=ALREADY_CONFIRMED_MESSAGE)
            logger.debug(
                "Suppressed %s for user %s: attendee already confirmed",
                payload.type,
                due.user_id,
            )
            return OUTCOME_SUPPRESSED

        result = gateway(payload)
        with get_session() as session:
            if result.success:
                mark_sent(session, due.id, sent_at=utcnow())
            else:
                mark_failed(session, due.id, error_message=DELIVERY_FAILED_MESSAGE)
        return OUTCOME_SENT if result.success else OUTCOME_FAILED
    except Exception as exc:
        logger.exception("Error delivering scheduled notification %s", due.id)
        _record_failure(due.id, str(exc) or exc.__class__.__name__)
        return OUTCOME_FAILED


def process_due_notifications(
    *,
    now: datetime | None = None,
    gateway: Gateway | None = None,
    batch_size: int | None = None,
) -> dict:
    """Run one dispatcher tick and return per-outcome counts."""
    current = to_naive_utc(now) or utcnow()
    limit = batch_size or settings.dispatch_batch_size
    deliver = gateway or notify
    stats = {"processed": 0, "failed": 0, "suppressed": 0, "skipped": 0}

    try:
        due_rows = collect_due(current, limit)
    except ConfigurationError as exc:
        logger.error("Dispatcher cannot run: %s", exc)
        return {"processed": 0, "error": str(exc)}

    if not due_rows:
        return stats

    logger.info("Processing %d scheduled notification(s)", len(due_rows))
    for due in due_rows:
        outcome = process_notification(due, deliver)
        if outcome == OUTCOME_SENT:
            stats["processed"] += 1
        elif outcome == OUTCOME_FAILED:
            stats["failed"] += 1
        elif outcome == OUTCOME_SUPPRESSED:
            stats["suppressed"] += 1
        else:
            stats["skipped"] += 1

    logger.info(
        "Dispatcher tick finished: processed=%d, failed=%d, suppressed=%d, skipped=%d",
        stats["processed"],
        stats["failed"],
        stats["suppressed"],
        stats["skipped"],
    )
    return stats
