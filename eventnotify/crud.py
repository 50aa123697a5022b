"""Persistence helpers for scheduled notifications and their companion tables."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .config import settings
from .models import (
    RSVP,
    STATUS_CANCELLED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_SENT,
    EventReminderConfig,
    MutedThread,
    NotificationPreference,
    Profile,
    ScheduledNotification,
)
from .payloads import NotificationPayload, dump_payload
from .policy import ReminderConfig
from .utils import to_naive_utc, utcnow


def _now() -> datetime:
    return utcnow()


def enqueue_notification(
    session: Session,
    *,
    payload: NotificationPayload,
    scheduled_for: datetime,
    reference_type: str | None,
    reference_id: str | None,
) -> ScheduledNotification:
    """Insert a pending notification; envelope type and user come from the payload."""
    notification = ScheduledNotification(
        user_id=payload.user_id,
        type=payload.type,
        scheduled_for=to_naive_utc(scheduled_for),
        payload=dump_payload(payload),
        reference_type=reference_type,
        reference_id=reference_id,
        status=STATUS_PENDING,
    )
    session.add(notification)
    session.flush()
    return notification


def cancel_pending_for_subject(
    session: Session,
    *,
    user_id: str,
    reference_id: str,
    reference_types: Iterable[str],
    reason: str | None = None,
) -> int:
    """Cancel every pending row for ``(user_id, reference_id)``; returns the count.

    Rows already claimed by the dispatcher (``processing``) are left alone.
    """
    stmt = (
        update(ScheduledNotification)
        .where(
            ScheduledNotification.user_id == user_id,
            ScheduledNotification.reference_id == reference_id,
            ScheduledNotification.reference_type.in_(list(reference_types)),
            ScheduledNotification.status == STATUS_PENDING,
        )
        .values(status=STATUS_CANCELLED, error_message=reason, updated_at=_now())
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    return result.rowcount or 0


def fetch_due_notifications(
    session: Session, *, now: datetime, limit: int
) -> Sequence[ScheduledNotification]:
    stmt = (
        select(ScheduledNotification)
        .where(
            ScheduledNotification.status == STATUS_PENDING,
            ScheduledNotification.scheduled_for <= to_naive_utc(now),
        )
        .limit(limit)
    )
    return session.scalars(stmt).all()


def _transition(
    session: Session,
    notification_id: str,
    *,
    from_status: str,
    to_status: str,
    **values,
) -> bool:
    stmt = (
        update(ScheduledNotification)
        .where(
            ScheduledNotification.id == notification_id,
            ScheduledNotification.status == from_status,
        )
        .values(status=to_status, updated_at=_now(), **values)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    return result.rowcount == 1


def claim_notification(session: Session, notification_id: str) -> bool:
    """Move a row from pending to processing; only one caller can win."""
    return _transition(
        session,
        notification_id,
        from_status=STATUS_PENDING,
        to_status=STATUS_PROCESSING,
    )


def mark_sent(
    session: Session, notification_id: str, *, sent_at: datetime | None = None
) -> bool:
    return _transition(
        session,
        notification_id,
        from_status=STATUS_PROCESSING,
        to_status=STATUS_SENT,
        sent_at=to_naive_utc(sent_at) or _now(),
    )


def mark_failed(session: Session, notification_id: str, *, error_message: str) -> bool:
    return _transition(
        session,
        notification_id,
        from_status=STATUS_PROCESSING,
        to_status=STATUS_FAILED,
        error_message=error_message,
    )


def mark_cancelled(session: Session, notification_id: str, *, reason: str) -> bool:
    return _transition(
        session,
        notification_id,
        from_status=STATUS_PROCESSING,
        to_status=STATUS_CANCELLED,
        error_message=reason,
    )


def get_reminder_config(session: Session, event_id: str) -> ReminderConfig:
    """Return the event's reminder flags, or the defaults when none are stored."""
    row = session.get(EventReminderConfig, event_id)
    if row is None:
        return ReminderConfig(
            feedback_delay_hours=settings.default_feedback_delay_hours
        )
    return ReminderConfig(
        reminder_7d=row.reminder_7d,
        reminder_24h=row.reminder_24h,
        reminder_2h=row.reminder_2h,
        starting_nudge=row.starting_nudge,
        feedback=row.feedback,
        feedback_delay_hours=row.feedback_delay_hours,
    )


def save_reminder_config(
    session: Session, event_id: str, config: ReminderConfig
) -> EventReminderConfig:
    row = session.get(EventReminderConfig, event_id) or EventReminderConfig(
        event_id=event_id
    )
    row.reminder_7d = config.reminder_7d
    row.reminder_24h = config.reminder_24h
    row.reminder_2h = config.reminder_2h
    row.starting_nudge = config.starting_nudge
    row.feedback = config.feedback
    row.feedback_delay_hours = config.feedback_delay_hours
    session.add(row)
    session.flush()
    return row


def get_rsvp(
    session: Session, *, user_id: str, event_id: str, status: str | None = None
) -> RSVP | None:
    stmt = select(RSVP).where(RSVP.user_id == user_id, RSVP.event_id == event_id)
    if status is not None:
        stmt = stmt.where(RSVP.status == status)
    return session.scalars(stmt).first()


def get_profile(session: Session, user_id: str) -> Profile | None:
    return session.get(Profile, user_id)


def is_thread_muted(session: Session, *, user_id: str, thread_id: str) -> bool:
    stmt = select(MutedThread.id).where(
        MutedThread.user_id == user_id, MutedThread.thread_id == thread_id
    )
    return session.scalar(stmt) is not None


def get_notification_preferences(
    session: Session, user_id: str
) -> NotificationPreference | None:
    stmt = select(NotificationPreference).where(
        NotificationPreference.user_id == user_id
    )
    return session.scalars(stmt).first()


def save_notification_preferences(
    session: Session,
    user_id: str,
    *,
    channel_preferences: dict[str, list[str]] | None = None,
    in_app_enabled: bool | None = None,
    push_enabled: bool | None = None,
) -> NotificationPreference:
    """Upsert a user's preferences; arguments left as None keep their stored value."""
    row = get_notification_preferences(session, user_id)
    if row is None:
        row = NotificationPreference(
            user_id=user_id,
            channel_preferences={},
            in_app_enabled=True,
            push_enabled=True,
        )
    if channel_preferences is not None:
        row.channel_preferences = {
            str(kind): list(channels) for kind, channels in channel_preferences.items()
        }
    if in_app_enabled is not None:
        row.in_app_enabled = in_app_enabled
    if push_enabled is not None:
        row.push_enabled = push_enabled
    session.add(row)
    session.flush()
    return row


def list_notifications_for_user(
    session: Session,
    user_id: str,
    *,
    status: str | None = None,
    limit: int | None = None,
) -> Sequence[ScheduledNotification]:
    stmt = (
        select(ScheduledNotification)
        .where(ScheduledNotification.user_id == user_id)
        .order_by(ScheduledNotification.scheduled_for.asc())
    )
    if status:
        stmt = stmt.where(ScheduledNotification.status == status)
    if limit and limit > 0:
        stmt = stmt.limit(limit)
    return session.scalars(stmt).all()
