"""Reminder timing policy.

Everything here is a pure function of the event times, the per-event
configuration and an explicit ``now``; nothing reads the wall clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from .utils import to_naive_utc

DEFAULT_FEEDBACK_DELAY_HOURS = 3
DEFAULT_EVENT_DURATION = timedelta(hours=4)
STARTING_NUDGE_OFFSET = timedelta(minutes=15)


class ReminderKind(StrEnum):
    """Slots in the RSVP cascade, in firing order."""

    REMINDER_7D = "7d"
    REMINDER_24H = "24h"
    REMINDER_2H = "2h"
    STARTING_NUDGE = "starting_nudge"
    FEEDBACK = "feedback"


@dataclass(frozen=True)
class ReminderConfig:
    reminder_7d: bool = True
    reminder_24h: bool = True
    reminder_2h: bool = True
    starting_nudge: bool = True
    feedback: bool = True
    feedback_delay_hours: int | None = DEFAULT_FEEDBACK_DELAY_HOURS

    def enabled(self, kind: ReminderKind) -> bool:
        return {
            ReminderKind.REMINDER_7D: self.reminder_7d,
            ReminderKind.REMINDER_24H: self.reminder_24h,
            ReminderKind.REMINDER_2H: self.reminder_2h,
            ReminderKind.STARTING_NUDGE: self.starting_nudge,
            ReminderKind.FEEDBACK: self.feedback,
        }[kind]

    def feedback_delay(
        self, default_hours: int = DEFAULT_FEEDBACK_DELAY_HOURS
    ) -> timedelta:
        # 0 and None both fall back to the default delay.
        return timedelta(hours=self.feedback_delay_hours or default_hours)


def resolve_event_end(
    starts_at: datetime,
    ends_at: datetime | None,
    *,
    default_duration: timedelta = DEFAULT_EVENT_DURATION,
) -> datetime:
    return ends_at if ends_at is not None else starts_at + default_duration


def compute_reminder_times(
    starts_at: datetime,
    ends_at: datetime | None,
    config: ReminderConfig,
    now: datetime,
    *,
    default_duration: timedelta = DEFAULT_EVENT_DURATION,
    nudge_offset: timedelta = STARTING_NUDGE_OFFSET,
    default_feedback_delay_hours: int = DEFAULT_FEEDBACK_DELAY_HOURS,
) -> list[tuple[ReminderKind, datetime]]:
    """Return ``(kind, fire_at)`` pairs for every enabled slot still in the future.

    Slots whose firing time is at or before ``now`` are dropped, never
    backfilled. All datetimes are compared as naive UTC.
    """
    start = to_naive_utc(starts_at)
    end = resolve_event_end(
        start, to_naive_utc(ends_at), default_duration=default_duration
    )
    current = to_naive_utc(now)

    feedback_at = end + config.feedback_delay(default_feedback_delay_hours)
    candidates = [
        (ReminderKind.REMINDER_7D, start - timedelta(days=7)),
        (ReminderKind.REMINDER_24H, start - timedelta(hours=24)),
        (ReminderKind.REMINDER_2H, start - timedelta(hours=2)),
        (ReminderKind.STARTING_NUDGE, start + nudge_offset),
        (ReminderKind.FEEDBACK, feedback_at),
    ]
    return [
        (kind, fire_at)
        for kind, fire_at in candidates
        if config.enabled(kind) and fire_at > current
    ]


def compute_interested_reminder_time(
    starts_at: datetime, now: datetime
) -> datetime | None:
    """Return the single 24h nudge for interested users, or ``None`` if past."""
    fire_at = to_naive_utc(starts_at) - timedelta(hours=24)
    return fire_at if fire_at > to_naive_utc(now) else None
