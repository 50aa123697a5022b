from __future__ import annotations

from datetime import UTC, datetime, timedelta

from eventnotify.policy import (
    ReminderConfig,
    ReminderKind,
    compute_interested_reminder_time,
    compute_reminder_times,
    resolve_event_end,
)

NOW = datetime(2025, 3, 1, 9, 0, 0)
STARTS_AT = NOW + timedelta(days=10)


def _as_dict(slots):
    return {kind: fire_at for kind, fire_at in slots}


def test_full_cascade_offsets():
    ends_at = STARTS_AT + timedelta(hours=2)
    slots = _as_dict(compute_reminder_times(STARTS_AT, ends_at, ReminderConfig(), NOW))

    assert slots == {
        ReminderKind.REMINDER_7D: STARTS_AT - timedelta(days=7),
        ReminderKind.REMINDER_24H: STARTS_AT - timedelta(hours=24),
        ReminderKind.REMINDER_2H: STARTS_AT - timedelta(hours=2),
        ReminderKind.STARTING_NUDGE: STARTS_AT + timedelta(minutes=15),
        ReminderKind.FEEDBACK: ends_at + timedelta(hours=3),
    }


def test_slots_are_returned_in_firing_order():
    slots = compute_reminder_times(STARTS_AT, None, ReminderConfig(), NOW)
    times = [fire_at for _, fire_at in slots]
    assert times == sorted(times)


def test_past_slots_are_skipped_not_backfilled():
    starts_at = NOW + timedelta(minutes=90)
    slots = _as_dict(compute_reminder_times(starts_at, None, ReminderConfig(), NOW))

    assert set(slots) == {ReminderKind.STARTING_NUDGE, ReminderKind.FEEDBACK}


def test_slot_exactly_at_now_is_dropped():
    starts_at = NOW + timedelta(hours=2)
    slots = _as_dict(compute_reminder_times(starts_at, None, ReminderConfig(), NOW))
    assert ReminderKind.REMINDER_2H not in slots


def test_event_in_the_past_schedules_nothing():
    starts_at = NOW - timedelta(days=2)
    assert compute_reminder_times(starts_at, None, ReminderConfig(), NOW) == []


def test_missing_end_defaults_to_four_hours():
    assert resolve_event_end(STARTS_AT, None) == STARTS_AT + timedelta(hours=4)
    slots = _as_dict(compute_reminder_times(STARTS_AT, None, ReminderConfig(), NOW))
    assert slots[ReminderKind.FEEDBACK] == STARTS_AT + timedelta(hours=7)


def test_disabled_slots_are_omitted():
    config = ReminderConfig(reminder_7d=False, starting_nudge=False, feedback=False)
    slots = _as_dict(compute_reminder_times(STARTS_AT, None, config, NOW))
    assert set(slots) == {ReminderKind.REMINDER_24H, ReminderKind.REMINDER_2H}


def test_zero_feedback_delay_falls_back_to_default():
    for delay in (0, None):
        config = ReminderConfig(feedback_delay_hours=delay)
        slots = _as_dict(compute_reminder_times(STARTS_AT, None, config, NOW))
        assert slots[ReminderKind.FEEDBACK] == STARTS_AT + timedelta(hours=7)


def test_feedback_fallback_uses_configured_default():
    ends_at = STARTS_AT + timedelta(hours=1)
    for delay in (0, None):
        config = ReminderConfig(feedback_delay_hours=delay)
        slots = _as_dict(
            compute_reminder_times(
                STARTS_AT, ends_at, config, NOW, default_feedback_delay_hours=6
            )
        )
        assert slots[ReminderKind.FEEDBACK] == ends_at + timedelta(hours=6)


def test_custom_feedback_delay():
    config = ReminderConfig(feedback_delay_hours=24)
    ends_at = STARTS_AT + timedelta(hours=1)
    slots = _as_dict(compute_reminder_times(STARTS_AT, ends_at, config, NOW))
    assert slots[ReminderKind.FEEDBACK] == ends_at + timedelta(hours=24)


def test_aware_datetimes_are_normalized_to_utc():
    aware_start = STARTS_AT.replace(tzinfo=UTC)
    slots = _as_dict(compute_reminder_times(aware_start, None, ReminderConfig(), NOW))
    assert slots[ReminderKind.REMINDER_24H] == STARTS_AT - timedelta(hours=24)
    assert slots[ReminderKind.REMINDER_24H].tzinfo is None


def test_interested_reminder_fires_a_day_before():
    assert compute_interested_reminder_time(STARTS_AT, NOW) == STARTS_AT - timedelta(
        hours=24
    )
    assert compute_interested_reminder_time(NOW + timedelta(hours=5), NOW) is None
