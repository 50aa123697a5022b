from __future__ import annotations

import pytest
from pydantic import ValidationError

from eventnotify.payloads import (
    CommentOnMomentPayload,
    ConfirmAttendance7dPayload,
    NotificationType,
    ThreadActivityPayload,
    dump_payload,
    notification_type_of,
    parse_payload,
)


def test_parse_payload_selects_variant_by_type():
    payload = parse_payload(
        {
            "type": "confirm_attendance_7d",
            "user_id": "user-1",
            "event_id": "event-1",
            "event_slug": "mixer",
            "event_title": "Mixer",
            "event_time": "7:30 PM",
            "event_day_of_week": "Saturday",
        }
    )
    assert isinstance(payload, ConfirmAttendance7dPayload)
    assert payload.locale == "en"
    assert notification_type_of(payload) is NotificationType.CONFIRM_ATTENDANCE_7D


def test_dump_payload_includes_discriminator():
    payload = CommentOnMomentPayload(
        user_id="user-1",
        moment_id="moment-1",
        event_slug="mixer",
        commenter_name="Ana",
        comment_preview="Great shot",
    )
    data = dump_payload(payload)
    assert data["type"] == "comment_on_moment"
    assert parse_payload(data) == payload


def test_unknown_type_is_rejected():
    with pytest.raises(ValidationError):
        parse_payload({"type": "birthday_wishes", "user_id": "user-1"})


def test_variant_fields_are_required():
    with pytest.raises(ValidationError):
        parse_payload({"type": "confirm_attendance_24h", "user_id": "user-1"})


def test_extra_fields_are_rejected():
    with pytest.raises(ValidationError):
        parse_payload(
            {
                "type": "feedback_request",
                "user_id": "user-1",
                "event_id": "event-1",
                "event_slug": "mixer",
                "event_title": "Mixer",
                "rating": 5,
            }
        )


def test_thread_activity_count_must_be_positive():
    with pytest.raises(ValidationError):
        ThreadActivityPayload(
            user_id="user-1",
            content_type="event",
            content_id="event-1",
            event_slug="mixer",
            content_title="Mixer",
            thread_id="comment-1",
            activity_count=0,
        )
