"""Notification payload variants, discriminated by ``type``.

Every payload carries the data needed to render and deliver itself, so the
dispatcher never performs a second lookup for rendering. The union is closed:
``parse_payload`` rejects unknown ``type`` values.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class NotificationType(StrEnum):
    CONFIRM_ATTENDANCE_7D = "confirm_attendance_7d"
    CONFIRM_ATTENDANCE_24H = "confirm_attendance_24h"
    FINAL_REMINDER_2H = "final_reminder_2h"
    EVENT_STARTING_NUDGE = "event_starting_nudge"
    FEEDBACK_REQUEST = "feedback_request"
    EVENT_REMINDER = "event_reminder"
    COMMENT_ON_EVENT = "comment_on_event"
    COMMENT_ON_MOMENT = "comment_on_moment"
    REPLY_TO_COMMENT = "reply_to_comment"
    THREAD_ACTIVITY = "thread_activity"


CommentTargetType = Literal["event", "moment"]

DEFAULT_LOCATION_NAME = "the venue"


class _BasePayload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    user_id: str
    locale: str = "en"


class _EventPayload(_BasePayload):
    event_id: str
    event_slug: str
    event_title: str


class ConfirmAttendance7dPayload(_EventPayload):
    type: Literal["confirm_attendance_7d"] = "confirm_attendance_7d"
    event_time: str
    event_day_of_week: str


class ConfirmAttendance24hPayload(_EventPayload):
    type: Literal["confirm_attendance_24h"] = "confirm_attendance_24h"
    event_time: str


class FinalReminder2hPayload(_EventPayload):
    type: Literal["final_reminder_2h"] = "final_reminder_2h"
    location_name: str = DEFAULT_LOCATION_NAME
    google_maps_url: str | None = None


class EventStartingNudgePayload(_EventPayload):
    type: Literal["event_starting_nudge"] = "event_starting_nudge"
    location_name: str = DEFAULT_LOCATION_NAME
    google_maps_url: str | None = None


class FeedbackRequestPayload(_EventPayload):
    type: Literal["feedback_request"] = "feedback_request"


class EventReminderPayload(_EventPayload):
    type: Literal["event_reminder"] = "event_reminder"
    event_time: str


class CommentOnEventPayload(_EventPayload):
    type: Literal["comment_on_event"] = "comment_on_event"
    comment_id: str
    commenter_name: str
    comment_preview: str


class CommentOnMomentPayload(_BasePayload):
    type: Literal["comment_on_moment"] = "comment_on_moment"
    moment_id: str
    event_slug: str
    commenter_name: str
    comment_preview: str


class ReplyToCommentPayload(_BasePayload):
    type: Literal["reply_to_comment"] = "reply_to_comment"
    content_type: CommentTargetType
    content_id: str
    event_slug: str
    comment_id: str
    parent_comment_id: str
    replier_name: str
    comment_preview: str


class ThreadActivityPayload(_BasePayload):
    type: Literal["thread_activity"] = "thread_activity"
    content_type: CommentTargetType
    content_id: str
    event_slug: str
    content_title: str
    thread_id: str
    activity_count: int = Field(default=1, ge=1)


NotificationPayload = Annotated[
    Union[
        ConfirmAttendance7dPayload,
        ConfirmAttendance24hPayload,
        FinalReminder2hPayload,
        EventStartingNudgePayload,
        FeedbackRequestPayload,
        EventReminderPayload,
        CommentOnEventPayload,
        CommentOnMomentPayload,
        ReplyToCommentPayload,
        ThreadActivityPayload,
    ],
    Field(discriminator="type"),
]

_payload_adapter: TypeAdapter[NotificationPayload] = TypeAdapter(NotificationPayload)


def parse_payload(raw: dict[str, Any]) -> NotificationPayload:
    """Validate a stored payload dict into its concrete variant."""
    return _payload_adapter.validate_python(raw)


def dump_payload(payload: NotificationPayload) -> dict[str, Any]:
    """Serialize a payload into JSON-compatible data for storage."""
    return payload.model_dump(mode="json")


def notification_type_of(payload: NotificationPayload) -> NotificationType:
    return NotificationType(payload.type)
