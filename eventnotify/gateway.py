"""Delivery gateway: fan a payload out to the user's notification channels.

Callers only rely on ``NotifyResult.success``. Channel failures are recorded
on the result instead of raised, so one broken channel never hides another.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable

import httpx

from .config import settings
from .crud import get_notification_preferences
from .database import get_session
from .models import Notification
from .payloads import (
    CommentOnEventPayload,
    CommentOnMomentPayload,
    ConfirmAttendance7dPayload,
    ConfirmAttendance24hPayload,
    EventReminderPayload,
    EventStartingNudgePayload,
    FeedbackRequestPayload,
    FinalReminder2hPayload,
    NotificationPayload,
    NotificationType,
    ReplyToCommentPayload,
    ThreadActivityPayload,
    dump_payload,
    notification_type_of,
)

logger = logging.getLogger("uvicorn.error")

CHANNEL_IN_APP = "in_app"
CHANNEL_PUSH = "push"

DEFAULT_CHANNELS: dict[NotificationType, tuple[str, ...]] = {
    NotificationType.CONFIRM_ATTENDANCE_7D: (CHANNEL_IN_APP, CHANNEL_PUSH),
    NotificationType.CONFIRM_ATTENDANCE_24H: (CHANNEL_IN_APP, CHANNEL_PUSH),
    NotificationType.FINAL_REMINDER_2H: (CHANNEL_IN_APP, CHANNEL_PUSH),
    NotificationType.EVENT_STARTING_NUDGE: (CHANNEL_IN_APP, CHANNEL_PUSH),
    NotificationType.EVENT_REMINDER: (CHANNEL_IN_APP, CHANNEL_PUSH),
    NotificationType.FEEDBACK_REQUEST: (CHANNEL_IN_APP,),
    NotificationType.COMMENT_ON_EVENT: (CHANNEL_IN_APP, CHANNEL_PUSH),
    NotificationType.COMMENT_ON_MOMENT: (CHANNEL_IN_APP, CHANNEL_PUSH),
    NotificationType.REPLY_TO_COMMENT: (CHANNEL_IN_APP, CHANNEL_PUSH),
    NotificationType.THREAD_ACTIVITY: (CHANNEL_IN_APP,),
}


class GatewayError(RuntimeError):
    """Raised by a channel when delivery cannot be attempted."""


@dataclass
class ChannelResult:
    channel: str
    success: bool
    error: str | None = None
    message_id: str | None = None


@dataclass
class NotifyResult:
    success: bool
    channels: list[ChannelResult] = field(default_factory=list)
    notification_id: str | None = None


@dataclass(frozen=True)
class RenderedContent:
    title: str
    body: str
    url: str


Gateway = Callable[[NotificationPayload], NotifyResult]


def _event_url(slug: str) -> str:
    return f"/events/{slug}"


def render_content(payload: NotificationPayload) -> RenderedContent:
    """Return a plain English title/body for the in-app inbox and push."""
    if isinstance(payload, ConfirmAttendance7dPayload):
        return RenderedContent(
            f"{payload.event_title} is next {payload.event_day_of_week}",
            f"Still coming? It starts at {payload.event_time}. Let the host know.",
            _event_url(payload.event_slug),
        )
    if isinstance(payload, ConfirmAttendance24hPayload):
        return RenderedContent(
            f"{payload.event_title} is tomorrow",
            f"Starts at {payload.event_time}. Please confirm you're still going.",
            _event_url(payload.event_slug),
        )
    if isinstance(payload, FinalReminder2hPayload):
        return RenderedContent(
            f"{payload.event_title} starts in 2 hours",
            f"See you at {payload.location_name}.",
            payload.google_maps_url or _event_url(payload.event_slug),
        )
    if isinstance(payload, EventStartingNudgePayload):
        return RenderedContent(
            f"{payload.event_title} has started",
            f"Are you on your way to {payload.location_name}?",
            payload.google_maps_url or _event_url(payload.event_slug),
        )
    if isinstance(payload, FeedbackRequestPayload):
        return RenderedContent(
            f"How was {payload.event_title}?",
            "Share a quick rating to help the organizer.",
            f"{_event_url(payload.event_slug)}/feedback",
        )
    if isinstance(payload, EventReminderPayload):
        return RenderedContent(
            f"{payload.event_title} is tomorrow",
            f"You were interested. It starts at {payload.event_time}.",
            _event_url(payload.event_slug),
        )
    if isinstance(payload, CommentOnEventPayload):
        return RenderedContent(
            f"{payload.commenter_name} commented on {payload.event_title}",
            payload.comment_preview,
            _event_url(payload.event_slug),
        )
    if isinstance(payload, CommentOnMomentPayload):
        return RenderedContent(
            f"{payload.commenter_name} commented on your moment",
            payload.comment_preview,
            f"{_event_url(payload.event_slug)}/moments/{payload.moment_id}",
        )
    if isinstance(payload, ReplyToCommentPayload):
        return RenderedContent(
            f"{payload.replier_name} replied to your comment",
            payload.comment_preview,
            _event_url(payload.event_slug),
        )
    if isinstance(payload, ThreadActivityPayload):
        return RenderedContent(
            f"New replies on {payload.content_title}",
            f"{payload.activity_count} new reply in a thread you started.",
            _event_url(payload.event_slug),
        )
    raise GatewayError(f"No template for notification type {payload.type!r}")


def send_in_app(payload: NotificationPayload, content: RenderedContent) -> ChannelResult:
    with get_session() as session:
        entry = Notification(
            user_id=payload.user_id,
            type=payload.type,
            title=content.title,
            body=content.body,
            primary_action_url=content.url,
            metadata_json={"payload": dump_payload(payload)},
        )
        session.add(entry)
        session.flush()
        message_id = entry.id
    return ChannelResult(CHANNEL_IN_APP, True, message_id=message_id)


def send_push(
    payload: NotificationPayload,
    content: RenderedContent,
    *,
    client: httpx.Client | None = None,
) -> ChannelResult:
    url = settings.push_webhook_url
    if not url:
        return ChannelResult(CHANNEL_PUSH, False, error="Push webhook not configured")
    body = {
        "user_id": payload.user_id,
        "tag": payload.type,
        "title": content.title,
        "body": content.body,
        "url": content.url,
    }
    owns_client = client is None
    http = client or httpx.Client(timeout=settings.push_timeout_seconds)
    try:
        response = http.post(url, json=body)
        response.raise_for_status()
    finally:
        if owns_client:
            http.close()
    return ChannelResult(CHANNEL_PUSH, True)


CHANNEL_SENDERS: dict[str, Callable[[NotificationPayload, RenderedContent], ChannelResult]] = {
    CHANNEL_IN_APP: send_in_app,
    CHANNEL_PUSH: send_push,
}


def channels_for(payload: NotificationPayload) -> tuple[str, ...]:
    """Resolve the channels a payload should use for its recipient.

    A per-type choice stored in the user's preferences replaces the default
    channels, and the global in-app and push toggles then filter the result.
    Users without stored preferences get ``DEFAULT_CHANNELS``.
    """
    kind = notification_type_of(payload)
    channels = DEFAULT_CHANNELS[kind]
    with get_session() as session:
        prefs = get_notification_preferences(session, payload.user_id)
        if prefs is None:
            return channels
        chosen = (prefs.channel_preferences or {}).get(kind.value)
        toggles = {
            CHANNEL_IN_APP: prefs.in_app_enabled,
            CHANNEL_PUSH: prefs.push_enabled,
        }
    if chosen is not None:
        channels = tuple(chosen)
    return tuple(channel for channel in channels if toggles.get(channel, True))


def notify(
    payload: NotificationPayload,
    *,
    channels: Iterable[str] | None = None,
    skip_preferences: bool = False,
) -> NotifyResult:
    """Deliver ``payload`` and report whether any channel succeeded.

    Explicit ``channels`` win; ``skip_preferences`` uses the type's default
    channels without consulting the recipient's stored preferences.
    """
    if channels is not None:
        enabled = tuple(channels)
    elif skip_preferences:
        enabled = DEFAULT_CHANNELS[notification_type_of(payload)]
    else:
        enabled = channels_for(payload)
    if not enabled:
        logger.debug("No enabled channels for %s; skipping", payload.type)
        return NotifyResult(success=True)

    content = render_content(payload)
    results: list[ChannelResult] = []
    for channel in enabled:
        sender = CHANNEL_SENDERS.get(channel)
        if sender is None:
            results.append(ChannelResult(channel, False, error="Unknown channel"))
            continue
        try:
            results.append(sender(payload, content))
        except (httpx.HTTPError, GatewayError) as exc:
            logger.warning(
                "Channel %s failed for %s to user %s: %s",
                channel,
                payload.type,
                payload.user_id,
                exc,
            )
            results.append(ChannelResult(channel, False, error=str(exc)))

    succeeded = [result for result in results if result.success]
    logger.debug(
        "Notify %s for user %s: %d/%d channels succeeded",
        payload.type,
        payload.user_id,
        len(succeeded),
        len(results),
    )
    notification_id = next(
        (r.message_id for r in results if r.channel == CHANNEL_IN_APP), None
    )
    return NotifyResult(
        success=bool(succeeded), channels=results, notification_id=notification_id
    )
