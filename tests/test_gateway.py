from __future__ import annotations

import json
import types

import httpx
from sqlalchemy import select

from eventnotify import gateway as gateway_module
from eventnotify.crud import save_notification_preferences
from eventnotify.database import get_session
from eventnotify.gateway import (
    CHANNEL_IN_APP,
    CHANNEL_PUSH,
    ChannelResult,
    channels_for,
    notify,
    render_content,
    send_push,
)
from eventnotify.models import Notification
from eventnotify.payloads import (
    FinalReminder2hPayload,
    ThreadActivityPayload,
)


def _final_reminder():
    return FinalReminder2hPayload(
        user_id="user-1",
        event_id="event-1",
        event_slug="mixer",
        event_title="Mixer",
        location_name="Rooftop Bar",
    )


def _inbox(user_id: str) -> list[Notification]:
    with get_session() as session:
        return list(
            session.scalars(select(Notification).where(Notification.user_id == user_id))
        )


def _push_settings(monkeypatch, url: str) -> None:
    monkeypatch.setattr(
        gateway_module,
        "settings",
        types.SimpleNamespace(push_webhook_url=url, push_timeout_seconds=1.0),
    )


def test_render_content_uses_payload_fields():
    content = render_content(_final_reminder())
    assert content.title == "Mixer starts in 2 hours"
    assert "Rooftop Bar" in content.body
    assert content.url == "/events/mixer"


def test_in_app_channel_writes_inbox_row(monkeypatch):
    _push_settings(monkeypatch, "")

    result = notify(_final_reminder())

    assert result.success is True
    (entry,) = _inbox("user-1")
    assert result.notification_id == entry.id
    assert entry.type == "final_reminder_2h"
    assert entry.title == "Mixer starts in 2 hours"
    assert entry.metadata_json["payload"]["location_name"] == "Rooftop Bar"
    push = next(r for r in result.channels if r.channel == CHANNEL_PUSH)
    assert push.success is False


def test_in_app_only_types_skip_push(monkeypatch):
    _push_settings(monkeypatch, "https://push.example.test/send")
    payload = ThreadActivityPayload(
        user_id="user-2",
        content_type="event",
        content_id="event-1",
        event_slug="mixer",
        content_title="Mixer",
        thread_id="comment-1",
    )

    result = notify(payload)

    assert [r.channel for r in result.channels] == [CHANNEL_IN_APP]
    assert len(_inbox("user-2")) == 1


def test_empty_channel_set_counts_as_success():
    result = notify(_final_reminder(), channels=[])
    assert result.success is True
    assert result.channels == []
    assert _inbox("user-1") == []


def test_push_posts_rendered_content(monkeypatch):
    _push_settings(monkeypatch, "https://push.example.test/send")
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(202)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    payload = _final_reminder()

    result = send_push(payload, render_content(payload), client=client)

    assert result.success is True
    assert seen == [
        {
            "user_id": "user-1",
            "tag": "final_reminder_2h",
            "title": "Mixer starts in 2 hours",
            "body": "See you at Rooftop Bar.",
            "url": "/events/mixer",
        }
    ]


def test_push_http_error_is_reported_per_channel(monkeypatch):
    _push_settings(monkeypatch, "https://push.example.test/send")
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
    monkeypatch.setitem(
        gateway_module.CHANNEL_SENDERS,
        CHANNEL_PUSH,
        lambda payload, content: send_push(payload, content, client=client),
    )

    result = notify(_final_reminder())

    assert result.success is True
    push = next(r for r in result.channels if r.channel == CHANNEL_PUSH)
    assert push.success is False
    assert "500" in push.error


def test_all_channels_failing_reports_failure(monkeypatch):
    _push_settings(monkeypatch, "")

    result = notify(_final_reminder(), channels=[CHANNEL_PUSH])

    assert result.success is False


def _record_push(monkeypatch) -> list[str]:
    pushed: list[str] = []

    def sender(payload, content):
        pushed.append(payload.user_id)
        return ChannelResult(CHANNEL_PUSH, True)

    monkeypatch.setitem(gateway_module.CHANNEL_SENDERS, CHANNEL_PUSH, sender)
    return pushed


def _save_preferences(user_id: str, **fields) -> None:
    with get_session() as session:
        save_notification_preferences(session, user_id, **fields)


def test_users_without_preferences_get_default_channels():
    assert channels_for(_final_reminder()) == (CHANNEL_IN_APP, CHANNEL_PUSH)


def test_push_opt_out_limits_delivery_to_in_app(monkeypatch):
    pushed = _record_push(monkeypatch)
    _save_preferences("user-1", push_enabled=False)

    result = notify(_final_reminder())

    assert result.success is True
    assert [r.channel for r in result.channels] == [CHANNEL_IN_APP]
    assert pushed == []
    assert len(_inbox("user-1")) == 1


def test_per_type_channel_choice_replaces_defaults(monkeypatch):
    pushed = _record_push(monkeypatch)
    _save_preferences(
        "user-1", channel_preferences={"final_reminder_2h": [CHANNEL_PUSH]}
    )

    result = notify(_final_reminder())

    assert [r.channel for r in result.channels] == [CHANNEL_PUSH]
    assert pushed == ["user-1"]
    assert _inbox("user-1") == []


def test_global_toggle_filters_per_type_choice():
    _save_preferences(
        "user-1",
        channel_preferences={"final_reminder_2h": [CHANNEL_IN_APP, CHANNEL_PUSH]},
        in_app_enabled=False,
    )

    assert channels_for(_final_reminder()) == (CHANNEL_PUSH,)


def test_fully_opted_out_user_is_a_silent_success():
    _save_preferences("user-1", in_app_enabled=False, push_enabled=False)

    result = notify(_final_reminder())

    assert result.success is True
    assert result.channels == []
    assert _inbox("user-1") == []


def test_skip_preferences_uses_default_channels(monkeypatch):
    pushed = _record_push(monkeypatch)
    _save_preferences("user-1", push_enabled=False)

    result = notify(_final_reminder(), skip_preferences=True)

    assert [r.channel for r in result.channels] == [CHANNEL_IN_APP, CHANNEL_PUSH]
    assert pushed == ["user-1"]
