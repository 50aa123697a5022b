from __future__ import annotations

from eventnotify import database
from eventnotify.comments import notify_comment_created
from eventnotify.database import get_session
from eventnotify.models import MutedThread, Profile
from eventnotify.payloads import (
    CommentOnEventPayload,
    CommentOnMomentPayload,
    ReplyToCommentPayload,
    ThreadActivityPayload,
)


def _comment(**overrides):
    data = {
        "commentId": "comment-1",
        "contentType": "event",
        "contentId": "event-1",
        "contentOwnerId": "owner",
        "contentTitle": "Saigon Mixer",
        "eventSlug": "saigon-mixer",
        "commentAuthorId": "author",
        "commentContent": "See you there!",
    }
    data.update(overrides)
    return data


def _reply(**overrides):
    fields = {
        "commentId": "comment-2",
        "parentCommentId": "comment-1",
        "parentCommentAuthorId": "parent",
    }
    fields.update(overrides)
    return _comment(**fields)


def _add_profile(user_id: str, **fields) -> None:
    with get_session() as session:
        session.add(Profile(id=user_id, **fields))


def _mute(user_id: str, thread_id: str) -> None:
    with get_session() as session:
        session.add(MutedThread(user_id=user_id, thread_id=thread_id))


def test_top_level_event_comment_notifies_owner(gateway):
    _add_profile("author", username="ana", display_name="Ana Tran")
    _add_profile("owner", locale="vi")

    result = notify_comment_created(_comment(), gateway=gateway)

    assert result == {"notified": ["owner"]}
    (payload,) = gateway.calls
    assert isinstance(payload, CommentOnEventPayload)
    assert payload.user_id == "owner"
    assert payload.locale == "vi"
    assert payload.commenter_name == "Ana Tran"
    assert payload.comment_preview == "See you there!"
    assert payload.event_title == "Saigon Mixer"


def test_moment_comment_notifies_owner(gateway):
    result = notify_comment_created(
        _comment(contentType="moment", contentId="moment-9"), gateway=gateway
    )

    assert result == {"notified": ["owner"]}
    (payload,) = gateway.calls
    assert isinstance(payload, CommentOnMomentPayload)
    assert payload.moment_id == "moment-9"
    assert payload.commenter_name == "Someone"
    assert payload.locale == "en"


def test_commenter_name_falls_back_to_username(gateway):
    _add_profile("author", username="ana")
    notify_comment_created(_comment(), gateway=gateway)
    assert gateway.calls[0].commenter_name == "ana"


def test_long_comment_is_previewed(gateway):
    notify_comment_created(_comment(commentContent="z" * 250), gateway=gateway)
    preview = gateway.calls[0].comment_preview
    assert len(preview) == 100
    assert preview.endswith("...")


def test_author_commenting_on_own_content_is_silent(gateway):
    result = notify_comment_created(
        _comment(commentAuthorId="owner"), gateway=gateway
    )
    assert result == {"notified": []}
    assert gateway.calls == []


def test_reply_notifies_parent_author_and_owner(gateway):
    result = notify_comment_created(_reply(), gateway=gateway)

    assert result == {"notified": ["owner", "parent"]}
    reply, activity = gateway.calls
    assert isinstance(reply, ReplyToCommentPayload)
    assert reply.user_id == "parent"
    assert reply.parent_comment_id == "comment-1"
    assert isinstance(activity, ThreadActivityPayload)
    assert activity.user_id == "owner"
    assert activity.thread_id == "comment-1"
    assert activity.activity_count == 1


def test_owner_who_wrote_parent_is_notified_once(gateway):
    result = notify_comment_created(
        _reply(parentCommentAuthorId="owner"), gateway=gateway
    )

    assert result == {"notified": ["owner"]}
    (payload,) = gateway.calls
    assert isinstance(payload, ReplyToCommentPayload)


def test_replying_to_yourself_only_notifies_owner(gateway):
    result = notify_comment_created(
        _reply(parentCommentAuthorId="author"), gateway=gateway
    )

    assert result == {"notified": ["owner"]}
    assert isinstance(gateway.calls[0], ThreadActivityPayload)


def test_muted_parent_author_is_skipped(gateway):
    _mute("parent", "comment-1")

    result = notify_comment_created(_reply(), gateway=gateway)

    assert result == {"notified": ["owner"]}
    assert [payload.user_id for payload in gateway.calls] == ["owner"]


def test_muted_owner_gets_no_thread_activity(gateway):
    _mute("owner", "comment-1")

    result = notify_comment_created(_reply(), gateway=gateway)

    assert result == {"notified": ["parent"]}
    assert [payload.user_id for payload in gateway.calls] == ["parent"]


def test_missing_owner_is_skipped(gateway):
    result = notify_comment_created(_comment(contentOwnerId=None), gateway=gateway)

    assert result == {
        "notified": [],
        "skipped": True,
        "reason": "content owner not found",
    }
    assert gateway.calls == []


def test_reply_without_owner_still_notifies_parent_author(gateway):
    result = notify_comment_created(_reply(contentOwnerId=None), gateway=gateway)

    assert result["notified"] == ["parent"]
    assert result["reason"] == "content owner not found"
    (payload,) = gateway.calls
    assert isinstance(payload, ReplyToCommentPayload)
    assert payload.user_id == "parent"


def test_reply_with_unknown_parent_author_is_skipped(gateway):
    result = notify_comment_created(
        _reply(parentCommentAuthorId=None), gateway=gateway
    )

    assert result == {
        "notified": [],
        "skipped": True,
        "reason": "parent comment not found",
    }
    assert gateway.calls == []


def test_missing_database_returns_error(monkeypatch, gateway):
    monkeypatch.setattr(database, "SessionLocal", None)

    result = notify_comment_created(_comment(), gateway=gateway)

    assert "error" in result
    assert gateway.calls == []
