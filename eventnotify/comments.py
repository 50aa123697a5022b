"""Comment and thread notifications.

Routing for one ``comment/created`` event:

1. The comment author is never notified.
2. A reply notifies the parent comment's author (``reply_to_comment``)
   unless they muted the thread.
3. The content owner, if not the author and not already notified, gets
   ``comment_on_event`` / ``comment_on_moment`` for a top-level comment or
   ``thread_activity`` for a reply, unless they muted the thread.

Each recipient receives at most one notification per comment. Delivery goes
straight to the gateway; nothing is queued.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .config import settings
from .crud import get_profile, is_thread_muted
from .database import ConfigurationError, get_session
from .gateway import Gateway, notify
from .payloads import (
    CommentOnEventPayload,
    CommentOnMomentPayload,
    NotificationPayload,
    ReplyToCommentPayload,
    ThreadActivityPayload,
)
from .utils import comment_preview

logger = logging.getLogger("uvicorn.error")

FALLBACK_DISPLAY_NAME = "Someone"


class CommentCreatedData(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    comment_id: str
    content_type: Literal["event", "moment"]
    content_id: str
    content_owner_id: str | None = None
    content_title: str = ""
    event_slug: str
    comment_author_id: str
    comment_content: str
    parent_comment_id: str | None = None
    parent_comment_author_id: str | None = None


def _display_name(user_id: str) -> str:
    with get_session() as session:
        profile = get_profile(session, user_id)
        if profile is None:
            return FALLBACK_DISPLAY_NAME
        return profile.display_name or profile.username or FALLBACK_DISPLAY_NAME


def _locale(user_id: str) -> str:
    with get_session() as session:
        profile = get_profile(session, user_id)
        return (profile.locale if profile else None) or settings.default_locale


def _muted(user_id: str, thread_id: str) -> bool:
    with get_session() as session:
        return is_thread_muted(session, user_id=user_id, thread_id=thread_id)


def _owner_payload(
    comment: CommentCreatedData, owner_id: str, commenter_name: str, preview: str
) -> NotificationPayload:
    locale = _locale(owner_id)
    if comment.parent_comment_id:
        return ThreadActivityPayload(
            user_id=owner_id,
            locale=locale,
            content_type=comment.content_type,
            content_id=comment.content_id,
            event_slug=comment.event_slug,
            content_title=comment.content_title,
            thread_id=comment.parent_comment_id,
            activity_count=1,
        )
    if comment.content_type == "event":
        return CommentOnEventPayload(
            user_id=owner_id,
            locale=locale,
            event_id=comment.content_id,
            event_slug=comment.event_slug,
            event_title=comment.content_title,
            comment_id=comment.comment_id,
            commenter_name=commenter_name,
            comment_preview=preview,
        )
    return CommentOnMomentPayload(
        user_id=owner_id,
        locale=locale,
        moment_id=comment.content_id,
        event_slug=comment.event_slug,
        commenter_name=commenter_name,
        comment_preview=preview,
    )


def notify_comment_created(data: Any, *, gateway: Gateway | None = None) -> dict:
    """Handle ``comment/created`` and return the recipients that were notified."""
    comment = (
        data
        if isinstance(data, CommentCreatedData)
        else CommentCreatedData.model_validate(data)
    )
    deliver = gateway or notify
    author_id = comment.comment_author_id
    owner_id = comment.content_owner_id
    parent_id = comment.parent_comment_id
    parent_author_id = comment.parent_comment_author_id
    notified: set[str] = set()

    if parent_id and not parent_author_id:
        logger.info(
            "Reply %s names parent %s without its author; skipping",
            comment.comment_id,
            parent_id,
        )
        return {"notified": [], "skipped": True, "reason": "parent comment not found"}

    try:
        preview = comment_preview(comment.comment_content, settings.comment_preview_length)
        commenter_name = _display_name(author_id)

        if parent_id and parent_author_id != author_id:
            if _muted(parent_author_id, parent_id):
                logger.debug(
                    "Parent author %s muted thread %s", parent_author_id, parent_id
                )
            else:
                deliver(
                    ReplyToCommentPayload(
                        user_id=parent_author_id,
                        locale=_locale(parent_author_id),
                        content_type=comment.content_type,
                        content_id=comment.content_id,
                        event_slug=comment.event_slug,
                        comment_id=comment.comment_id,
                        parent_comment_id=parent_id,
                        replier_name=commenter_name,
                        comment_preview=preview,
                    )
                )
                notified.add(parent_author_id)
                logger.info(
                    "Notified parent author %s of reply %s",
                    parent_author_id,
                    comment.comment_id,
                )

        if not owner_id:
            logger.info("Comment %s has no content owner", comment.comment_id)
        elif owner_id != author_id and owner_id not in notified:
            if parent_id and _muted(owner_id, parent_id):
                logger.info("Content owner %s has muted thread %s", owner_id, parent_id)
            else:
                deliver(_owner_payload(comment, owner_id, commenter_name, preview))
                notified.add(owner_id)
                logger.info(
                    "Notified content owner %s of comment %s",
                    owner_id,
                    comment.comment_id,
                )
    except ConfigurationError as exc:
        logger.error("Cannot process comment notifications: %s", exc)
        return {"error": str(exc), "notified": sorted(notified)}

    if not owner_id:
        return {
            "notified": sorted(notified),
            "skipped": True,
            "reason": "content owner not found",
        }
    return {"notified": sorted(notified)}
