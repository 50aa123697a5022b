"""Domain event ingress: map bus event names to their handlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel

from .comments import CommentCreatedData, notify_comment_created
from .reminders import (
    RsvpCancelledData,
    RsvpEventData,
    cancel_rsvp_reminders,
    schedule_interested_reminders,
    schedule_rsvp_reminders,
)

logger = logging.getLogger("uvicorn.error")

RSVP_CREATED = "rsvp/created"
RSVP_INTERESTED = "rsvp/interested"
RSVP_CANCELLED = "rsvp/cancelled"
COMMENT_CREATED = "comment/created"


class UnknownEventError(LookupError):
    """Raised when no handler subscribes to an event name."""


@dataclass(frozen=True)
class Subscription:
    data_model: type[BaseModel]
    handler: Callable[[Any], dict]


HANDLERS: dict[str, Subscription] = {
    RSVP_CREATED: Subscription(RsvpEventData, schedule_rsvp_reminders),
    RSVP_INTERESTED: Subscription(RsvpEventData, schedule_interested_reminders),
    RSVP_CANCELLED: Subscription(RsvpCancelledData, cancel_rsvp_reminders),
    COMMENT_CREATED: Subscription(CommentCreatedData, notify_comment_created),
}


def handle_event(name: str, data: dict[str, Any]) -> dict:
    """Validate ``data`` for ``name`` and run its handler.

    Raises ``UnknownEventError`` for unsubscribed names and
    ``pydantic.ValidationError`` for malformed data.
    """
    subscription = HANDLERS.get(name)
    if subscription is None:
        raise UnknownEventError(name)
    parsed = subscription.data_model.model_validate(data)
    logger.debug("Handling %s", name)
    return subscription.handler(parsed)
