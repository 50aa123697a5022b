"""SQLAlchemy models for eventnotify."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

from .utils import utcnow

Base = declarative_base()

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"

NOTIFICATION_STATUSES = (
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_SENT,
    STATUS_FAILED,
    STATUS_CANCELLED,
)

REFERENCE_EVENT_RSVP = "event_rsvp"
REFERENCE_EVENT_INTERESTED = "event_interested"
RSVP_REFERENCE_TYPES = (REFERENCE_EVENT_RSVP, REFERENCE_EVENT_INTERESTED)


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class Meta(Base):
    __tablename__ = "meta"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)


class ScheduledNotification(Base):
    __tablename__ = "scheduled_notifications"
    __table_args__ = (
        Index("ix_scheduled_notifications_due", "status", "scheduled_for"),
        Index(
            "ix_scheduled_notifications_subject", "user_id", "reference_id", "status"
        ),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False)
    type = Column(String(64), nullable=False)
    scheduled_for = Column(DateTime, nullable=False)
    payload = Column(JSON, nullable=False)
    reference_type = Column(String(32), nullable=True)
    reference_id = Column(String(36), nullable=True)
    status = Column(String(16), nullable=False, default=STATUS_PENDING)
    sent_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)


class EventReminderConfig(Base):
    __tablename__ = "event_reminder_config"

    event_id = Column(String(36), primary_key=True)
    reminder_7d = Column(Boolean, default=True, nullable=False)
    reminder_24h = Column(Boolean, default=True, nullable=False)
    reminder_2h = Column(Boolean, default=True, nullable=False)
    starting_nudge = Column(Boolean, default=True, nullable=False)
    feedback = Column(Boolean, default=True, nullable=False)
    feedback_delay_hours = Column(Integer, nullable=True)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)


class RSVP(Base):
    __tablename__ = "rsvps"
    __table_args__ = (UniqueConstraint("event_id", "user_id"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(String(36), nullable=False)
    user_id = Column(String(36), nullable=False)
    status = Column(String(16), nullable=False, default="going")
    confirmed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    last_modified = Column(DateTime, default=_now, onupdate=_now, nullable=False)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    username = Column(String(64), nullable=True)
    display_name = Column(String(120), nullable=True)
    locale = Column(String(8), nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)


class MutedThread(Base):
    __tablename__ = "muted_threads"
    __table_args__ = (UniqueConstraint("user_id", "thread_id"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False)
    thread_id = Column(String(36), nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)


class Notification(Base):
    """In-app inbox entry written by the delivery gateway."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    type = Column(String(64), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=True)
    primary_action_url = Column(String(512), nullable=True)
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)


class NotificationPreference(Base):
    """Per-user channel choices; users without a row get the default channels."""

    __tablename__ = "notification_preferences"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, unique=True)
    # Maps a notification type to the channels it should use.
    channel_preferences = Column(JSON, nullable=False, default=dict)
    in_app_enabled = Column(Boolean, default=True, nullable=False)
    push_enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)
