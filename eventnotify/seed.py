"""Development helpers for populating fake profiles, RSVPs, and reminders."""

from __future__ import annotations

import random
import uuid
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy.orm import Session

from .database import get_session
from .models import RSVP, Profile
from .reminders import schedule_interested_reminders, schedule_rsvp_reminders
from .utils import utcnow

_event_types = [
    "Mixer",
    "Hangout",
    "Workshop",
    "Field Trip",
    "Meet & Greet",
    "Dinner",
    "Discussion",
]
_locales = ["en", "en", "en", "vi"]
_rsvp_statuses = ["going", "going", "going", "interested"]


def seed_fake_data(
    *,
    event_count: int = 3,
    max_rsvps_per_event: int = 5,
) -> dict[str, int]:
    """Populate the database with synthetic attendees and schedule their reminders."""
    if event_count < 0:
        raise ValueError("event_count must be >= 0")
    if max_rsvps_per_event < 0:
        raise ValueError("max_rsvps_per_event must be >= 0")

    fake = Faker()
    stats = {"events": 0, "profiles": 0, "rsvps": 0, "scheduled": 0}
    pending: list[tuple[str, dict]] = []

    with get_session() as session:
        for _ in range(event_count):
            event = _fake_event(fake)
            stats["events"] += 1
            for status, data in _create_rsvps(session, fake, event, max_rsvps_per_event):
                pending.append((status, data))
                stats["profiles"] += 1
                stats["rsvps"] += 1

    # Reminder handlers open their own sessions.
    for status, data in pending:
        if status == "going":
            result = schedule_rsvp_reminders(data)
        else:
            result = schedule_interested_reminders(data)
        stats["scheduled"] += len(result.get("scheduled", []))

    return stats


def _fake_event(fake: Faker) -> dict:
    starts_at = _random_start_time()
    title = f"{fake.city()} {random.choice(_event_types)}"
    return {
        "event_id": str(uuid.uuid4()),
        "event_title": title,
        "event_slug": title.lower().replace(" ", "-").replace("&", "and"),
        "starts_at": starts_at,
        "ends_at": _maybe_end_time(starts_at),
        "location_name": fake.street_name(),
    }


def _random_start_time() -> datetime:
    now = utcnow()
    day_offset = random.randint(0, 14)
    minute_offset = random.randint(30, 23 * 60)
    return now + timedelta(days=day_offset, minutes=minute_offset)


def _maybe_end_time(start_time: datetime) -> datetime | None:
    if random.random() < 0.3:
        return None
    return start_time + timedelta(hours=random.randint(1, 6))


def _create_rsvps(
    session: Session, fake: Faker, event: dict, max_rsvps: int
) -> list[tuple[str, dict]]:
    if max_rsvps <= 0:
        return []
    created: list[tuple[str, dict]] = []
    for _ in range(random.randint(0, max_rsvps)):
        locale = random.choice(_locales)
        profile = Profile(
            username=fake.unique.user_name(),
            display_name=fake.name_nonbinary(),
            locale=locale,
        )
        session.add(profile)
        session.flush()
        status = random.choice(_rsvp_statuses)
        session.add(RSVP(event_id=event["event_id"], user_id=profile.id, status=status))
        created.append((status, {**event, "user_id": profile.id, "locale": locale}))
    return created
