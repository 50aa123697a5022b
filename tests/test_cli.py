from __future__ import annotations

import json
from datetime import timedelta

from typer.testing import CliRunner

from eventnotify.cli import app
from eventnotify.database import get_session
from eventnotify.models import RSVP, Profile
from eventnotify.seed import seed_fake_data
from eventnotify.utils import utcnow

runner = CliRunner()


def _rsvp_data() -> str:
    return json.dumps(
        {
            "userId": "user-1",
            "eventId": "event-1",
            "eventTitle": "Mixer",
            "eventSlug": "mixer",
            "startsAt": (utcnow() + timedelta(days=10)).isoformat(),
        }
    )


def test_emit_and_cancel_commands():
    emitted = runner.invoke(app, ["emit", "rsvp/created", "--data", _rsvp_data()])
    assert emitted.exit_code == 0, emitted.output
    assert json.loads(emitted.output)["cancelled"] == 0

    listed = runner.invoke(app, ["scheduled", "user-1"])
    assert "confirm_attendance_7d [pending]" in listed.output

    cancelled = runner.invoke(app, ["cancel", "user-1", "event-1"])
    assert cancelled.exit_code == 0
    assert "Cancelled 5 pending notification(s)." in cancelled.output


def test_emit_rejects_unknown_event_and_bad_json():
    unknown = runner.invoke(app, ["emit", "rsvp/teleported"])
    assert unknown.exit_code == 1

    bad_json = runner.invoke(app, ["emit", "rsvp/created", "--data", "{oops"])
    assert bad_json.exit_code == 2


def test_emit_reports_invalid_event_data():
    result = runner.invoke(
        app, ["emit", "rsvp/created", "--data", json.dumps({"userId": "user-1"})]
    )

    assert result.exit_code == 2
    assert "Invalid data for rsvp/created" in result.output
    assert "eventId" in result.output


def test_dispatch_command_reports_stats():
    result = runner.invoke(app, ["dispatch"])
    assert result.exit_code == 0
    assert "Dispatch complete" in result.output


def test_seed_fake_data_schedules_reminders():
    stats = seed_fake_data(event_count=2, max_rsvps_per_event=3)

    assert stats["events"] == 2
    assert stats["profiles"] == stats["rsvps"]
    with get_session() as session:
        assert session.query(RSVP).count() == stats["rsvps"]
        assert session.query(Profile).count() == stats["profiles"]
