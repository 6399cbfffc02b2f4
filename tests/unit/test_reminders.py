"""Test reminder scheduling."""
from datetime import timedelta

from telehealth.reminders import schedule_reminders
from tests.conftest import NOW


def test_default_schedule(make_meeting):
    meeting = make_meeting(scheduled_time=NOW + timedelta(hours=3))

    reminders = schedule_reminders(meeting, NOW)

    assert [r.hours_before for r in reminders] == [24, 2, 0.25]
    assert reminders[0].send_at == NOW - timedelta(hours=21)
    assert reminders[0].due is True
    assert reminders[1].send_at == NOW + timedelta(hours=1)
    assert reminders[1].due is False
    assert reminders[2].send_at == NOW + timedelta(hours=2, minutes=45)


def test_custom_offsets_sorted(make_meeting):
    meeting = make_meeting()

    reminders = schedule_reminders(meeting, NOW, offsets=[(1, "1-hour"), (48, "2-day")])

    assert [r.label for r in reminders] == ["2-day", "1-hour"]
