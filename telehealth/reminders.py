"""Reminder schedule for a consultation (24 hours, 2 hours, 15 minutes before)."""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from telehealth import config
from telehealth.models import Meeting, ensure_aware


@dataclass
class Reminder:
    label: str
    hours_before: float
    send_at: datetime
    due: bool


def schedule_reminders(
    meeting: Meeting,
    now: datetime,
    offsets: Optional[Sequence[Tuple[float, str]]] = None
) -> List[Reminder]:
    """
    Compute when each reminder for a meeting should go out.

    Args:
        meeting: Meeting to remind about
        now: Instant the schedule is computed at
        offsets: (hours before, label) pairs; defaults to config.REMINDER_OFFSETS

    Returns:
        Reminders in send order; due is True when send_at has already passed
    """
    now = ensure_aware(now)
    reminders = []
    for hours, label in (offsets or config.REMINDER_OFFSETS):
        send_at = meeting.scheduled_time - timedelta(hours=hours)
        reminders.append(Reminder(label=label, hours_before=hours, send_at=send_at, due=send_at <= now))
    return sorted(reminders, key=lambda r: r.send_at)
