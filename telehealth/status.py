"""Display status for meetings.

Status is derived from the stored record and the current time on every query;
nothing here caches or does I/O. Every dashboard or detail view should call
resolve_status rather than computing its own label.

Decision order (first match wins):
1. cancelled
2. expired          (now past expires_at)
3. completed        (recorded explicitly)
4. in-consultation  (recorded when the provider starts the call)
5. completed        (now past scheduled_time)
6. ready            (less than 15 minutes to go)
7. confirmed        (patient has joined)
8. pending          (less than 24 hours to go)
9. scheduled
"""
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, Iterable

from telehealth import config
from telehealth.models import Meeting, MeetingStatus, ensure_aware

READY_WINDOW = timedelta(minutes=config.READY_WINDOW_MINUTES)
PENDING_WINDOW = timedelta(hours=config.PENDING_WINDOW_HOURS)

INACTIVE_STATUSES = frozenset({MeetingStatus.CANCELLED, MeetingStatus.EXPIRED})


def resolve_status(meeting: Meeting, now: datetime) -> MeetingStatus:
    """
    Derive the display status of a meeting at a given instant.

    Args:
        meeting: Stored meeting record
        now: Instant to evaluate at

    Returns:
        MeetingStatus for display
    """
    now = ensure_aware(now)

    if meeting.status == MeetingStatus.CANCELLED:
        return MeetingStatus.CANCELLED
    if now > meeting.expires_at:
        return MeetingStatus.EXPIRED
    if meeting.status == MeetingStatus.COMPLETED:
        return MeetingStatus.COMPLETED
    if meeting.status == MeetingStatus.IN_CONSULTATION:
        return MeetingStatus.IN_CONSULTATION

    time_until = meeting.scheduled_time - now

    if now > meeting.scheduled_time:
        return MeetingStatus.COMPLETED
    if time_until < READY_WINDOW:
        return MeetingStatus.READY
    if meeting.patient_joined:
        return MeetingStatus.CONFIRMED
    if time_until < PENDING_WINDOW:
        return MeetingStatus.PENDING
    return MeetingStatus.SCHEDULED


def is_active(meeting: Meeting, now: datetime) -> bool:
    """A meeting is active unless it resolves to cancelled or expired."""
    return resolve_status(meeting, now) not in INACTIVE_STATUSES


def with_status(meeting: Meeting, now: datetime) -> Meeting:
    """Return a copy of the meeting carrying its resolved status."""
    return meeting.model_copy(update={"status": resolve_status(meeting, now)})


def summarize_statuses(meetings: Iterable[Meeting], now: datetime) -> Dict[str, int]:
    """
    Count meetings per resolved status (dashboard filter badges).

    Every status appears in the result, with 0 where nothing matches, plus
    an "all" total.
    """
    counts = Counter(resolve_status(m, now).value for m in meetings)
    summary = {status.value: counts.get(status.value, 0) for status in MeetingStatus}
    summary["all"] = sum(counts.values())
    return summary


def time_until_meeting(scheduled_time: datetime, now: datetime) -> str:
    """
    Human-readable countdown to a meeting.

    Examples:
        "Past due", "3 days", "1 day", "2h 15m", "45m"
    """
    diff = ensure_aware(scheduled_time) - ensure_aware(now)
    if diff < timedelta(0):
        return "Past due"

    total_minutes = int(diff.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)

    if hours > 24:
        days = hours // 24
        return f"{days} day{'s' if days > 1 else ''}"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
