"""Slot availability for a provider's working day.

Two views of the same bookings:
- available_slots: fixed grid, a slot is taken only when an active meeting
  starts exactly at it (what the scheduling UI shows)
- validate_new_slot: real interval overlap, used before anything is booked

The grid view can show a slot as free even though a longer meeting runs into
it; validate_new_slot still rejects that booking.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterable, List, Optional
from zoneinfo import ZoneInfo

from telehealth import config
from telehealth.errors import SlotConflict, ValidationError
from telehealth.logging_config import get_logger
from telehealth.models import Meeting, ensure_aware, utc_now
from telehealth.status import is_active

logger = get_logger(__name__)


@dataclass
class Slot:
    """One bookable start time."""
    time: datetime
    available: bool
    display_time: str


def format_time_12h(value: datetime) -> str:
    """Convert to 12h display, e.g. 9:00 AM, 2:30 PM."""
    hour, minute = value.hour, value.minute
    period = "AM" if hour < 12 else "PM"
    hour_12 = hour if hour <= 12 else hour - 12
    hour_12 = 12 if hour_12 == 0 else hour_12
    return f"{hour_12}:{minute:02d} {period}"


class SlotCalendar:
    """Compute and validate provider slots against the meeting store."""

    def __init__(
        self,
        store,
        clock: Callable[[], datetime] = utc_now,
        timezone_name: str = config.OPERATING_HOURS["timezone"]
    ):
        """
        Args:
            store: MeetingStore holding existing bookings
            clock: Returns the current instant
            timezone_name: IANA zone the working day is expressed in
        """
        self.store = store
        self.clock = clock
        self.tz = ZoneInfo(timezone_name)

    def available_slots(
        self,
        provider_id: str,
        day: date,
        granularity_minutes: int = config.OPERATING_HOURS["slot_granularity_minutes"],
        day_start_hour: int = config.OPERATING_HOURS["start_hour"],
        day_end_hour: int = config.OPERATING_HOURS["end_hour"]
    ) -> List[Slot]:
        """
        Enumerate the provider's slots for a day.

        Recomputed from the store on every call.

        Args:
            provider_id: Provider whose bookings are checked
            day: Calendar date in the calendar's timezone
            granularity_minutes: Slot size
            day_start_hour: First slot hour (inclusive)
            day_end_hour: Working day end hour (exclusive)

        Returns:
            Slots in chronological order
        """
        errors = {}
        if granularity_minutes <= 0:
            errors["granularity_minutes"] = "must be positive"
        if not 0 <= day_start_hour < day_end_hour <= 24:
            errors["day_start_hour"] = "working window must satisfy 0 <= start < end <= 24"
        if errors:
            raise ValidationError(errors)

        now = self.clock()
        booked = {
            m.scheduled_time
            for m in self.store.list_by_provider(provider_id)
            if is_active(m, now)
        }

        start = datetime.combine(day, time(hour=0), tzinfo=self.tz) + timedelta(hours=day_start_hour)
        end = datetime.combine(day, time(hour=0), tzinfo=self.tz) + timedelta(hours=day_end_hour)
        step = timedelta(minutes=granularity_minutes)

        slots = []
        current = start
        while current < end:
            slots.append(Slot(
                time=current,
                available=current not in booked,
                display_time=format_time_12h(current),
            ))
            current += step

        return slots

    def validate_new_slot(
        self,
        provider_id: str,
        requested_time: datetime,
        duration_minutes: int,
        existing_meetings: Iterable[Meeting],
        exclude_meeting_id: Optional[str] = None
    ) -> None:
        """
        Check that a requested booking is in the future and overlaps nothing.

        Args:
            provider_id: Provider being booked
            requested_time: Proposed start
            duration_minutes: Proposed length
            existing_meetings: Bookings to check against (any provider)
            exclude_meeting_id: Meeting being moved, ignored in the check

        Raises:
            SlotConflict: If the time is not strictly future or overlaps an
                active meeting of the same provider
        """
        requested_time = ensure_aware(requested_time)
        now = self.clock()

        if requested_time <= now:
            raise SlotConflict(
                provider_id, requested_time, reason="requested time is not in the future"
            )

        for meeting in existing_meetings:
            if meeting.doctor_id != provider_id or meeting.id == exclude_meeting_id:
                continue
            if not is_active(meeting, now):
                continue
            if meeting.overlaps(requested_time, duration_minutes):
                logger.info(
                    "slot_conflict",
                    provider_id=provider_id,
                    requested_time=requested_time.isoformat(),
                    conflicting_meeting_id=meeting.id,
                )
                raise SlotConflict(provider_id, requested_time, conflicting_meeting_id=meeting.id)
