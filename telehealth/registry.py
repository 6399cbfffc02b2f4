"""Authoritative create/read/update operations over meetings.

Pattern: Per-provider locks around every check-then-write sequence.
Slot validation and insertion for one provider happen under the same lock,
so two concurrent bookings can never both pass the overlap check. Status
changes on an existing meeting take its provider's lock too, which
serializes all writes to a given meeting id.

Nothing here sends mail or makes network calls.
"""
import secrets
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from telehealth import config
from telehealth.availability import SlotCalendar
from telehealth.errors import (
    InvalidAccessToken,
    InvalidTransition,
    JoinWindowClosed,
    MeetingCancelled,
    MeetingExpired,
    MeetingNotFound,
    ValidationError,
)
from telehealth.logging_config import get_logger
from telehealth.models import ConsultationType, Meeting, MeetingRequest, MeetingStatus, ensure_aware, utc_now
from telehealth.status import resolve_status
from telehealth.tokens import TokenGenerator, token_generator
from telehealth.validators import validate_email, validate_patient_name, validate_phone

logger = get_logger(__name__)

LINK_VALIDITY = timedelta(hours=config.LINK_VALIDITY_HOURS)
MAX_ID_ATTEMPTS = 5
JOIN_OPENS_BEFORE = timedelta(minutes=config.JOIN_OPENS_MINUTES_BEFORE)
JOIN_CLOSES_AFTER = timedelta(minutes=config.JOIN_CLOSES_MINUTES_AFTER)

_FIELD_ADAPTERS = {
    name: TypeAdapter(field.annotation) for name, field in MeetingRequest.model_fields.items()
}


class MeetingRegistry:
    """Create, look up, cancel and update consultation meetings."""

    def __init__(
        self,
        store,
        calendar: Optional[SlotCalendar] = None,
        tokens: TokenGenerator = token_generator,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Args:
            store: MeetingStore used for every read and write
            calendar: SlotCalendar for overlap checks (built from store if None)
            tokens: Id and access token source
            clock: Returns the current instant
        """
        self.store = store
        self.clock = clock
        self.calendar = calendar or SlotCalendar(store, clock=clock)
        self.tokens = tokens

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _provider_lock(self, provider_id: str) -> threading.Lock:
        with self._locks_guard:
            if provider_id not in self._locks:
                self._locks[provider_id] = threading.Lock()
            return self._locks[provider_id]

    # ------------------------------------------------------------------ create

    def _coerce_request(
        self,
        request: Union[MeetingRequest, Dict[str, Any]]
    ) -> Tuple[MeetingRequest, Dict[str, str]]:
        """
        Parse a request, keeping shape errors instead of stopping at them.

        Returns:
            (request, errors): when some fields fail to parse, request holds
            only the fields that did, so the business checks still run on them
        """
        if isinstance(request, MeetingRequest):
            return request, {}
        try:
            return MeetingRequest.model_validate(request), {}
        except PydanticValidationError as e:
            errors = {}
            for err in e.errors():
                field = str(err["loc"][0]) if err["loc"] else "request"
                errors.setdefault(field, err["msg"])
            if not isinstance(request, dict):
                raise ValidationError(errors) from e

        parsed = {}
        for name, value in request.items():
            if name in errors or name not in MeetingRequest.model_fields:
                continue
            parsed[name] = _FIELD_ADAPTERS[name].validate_python(value)
        return MeetingRequest.model_construct(**parsed), errors

    def _validate_request(self, request: MeetingRequest, now: datetime) -> Dict[str, str]:
        errors = {}

        ok, message = validate_patient_name(request.patient_name)
        if not ok:
            errors["patient_name"] = message

        ok, message = validate_email(request.patient_email)
        if not ok:
            errors["patient_email"] = message

        ok, message = validate_phone(request.patient_phone)
        if not ok:
            errors["patient_phone"] = message

        if request.scheduled_time is None:
            errors["scheduled_time"] = "Consultation time is required"
        elif ensure_aware(request.scheduled_time) <= now:
            errors["scheduled_time"] = "Consultation must be scheduled for a future date/time"

        if request.duration_minutes not in config.ALLOWED_DURATIONS:
            allowed = ", ".join(str(d) for d in config.ALLOWED_DURATIONS)
            errors["duration_minutes"] = f"Duration must be one of {allowed} minutes"

        if request.consultation_type not in {t.value for t in ConsultationType}:
            errors["consultation_type"] = f"Unknown consultation type '{request.consultation_type}'"

        return errors

    def _new_meeting_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            meeting_id = self.tokens.new_meeting_id()
            if self.store.get(meeting_id) is None:
                return meeting_id
        raise RuntimeError("Could not allocate a unique meeting id")

    def create(self, request: Union[MeetingRequest, Dict[str, Any]]) -> Meeting:
        """
        Validate and persist a new meeting.

        Args:
            request: MeetingRequest or equivalent dict

        Returns:
            The stored meeting (status scheduled)

        Raises:
            ValidationError: Listing every invalid field
            SlotConflict: If the provider is already booked at that time
        """
        request, errors = self._coerce_request(request)
        now = self.clock()

        for field, message in self._validate_request(request, now).items():
            errors.setdefault(field, message)
        if errors:
            logger.warning("meeting_request_invalid", fields=sorted(errors))
            raise ValidationError(errors)

        with self._provider_lock(request.doctor_id):
            self.calendar.validate_new_slot(
                request.doctor_id,
                request.scheduled_time,
                request.duration_minutes,
                self.store.list_by_provider(request.doctor_id),
            )

            meeting = Meeting(
                id=self._new_meeting_id(),
                access_token=self.tokens.new_access_token(),
                patient_id=request.patient_id,
                patient_name=request.patient_name,
                patient_email=request.patient_email,
                patient_phone=request.patient_phone or None,
                doctor_id=request.doctor_id,
                doctor_name=request.doctor_name or config.DEFAULT_DOCTOR_NAME,
                scheduled_time=request.scheduled_time,
                duration_minutes=request.duration_minutes,
                consultation_type=ConsultationType(request.consultation_type),
                notes=request.notes or None,
                created_at=now,
                expires_at=now + LINK_VALIDITY,
                status=MeetingStatus.SCHEDULED,
                patient_joined=False,
            )
            self.store.put(meeting)

        logger.info(
            "meeting_created",
            meeting_id=meeting.id,
            provider_id=meeting.doctor_id,
            scheduled_time=meeting.scheduled_time.isoformat(),
            duration_minutes=meeting.duration_minutes,
        )
        return meeting

    # ------------------------------------------------------------------- reads

    def get(self, meeting_id: str) -> Meeting:
        """
        Raises:
            MeetingNotFound: If the id is unknown
        """
        meeting = self.store.get(meeting_id)
        if meeting is None:
            raise MeetingNotFound(meeting_id)
        return meeting

    def list_by_provider(self, provider_id: str) -> List[Meeting]:
        """Provider's meetings ordered by scheduled time."""
        return sorted(self.store.list_by_provider(provider_id), key=lambda m: m.scheduled_time)

    def resolve_short_code(self, code: str) -> Meeting:
        """
        Find the meeting behind a short link code (last 8 chars of its id).

        Raises:
            MeetingNotFound: If no meeting, or more than one, matches
        """
        matches = self.store.find_by_suffix(code) if code else []
        if len(matches) != 1:
            if len(matches) > 1:
                logger.warning("short_code_ambiguous", code=code, matches=len(matches))
            raise MeetingNotFound(code)
        return matches[0]

    # ----------------------------------------------------------------- updates

    def _update(self, meeting_id: str, change: Callable[[Meeting], Optional[Meeting]]) -> Meeting:
        """Apply change under the meeting's provider lock; None means no-op."""
        meeting = self.get(meeting_id)
        with self._provider_lock(meeting.doctor_id):
            meeting = self.get(meeting_id)
            updated = change(meeting)
            if updated is None:
                return meeting
            self.store.put(updated)
            return updated

    def _require_active(self, meeting: Meeting) -> MeetingStatus:
        status = resolve_status(meeting, self.clock())
        if status == MeetingStatus.CANCELLED:
            raise MeetingCancelled(meeting.id)
        if status == MeetingStatus.EXPIRED:
            raise MeetingExpired(meeting.id)
        return status

    def cancel(self, meeting_id: str) -> Meeting:
        """
        Mark a meeting cancelled. Cancelling twice is a no-op.

        Raises:
            MeetingNotFound: If the id is unknown
            InvalidTransition: If the meeting was already completed
        """
        def change(meeting):
            if meeting.status == MeetingStatus.CANCELLED:
                return None
            if meeting.status == MeetingStatus.COMPLETED:
                raise InvalidTransition(meeting.id, meeting.status.value, MeetingStatus.CANCELLED.value)
            return meeting.model_copy(update={"status": MeetingStatus.CANCELLED})

        meeting = self._update(meeting_id, change)
        logger.info("meeting_cancelled", meeting_id=meeting_id)
        return meeting

    def complete(self, meeting_id: str) -> Meeting:
        """
        Record that a consultation finished. Completing twice is a no-op.

        Raises:
            MeetingNotFound: If the id is unknown
            InvalidTransition: If the meeting was cancelled
        """
        def change(meeting):
            if meeting.status == MeetingStatus.COMPLETED:
                return None
            if meeting.status == MeetingStatus.CANCELLED:
                raise InvalidTransition(meeting.id, meeting.status.value, MeetingStatus.COMPLETED.value)
            return meeting.model_copy(update={"status": MeetingStatus.COMPLETED})

        meeting = self._update(meeting_id, change)
        logger.info("meeting_completed", meeting_id=meeting_id)
        return meeting

    def start_consultation(self, meeting_id: str) -> Meeting:
        """
        Record that the provider has started the call.

        Raises:
            MeetingNotFound, MeetingExpired, MeetingCancelled
            InvalidTransition: If the meeting was already completed
        """
        def change(meeting):
            status = self._require_active(meeting)
            if status == MeetingStatus.IN_CONSULTATION:
                return None
            if meeting.status == MeetingStatus.COMPLETED:
                raise InvalidTransition(
                    meeting.id, meeting.status.value, MeetingStatus.IN_CONSULTATION.value
                )
            return meeting.model_copy(update={"status": MeetingStatus.IN_CONSULTATION})

        meeting = self._update(meeting_id, change)
        logger.info("consultation_started", meeting_id=meeting_id)
        return meeting

    def _check_join_window(self, meeting: Meeting):
        now = self.clock()
        opens_at = meeting.scheduled_time - JOIN_OPENS_BEFORE
        closes_at = meeting.scheduled_time + JOIN_CLOSES_AFTER
        if now < opens_at or now > closes_at:
            raise JoinWindowClosed(meeting.id, opens_at, closes_at, too_early=now < opens_at)

    def authorize_join(self, meeting_id: str, access_token: str) -> Meeting:
        """
        Check a join attempt's token, that the meeting is still active and
        that the join window (an hour before to 15 minutes after the start)
        is open.

        Raises:
            MeetingNotFound, InvalidAccessToken, MeetingExpired, MeetingCancelled
            JoinWindowClosed: Too early, or the consultation has ended
        """
        meeting = self.get(meeting_id)
        if not secrets.compare_digest(meeting.access_token.encode(), (access_token or "").encode()):
            logger.warning("join_token_rejected", meeting_id=meeting_id)
            raise InvalidAccessToken(meeting_id)
        self._require_active(meeting)
        self._check_join_window(meeting)
        return meeting

    def mark_patient_joined(self, meeting_id: str, access_token: str) -> Meeting:
        """Record that the patient entered the session (after token and window checks)."""
        self.authorize_join(meeting_id, access_token)

        def change(meeting):
            self._require_active(meeting)
            self._check_join_window(meeting)
            if meeting.patient_joined:
                return None
            return meeting.model_copy(update={"patient_joined": True})

        meeting = self._update(meeting_id, change)
        logger.info("patient_joined", meeting_id=meeting_id)
        return meeting

    def cancel_by_token(self, access_token: str) -> Meeting:
        """
        Cancel the meeting behind a patient's cancel link.

        Raises:
            InvalidAccessToken: If no meeting carries the token
            InvalidTransition: If the meeting was already completed
        """
        meeting = self.store.find_by_access_token(access_token) if access_token else None
        if meeting is None:
            logger.warning("cancel_token_rejected")
            raise InvalidAccessToken("unknown")
        return self.cancel(meeting.id)

    def reschedule(self, meeting_id: str, new_time: datetime) -> Meeting:
        """
        Move a meeting to a new start time, keeping its id, token and expiry.

        Raises:
            ValidationError: If new_time is not in the future
            MeetingNotFound, MeetingExpired, MeetingCancelled
            InvalidTransition: If the consultation already started or finished
            SlotConflict: If the new slot overlaps another booking
        """
        new_time = ensure_aware(new_time)
        if new_time <= self.clock():
            raise ValidationError({
                "scheduled_time": "Consultation must be scheduled for a future date/time"
            })

        def change(meeting):
            self._require_active(meeting)
            if meeting.status != MeetingStatus.SCHEDULED:
                raise InvalidTransition(meeting.id, meeting.status.value, "rescheduled")
            self.calendar.validate_new_slot(
                meeting.doctor_id,
                new_time,
                meeting.duration_minutes,
                self.store.list_by_provider(meeting.doctor_id),
                exclude_meeting_id=meeting.id,
            )
            return meeting.model_copy(update={"scheduled_time": new_time})

        meeting = self._update(meeting_id, change)
        logger.info("meeting_rescheduled", meeting_id=meeting_id, scheduled_time=new_time.isoformat())
        return meeting
