"""Consultation scheduling service.

Wires the components together:
request -> MeetingRegistry.create (slot check + insert under provider lock)
        -> InvitationDispatcher.send (mail + dispatch record)
queries -> MeetingRegistry + resolve_status, evaluated at call time
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Union

from telehealth import config
from telehealth.availability import Slot, SlotCalendar
from telehealth.database_models import make_engine
from telehealth.errors import InvalidAccessToken, MeetingNotFound, TransportError
from telehealth.invitations import InvitationDispatcher
from telehealth.links import parse_join_link, short_code_from_link, token_from_cancel_link
from telehealth.logging_config import get_logger
from telehealth.mail import ConsoleMailTransport
from telehealth.models import (
    DispatchResult,
    InvitationDispatchRecord,
    Meeting,
    MeetingRequest,
    MeetingStatus,
    utc_now,
)
from telehealth.rate_limiter import ResendLimiter
from telehealth.registry import MeetingRegistry
from telehealth.reminders import Reminder, schedule_reminders
from telehealth.status import resolve_status, summarize_statuses, time_until_meeting, with_status
from telehealth.store import InMemoryDispatchLog, InMemoryMeetingStore, SqlDispatchLog, SqlMeetingStore

logger = get_logger(__name__)


@dataclass
class ScheduledConsultation:
    """Outcome of scheduling: the meeting always exists once this is returned."""
    meeting: Meeting
    dispatch: Optional[DispatchResult] = None
    dispatch_error: Optional[str] = None

    @property
    def invitation_sent(self) -> bool:
        return self.dispatch is not None


@dataclass
class ProviderDashboard:
    provider_id: str
    meetings: List[Meeting] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)
    countdowns: Dict[str, str] = field(default_factory=dict)


class ConsultationService:
    """Facade over registry, calendar and dispatcher sharing one clock."""

    def __init__(
        self,
        store=None,
        dispatch_log=None,
        transport=None,
        clock: Callable[[], datetime] = utc_now,
        base_url: Optional[str] = None,
        limiter: Optional[ResendLimiter] = None,
        dispatch_timeout: float = config.DISPATCH_TIMEOUT_SECONDS
    ):
        """
        Args:
            store: MeetingStore (in-memory if None)
            dispatch_log: DispatchLog (in-memory if None)
            transport: MailTransport (logs to console if None)
            clock: Returns the current instant
            base_url: Join link host
            limiter: Optional resend cooldown
            dispatch_timeout: Seconds to wait for each delivery
        """
        self.clock = clock
        self.store = store if store is not None else InMemoryMeetingStore()
        self.dispatch_log = dispatch_log if dispatch_log is not None else InMemoryDispatchLog()
        self.calendar = SlotCalendar(self.store, clock=clock)
        self.registry = MeetingRegistry(self.store, calendar=self.calendar, clock=clock)
        self.dispatcher = InvitationDispatcher(
            self.registry,
            self.dispatch_log,
            transport or ConsoleMailTransport(),
            clock=clock,
            timeout=dispatch_timeout,
            base_url=base_url,
            limiter=limiter,
        )

    @classmethod
    def from_database_url(cls, database_url: str = config.DATABASE_URL, **kwargs):
        """Build a service persisting to SQL; meetings and dispatches share one engine."""
        engine = make_engine(database_url)
        return cls(
            store=SqlMeetingStore(engine=engine),
            dispatch_log=SqlDispatchLog(engine=engine),
            **kwargs
        )

    # ---------------------------------------------------------------- booking

    def schedule(
        self,
        request: Union[MeetingRequest, Dict[str, Any]],
        send_invitation: bool = True
    ) -> ScheduledConsultation:
        """
        Create a meeting and (optionally) send its invitation.

        A failed invitation does not undo the booking; the error is returned
        so the caller can retry with resend().

        Raises:
            ValidationError, SlotConflict
        """
        meeting = self.registry.create(request)
        result = ScheduledConsultation(meeting=with_status(meeting, self.clock()))

        if send_invitation:
            try:
                result.dispatch = self.dispatcher.send(meeting.id)
            except TransportError as e:
                logger.warning("invitation_not_sent", meeting_id=meeting.id, error=e.reason)
                result.dispatch_error = e.reason

        return result

    def available_slots(self, provider_id: str, day: date, **kwargs) -> List[Slot]:
        return self.calendar.available_slots(provider_id, day, **kwargs)

    def reschedule(self, meeting_id: str, new_time: datetime, resend: bool = True) -> ScheduledConsultation:
        meeting = self.registry.reschedule(meeting_id, new_time)
        result = ScheduledConsultation(meeting=with_status(meeting, self.clock()))
        if resend:
            try:
                result.dispatch = self.dispatcher.send(meeting_id)
            except TransportError as e:
                result.dispatch_error = e.reason
        return result

    def _notify_cancellation(self, meeting_id: str, reason: Optional[str]):
        try:
            self.dispatcher.send_cancellation_notice(meeting_id, reason=reason)
        except TransportError as e:
            logger.warning("cancellation_notice_failed", meeting_id=meeting_id, error=e.reason)

    def cancel(self, meeting_id: str, notify: bool = False, reason: Optional[str] = None) -> Meeting:
        """
        Cancel a meeting; optionally email the patient.

        A failed notice is logged and recorded, the cancellation stands.
        """
        meeting = self.registry.cancel(meeting_id)
        if notify:
            self._notify_cancellation(meeting_id, reason)
        return with_status(meeting, self.clock())

    def cancel_by_link(self, link: str, notify: bool = True, reason: Optional[str] = None) -> Meeting:
        """
        Cancel through the patient's cancel link (<base>/cancel/<token>).

        Raises:
            InvalidAccessToken: If the link is malformed or its token matches nothing
            InvalidTransition: If the meeting was already completed
        """
        token = token_from_cancel_link(link)
        if token is None:
            raise InvalidAccessToken("unknown")
        meeting = self.registry.cancel_by_token(token)
        if notify:
            self._notify_cancellation(meeting.id, reason)
        return with_status(meeting, self.clock())

    def complete(self, meeting_id: str) -> Meeting:
        return with_status(self.registry.complete(meeting_id), self.clock())

    def start_consultation(self, meeting_id: str) -> Meeting:
        return with_status(self.registry.start_consultation(meeting_id), self.clock())

    # ----------------------------------------------------------- invitations

    def resend(self, meeting_id: str) -> DispatchResult:
        return self.dispatcher.send(meeting_id)

    def dispatch_history(self, meeting_id: Optional[str] = None) -> List[InvitationDispatchRecord]:
        return self.dispatcher.history(meeting_id)

    # --------------------------------------------------------------- queries

    def get(self, meeting_id: str) -> Meeting:
        """Meeting with its status resolved now."""
        return with_status(self.registry.get(meeting_id), self.clock())

    def status(self, meeting_id: str) -> MeetingStatus:
        return resolve_status(self.registry.get(meeting_id), self.clock())

    def dashboard(self, provider_id: str) -> ProviderDashboard:
        now = self.clock()
        meetings = self.registry.list_by_provider(provider_id)
        return ProviderDashboard(
            provider_id=provider_id,
            meetings=[with_status(m, now) for m in meetings],
            counts=summarize_statuses(meetings, now),
            countdowns={m.id: time_until_meeting(m.scheduled_time, now) for m in meetings},
        )

    def reminders(self, meeting_id: str) -> List[Reminder]:
        return schedule_reminders(self.registry.get(meeting_id), self.clock())

    # ------------------------------------------------------------------ join

    def resolve_link(self, link: str) -> Meeting:
        """
        Find the meeting behind a full or short join link.

        Raises:
            MeetingNotFound: If the link is unparseable or matches nothing
        """
        parsed = parse_join_link(link)
        if parsed is not None:
            return self.get(parsed.room)

        code = short_code_from_link(link)
        if code is None:
            raise MeetingNotFound(link)
        return with_status(self.registry.resolve_short_code(code), self.clock())

    def join(self, meeting_id: str, access_token: str) -> Meeting:
        """Authorize the patient and record that they joined."""
        return with_status(self.registry.mark_patient_joined(meeting_id, access_token), self.clock())

    def close(self):
        self.dispatcher.shutdown(wait=True)
