"""Invitation delivery and dispatch history.

Pattern: Deliveries run on a worker pool. Inside the worker the transport is
tried at most twice (tenacity), then exactly one dispatch record is appended,
whether or not the caller is still waiting. The caller waits up to a bounded
timeout; giving up does not cancel the delivery or its record.
"""
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from telehealth import config
from telehealth.errors import InvalidTransition, MeetingCancelled, MeetingExpired, TransportError
from telehealth.links import build_join_link, build_short_link
from telehealth.logging_config import get_logger, request_context
from telehealth.models import (
    DispatchKind,
    DispatchOutcome,
    DispatchResult,
    InvitationDispatchRecord,
    Meeting,
    MeetingStatus,
    utc_now,
)
from telehealth.rate_limiter import ResendLimiter
from telehealth.status import resolve_status
from telehealth.templates import (
    CancellationContext,
    InvitationContext,
    RenderedEmail,
    format_meeting_time,
    render_cancellation,
    render_invitation,
)

logger = get_logger(__name__)


class InvitationDispatcher:
    """Send and resend consultation invitations, keeping an append-only log."""

    def __init__(
        self,
        registry,
        dispatch_log,
        transport,
        clock: Callable[[], datetime] = utc_now,
        timeout: float = config.DISPATCH_TIMEOUT_SECONDS,
        max_attempts: int = config.DISPATCH_MAX_ATTEMPTS,
        retry_wait_seconds: float = 0.5,
        base_url: Optional[str] = None,
        limiter: Optional[ResendLimiter] = None,
        max_workers: int = config.DISPATCH_WORKERS
    ):
        """
        Args:
            registry: MeetingRegistry for meeting lookups
            dispatch_log: DispatchLog receiving one record per delivery
            transport: MailTransport doing the actual sending
            clock: Returns the current instant
            timeout: Seconds send() waits for the delivery to resolve
            max_attempts: Transport attempts per delivery (1 retry by default)
            retry_wait_seconds: Pause before the retry
            base_url: Join link host (defaults to config.JOIN_BASE_URL)
            limiter: Optional resend cooldown; unlimited when None
            max_workers: Delivery worker threads
        """
        self.registry = registry
        self.dispatch_log = dispatch_log
        self.transport = transport
        self.clock = clock
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_wait_seconds = retry_wait_seconds
        self.base_url = base_url
        self.limiter = limiter
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="dispatch")

    # ---------------------------------------------------------------- delivery

    def _transport_send(self, meeting: Meeting, email: RenderedEmail):
        try:
            receipt = self.transport.send(meeting.patient_email, email.subject, email.body)
        except Exception as e:
            raise TransportError(meeting.id, str(e) or e.__class__.__name__) from e
        if not receipt.ok:
            raise TransportError(meeting.id, receipt.error or "mail transport rejected the message")
        return receipt

    def _deliver(
        self,
        meeting: Meeting,
        email: RenderedEmail,
        kind: DispatchKind,
        request_id: str
    ) -> InvitationDispatchRecord:
        """Runs on a worker thread; always appends exactly one record."""
        outcome = DispatchOutcome.SENT
        message_id = None
        error = None

        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_fixed(self.retry_wait_seconds),
                retry=retry_if_exception_type(TransportError),
                reraise=True,
            ):
                with attempt:
                    receipt = self._transport_send(meeting, email)
            message_id = receipt.message_id
        except TransportError as e:
            outcome = DispatchOutcome.FAILED
            error = e.reason

        record = InvitationDispatchRecord(
            id=f"disp_{uuid.uuid4().hex}",
            meeting_id=meeting.id,
            recipient=meeting.patient_email,
            dispatched_at=self.clock(),
            channel="email",
            outcome=outcome,
            kind=kind,
            subject=email.subject,
            message_id=message_id,
            error=error,
            request_id=request_id,
        )
        self.dispatch_log.append(record)

        log = logger.info if outcome == DispatchOutcome.SENT else logger.warning
        log(
            "invitation_dispatched",
            meeting_id=meeting.id,
            kind=kind.value,
            outcome=outcome.value,
            error=error,
            request_id=request_id,
        )
        return record

    def _check_active(self, meeting: Meeting):
        status = resolve_status(meeting, self.clock())
        if status == MeetingStatus.CANCELLED:
            raise MeetingCancelled(meeting.id)
        if status == MeetingStatus.EXPIRED:
            raise MeetingExpired(meeting.id)

    def _submit_invitation(self, meeting_id: str, request_id: str) -> Tuple[Meeting, Future]:
        meeting = self.registry.get(meeting_id)
        self._check_active(meeting)

        if self.limiter is not None:
            self.limiter.check(meeting_id)

        previous = [
            r for r in self.dispatch_log.list_for_meeting(meeting_id)
            if r.kind == DispatchKind.INVITATION
        ]
        ctx = InvitationContext.from_meeting(meeting, self.clock(), self.base_url)
        email = render_invitation(ctx, resend=bool(previous))

        future = self.executor.submit(
            self._deliver, meeting, email, DispatchKind.INVITATION, request_id
        )
        return meeting, future

    # ---------------------------------------------------------------- public

    def send(self, meeting_id: str, timeout: Optional[float] = None) -> DispatchResult:
        """
        Send (or resend) the invitation for an active meeting.

        Args:
            meeting_id: Meeting to invite the patient to
            timeout: Seconds to wait (defaults to the dispatcher timeout)

        Returns:
            DispatchResult with the appended record

        Raises:
            MeetingNotFound: If the id is unknown
            MeetingExpired: If the link window has passed (no record written)
            MeetingCancelled: If the meeting was cancelled (no record written)
            ResendThrottled: Only when a limiter is configured
            TransportError: Delivery failed or did not resolve in time;
                safe to retry
        """
        with request_context(meeting_id=meeting_id) as request_id:
            meeting, future = self._submit_invitation(meeting_id, request_id)
            wait = self.timeout if timeout is None else timeout

            try:
                record = future.result(timeout=wait)
            except FuturesTimeout:
                logger.warning("invitation_dispatch_timeout", meeting_id=meeting_id, timeout=wait)
                raise TransportError(
                    meeting_id, f"no answer from mail transport within {wait}s; delivery continues in background"
                ) from None

            if record.outcome == DispatchOutcome.FAILED:
                raise TransportError(meeting_id, record.error or "delivery failed")

            return DispatchResult(
                meeting_id=meeting_id,
                record=record,
                join_link=build_join_link(meeting, self.base_url),
                short_link=build_short_link(meeting, self.base_url),
                message_id=record.message_id,
            )

    def send_async(self, meeting_id: str) -> Future:
        """
        Start an invitation delivery without waiting.

        Validation errors are raised immediately; the returned future
        resolves to the InvitationDispatchRecord.
        """
        with request_context(meeting_id=meeting_id) as request_id:
            _, future = self._submit_invitation(meeting_id, request_id)
        return future

    def send_cancellation_notice(
        self,
        meeting_id: str,
        reason: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> InvitationDispatchRecord:
        """
        Tell the patient a meeting was cancelled.

        Raises:
            MeetingNotFound: If the id is unknown
            InvalidTransition: If the meeting is not cancelled
            TransportError: Delivery failed or timed out
        """
        meeting = self.registry.get(meeting_id)
        if meeting.status != MeetingStatus.CANCELLED:
            raise InvalidTransition(meeting.id, meeting.status.value, "notified of cancellation")

        email = render_cancellation(CancellationContext(
            patient_name=meeting.patient_name,
            doctor_name=meeting.doctor_name,
            consultation_date=format_meeting_time(meeting.scheduled_time),
            reason=reason,
        ))
        with request_context(meeting_id=meeting_id) as request_id:
            future = self.executor.submit(
                self._deliver, meeting, email, DispatchKind.CANCELLATION, request_id
            )
            wait = self.timeout if timeout is None else timeout
            try:
                record = future.result(timeout=wait)
            except FuturesTimeout:
                raise TransportError(meeting_id, f"no answer from mail transport within {wait}s") from None

        if record.outcome == DispatchOutcome.FAILED:
            raise TransportError(meeting_id, record.error or "delivery failed")
        return record

    def history(self, meeting_id: Optional[str] = None) -> List[InvitationDispatchRecord]:
        """Dispatch records, optionally for one meeting, oldest first."""
        records = (
            self.dispatch_log.list_for_meeting(meeting_id)
            if meeting_id else self.dispatch_log.list_all()
        )
        return sorted(records, key=lambda r: r.dispatched_at)

    def shutdown(self, wait: bool = True):
        self.executor.shutdown(wait=wait)
