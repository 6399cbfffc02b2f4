"""Error taxonomy for consultation scheduling.

Every failure raised by the core derives from ConsultationError, so a host
application can catch a single type at its boundary.
"""
from datetime import datetime
from typing import Dict, Optional


class ConsultationError(Exception):
    """Base class for all scheduling and invitation failures."""
    code = "CONSULTATION_ERROR"
    recoverable = False


class ValidationError(ConsultationError):
    """Raised when a request has one or more invalid fields.

    All violations are collected, not just the first one.
    """
    code = "VALIDATION_ERROR"

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        details = "; ".join(f"{field}: {reason}" for field, reason in self.errors.items())
        super().__init__(f"Invalid consultation request ({details})")

    @property
    def fields(self):
        return sorted(self.errors)


class SlotConflict(ConsultationError):
    """Raised when a requested slot overlaps an active booking or is not in the future."""
    code = "SLOT_CONFLICT"

    def __init__(
        self,
        provider_id: str,
        requested_time: datetime,
        conflicting_meeting_id: Optional[str] = None,
        reason: Optional[str] = None
    ):
        self.provider_id = provider_id
        self.requested_time = requested_time
        self.conflicting_meeting_id = conflicting_meeting_id
        if reason is None:
            reason = f"overlaps meeting {conflicting_meeting_id}"
        self.reason = reason
        super().__init__(
            f"Slot {requested_time.isoformat()} for provider {provider_id} is not available: {reason}"
        )


class MeetingNotFound(ConsultationError):
    """Raised when a meeting id (or short code) does not match any meeting."""
    code = "NOT_FOUND"

    def __init__(self, meeting_id: str):
        self.meeting_id = meeting_id
        super().__init__(f"Meeting {meeting_id} not found")


NotFound = MeetingNotFound


class MeetingExpired(ConsultationError):
    """Raised when a meeting's link validity window has passed."""
    code = "MEETING_EXPIRED"

    def __init__(self, meeting_id: str, message: Optional[str] = None):
        self.meeting_id = meeting_id
        super().__init__(message or f"Meeting {meeting_id} has expired")


class MeetingCancelled(MeetingExpired):
    """Raised when a meeting was cancelled; it is no longer active either."""
    code = "MEETING_CANCELLED"

    def __init__(self, meeting_id: str):
        super().__init__(meeting_id, f"Meeting {meeting_id} was cancelled")


class InvalidTransition(ConsultationError):
    """Raised when a terminal state change conflicts with the recorded one."""
    code = "INVALID_TRANSITION"

    def __init__(self, meeting_id: str, current: str, requested: str):
        self.meeting_id = meeting_id
        self.current = current
        self.requested = requested
        super().__init__(f"Meeting {meeting_id} is {current}; cannot mark it {requested}")


class InvalidAccessToken(ConsultationError):
    """Raised when a join attempt presents the wrong access token."""
    code = "INVALID_ACCESS_TOKEN"

    def __init__(self, meeting_id: str):
        self.meeting_id = meeting_id
        super().__init__(f"Access token rejected for meeting {meeting_id}")


class TransportError(ConsultationError):
    """Raised when the mail transport could not deliver. Callers may retry."""
    code = "TRANSPORT_ERROR"
    recoverable = True

    def __init__(self, meeting_id: Optional[str], reason: str):
        self.meeting_id = meeting_id
        self.reason = reason
        super().__init__(f"Mail delivery failed for meeting {meeting_id}: {reason}")


class ResendThrottled(ConsultationError):
    """Raised when a resend cooldown is configured and has not elapsed."""
    code = "RESEND_THROTTLED"
    recoverable = True

    def __init__(self, meeting_id: str, retry_after: int):
        self.meeting_id = meeting_id
        self.retry_after = retry_after
        super().__init__(f"Invitation for meeting {meeting_id} resent too soon; retry after {retry_after}s")


class JoinWindowClosed(ConsultationError):
    """Raised when a patient tries to join too early or after the join window ended."""
    code = "JOIN_WINDOW_CLOSED"

    def __init__(self, meeting_id: str, opens_at: datetime, closes_at: datetime, too_early: bool):
        self.meeting_id = meeting_id
        self.opens_at = opens_at
        self.closes_at = closes_at
        self.too_early = too_early
        self.recoverable = too_early
        if too_early:
            message = f"Meeting {meeting_id} is not available yet; joining opens at {opens_at.isoformat()}"
        else:
            message = f"Meeting {meeting_id} has ended; joining closed at {closes_at.isoformat()}"
        super().__init__(message)
