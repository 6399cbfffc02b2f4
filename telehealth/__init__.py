"""Consultation scheduling and invitation service."""
from telehealth.errors import (
    ConsultationError,
    InvalidAccessToken,
    InvalidTransition,
    MeetingCancelled,
    MeetingExpired,
    MeetingNotFound,
    NotFound,
    ResendThrottled,
    SlotConflict,
    TransportError,
    ValidationError,
)
from telehealth.models import (
    ConsultationType,
    DispatchOutcome,
    DispatchResult,
    InvitationDispatchRecord,
    Meeting,
    MeetingRequest,
    MeetingStatus,
)
from telehealth.service import ConsultationService
from telehealth.status import resolve_status

__all__ = [
    "ConsultationError",
    "ConsultationService",
    "ConsultationType",
    "DispatchOutcome",
    "DispatchResult",
    "InvalidAccessToken",
    "InvalidTransition",
    "InvitationDispatchRecord",
    "Meeting",
    "MeetingCancelled",
    "MeetingExpired",
    "MeetingNotFound",
    "MeetingRequest",
    "MeetingStatus",
    "NotFound",
    "ResendThrottled",
    "SlotConflict",
    "TransportError",
    "ValidationError",
    "resolve_status",
]
