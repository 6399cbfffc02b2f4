"""Pydantic models for meetings, requests and dispatch history."""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from telehealth import config


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so comparisons never mix naive and aware values."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ConsultationType(str, Enum):
    """Kinds of consultation offered."""
    GENERAL = "general"
    FOLLOW_UP = "follow-up"
    SPECIALIST = "specialist"
    EMERGENCY = "emergency"
    THERAPY = "therapy"

    @property
    def label(self) -> str:
        return config.CONSULTATION_TYPES[self.value]


class MeetingStatus(str, Enum):
    """Display statuses. Only the terminal ones (and in-consultation) are ever stored."""
    SCHEDULED = "scheduled"
    PENDING = "pending"
    READY = "ready"
    CONFIRMED = "confirmed"
    IN_CONSULTATION = "in-consultation"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class DispatchOutcome(str, Enum):
    SENT = "sent"
    FAILED = "failed"


class DispatchKind(str, Enum):
    INVITATION = "invitation"
    CANCELLATION = "cancellation"


class MeetingRequest(BaseModel):
    """Input for scheduling a consultation.

    Only shapes are checked here; business rules (non-empty name, future time,
    allowed durations) are checked by the registry so every violation is
    reported together.
    """
    patient_id: Optional[str] = Field(None, description="Patient record id")
    patient_name: str = Field("", description="Patient full name")
    patient_email: str = Field("", description="Where the invitation is sent")
    patient_phone: Optional[str] = Field(None, description="Contact phone (optional)")
    doctor_id: str = Field(..., min_length=1, description="Provider id")
    doctor_name: str = Field(config.DEFAULT_DOCTOR_NAME, description="Provider display name")
    scheduled_time: Optional[datetime] = Field(None, description="Consultation start")
    duration_minutes: int = Field(config.DEFAULT_DURATION_MINUTES, description="Length in minutes")
    consultation_type: str = Field(ConsultationType.GENERAL.value, description="Consultation type")
    notes: Optional[str] = Field(None, description="Free-text notes")

    model_config = ConfigDict(
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "patient_id": "pat_001",
                "patient_name": "Jane Doe",
                "patient_email": "jane.doe@example.com",
                "doctor_id": "doc_001",
                "doctor_name": "Dr. Smith",
                "scheduled_time": "2025-03-01T10:00:00Z",
                "duration_minutes": 30,
                "consultation_type": "general"
            }
        }
    )

    @field_validator("scheduled_time")
    @classmethod
    def _aware_scheduled_time(cls, v):
        return ensure_aware(v) if v is not None else v


class Meeting(BaseModel):
    """A scheduled consultation.

    Patient fields are a snapshot taken at creation time.
    """
    id: str
    access_token: str
    patient_id: Optional[str] = None
    patient_name: str
    patient_email: str
    patient_phone: Optional[str] = None
    doctor_id: str
    doctor_name: str
    scheduled_time: datetime
    duration_minutes: int
    consultation_type: ConsultationType
    notes: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    status: MeetingStatus = MeetingStatus.SCHEDULED
    patient_joined: bool = False

    @field_validator("scheduled_time", "created_at", "expires_at")
    @classmethod
    def _aware(cls, v):
        return ensure_aware(v)

    @property
    def end_time(self) -> datetime:
        return self.scheduled_time + timedelta(minutes=self.duration_minutes)

    @property
    def short_code(self) -> str:
        return self.id[-config.SHORT_CODE_LENGTH:]

    def overlaps(self, start: datetime, duration_minutes: int) -> bool:
        """Check whether [start, start + duration) intersects this meeting."""
        end = start + timedelta(minutes=duration_minutes)
        return start < self.end_time and self.scheduled_time < end


class InvitationDispatchRecord(BaseModel):
    """One attempt to deliver an invitation. Append-only."""
    id: str
    meeting_id: str
    recipient: str
    dispatched_at: datetime
    channel: str = "email"
    outcome: DispatchOutcome
    kind: DispatchKind = DispatchKind.INVITATION
    subject: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None
    request_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("dispatched_at")
    @classmethod
    def _aware(cls, v):
        return ensure_aware(v)


class DispatchResult(BaseModel):
    """Successful delivery of an invitation."""
    meeting_id: str
    record: InvitationDispatchRecord
    join_link: str
    short_link: str
    message_id: Optional[str] = None
