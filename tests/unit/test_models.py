"""Test meeting models and helpers."""
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from telehealth.models import (
    ConsultationType,
    DispatchOutcome,
    InvitationDispatchRecord,
    MeetingRequest,
    ensure_aware,
)
from tests.conftest import NOW


def test_ensure_aware_treats_naive_as_utc():
    naive = datetime(2025, 3, 3, 10, 0)
    assert ensure_aware(naive) == datetime(2025, 3, 3, 10, 0, tzinfo=timezone.utc)


def test_request_scheduled_time_becomes_aware():
    request = MeetingRequest(doctor_id="doc_001", scheduled_time=datetime(2025, 3, 3, 10, 0))
    assert request.scheduled_time.tzinfo is not None


def test_request_requires_doctor_id():
    with pytest.raises(PydanticValidationError):
        MeetingRequest(patient_name="Jane Doe")


def test_request_strips_whitespace():
    request = MeetingRequest(doctor_id="doc_001", patient_name="  Jane Doe ")
    assert request.patient_name == "Jane Doe"


def test_consultation_type_labels():
    assert ConsultationType.GENERAL.label == "General Consultation"
    assert ConsultationType("follow-up") is ConsultationType.FOLLOW_UP


class TestMeeting:
    def test_end_time_and_short_code(self, make_meeting):
        meeting = make_meeting(duration_minutes=45)

        assert meeting.end_time == meeting.scheduled_time + timedelta(minutes=45)
        assert meeting.short_code == meeting.id[-8:]
        assert len(meeting.short_code) == 8

    def test_overlap_is_half_open(self, make_meeting):
        """Back-to-back meetings do not overlap."""
        start = NOW + timedelta(hours=2)
        meeting = make_meeting(scheduled_time=start, duration_minutes=30)

        assert meeting.overlaps(start + timedelta(minutes=15), 30)
        assert meeting.overlaps(start - timedelta(minutes=15), 30)
        assert not meeting.overlaps(start + timedelta(minutes=30), 30)
        assert not meeting.overlaps(start - timedelta(minutes=30), 30)


def test_dispatch_record_is_immutable():
    record = InvitationDispatchRecord(
        id="disp_1",
        meeting_id="cons_1",
        recipient="jane.doe@example.com",
        dispatched_at=NOW,
        outcome=DispatchOutcome.SENT,
    )

    with pytest.raises(PydanticValidationError):
        record.outcome = DispatchOutcome.FAILED
