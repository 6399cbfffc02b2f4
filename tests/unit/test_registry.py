"""Test meeting creation, lookup and state changes."""
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from telehealth.errors import (
    InvalidAccessToken,
    InvalidTransition,
    JoinWindowClosed,
    MeetingCancelled,
    MeetingExpired,
    MeetingNotFound,
    NotFound,
    SlotConflict,
    ValidationError,
)
from telehealth.models import MeetingRequest, MeetingStatus
from telehealth.registry import MeetingRegistry
from tests.conftest import NOW


class TestCreate:
    def test_creates_scheduled_meeting(self, registry, make_request):
        meeting = registry.create(make_request())

        assert meeting.id.startswith("cons_")
        assert meeting.access_token
        assert meeting.access_token != meeting.id
        assert meeting.status == MeetingStatus.SCHEDULED
        assert meeting.patient_joined is False
        assert meeting.created_at == NOW
        assert meeting.expires_at == NOW + timedelta(hours=24)

    def test_accepts_request_model(self, registry, make_request):
        meeting = registry.create(MeetingRequest(**make_request()))
        assert registry.get(meeting.id) == meeting

    def test_reports_every_invalid_field(self, registry, make_request):
        request = make_request(
            patient_name="",
            patient_email="not-an-email",
            scheduled_time=None,
            duration_minutes=20,
        )

        with pytest.raises(ValidationError) as exc_info:
            registry.create(request)

        assert exc_info.value.fields == [
            "duration_minutes", "patient_email", "patient_name", "scheduled_time",
        ]
        assert exc_info.value.errors["scheduled_time"] == "Consultation time is required"

    def test_past_time_is_validation_error(self, registry, make_request):
        with pytest.raises(ValidationError) as exc_info:
            registry.create(make_request(scheduled_time=NOW - timedelta(minutes=1)))

        assert "future" in exc_info.value.errors["scheduled_time"]

    def test_unknown_consultation_type(self, registry, make_request):
        with pytest.raises(ValidationError) as exc_info:
            registry.create(make_request(consultation_type="dental"))
        assert "consultation_type" in exc_info.value.errors

    def test_malformed_values_reported_with_business_errors(self, registry, make_request):
        request = make_request(
            patient_name="",
            patient_email="not-an-email",
            duration_minutes="half an hour",
        )
        del request["doctor_id"]

        with pytest.raises(ValidationError) as exc_info:
            registry.create(request)

        assert exc_info.value.fields == [
            "doctor_id", "duration_minutes", "patient_email", "patient_name",
        ]

    def test_request_must_be_a_mapping(self, registry):
        with pytest.raises(ValidationError) as exc_info:
            registry.create(None)

        assert "request" in exc_info.value.errors

    def test_naive_time_treated_as_utc(self, registry, make_request):
        meeting = registry.create(make_request(scheduled_time=datetime(2025, 3, 3, 10, 0)))
        assert meeting.scheduled_time == datetime(2025, 3, 3, 10, 0, tzinfo=timezone.utc)

    def test_overlapping_booking_rejected(self, registry, make_request):
        first = registry.create(make_request())

        with pytest.raises(SlotConflict) as exc_info:
            registry.create(make_request(
                patient_id="pat_002",
                scheduled_time=first.scheduled_time + timedelta(minutes=15),
            ))

        assert exc_info.value.conflicting_meeting_id == first.id
        assert len(registry.list_by_provider("doc_001")) == 1

    def test_other_provider_same_time(self, registry, make_request):
        registry.create(make_request())
        registry.create(make_request(doctor_id="doc_002"))

    def test_cancelled_slot_can_be_rebooked(self, registry, make_request):
        first = registry.create(make_request())
        registry.cancel(first.id)

        second = registry.create(make_request())
        assert second.id != first.id

    def test_optional_blanks_stored_as_none(self, registry, make_request):
        meeting = registry.create(make_request(patient_phone="", notes=""))
        assert meeting.patient_phone is None
        assert meeting.notes is None


class TestReads:
    def test_round_trip(self, registry, make_request):
        meeting = registry.create(make_request())
        assert registry.get(meeting.id) == meeting

    def test_unknown_id(self, registry):
        with pytest.raises(MeetingNotFound) as exc_info:
            registry.get("cons_missing")

        assert exc_info.value.meeting_id == "cons_missing"
        assert MeetingNotFound is NotFound

    def test_list_by_provider_sorted(self, registry, make_request):
        late = registry.create(make_request(scheduled_time=NOW + timedelta(hours=5)))
        early = registry.create(make_request(scheduled_time=NOW + timedelta(hours=1)))
        registry.create(make_request(doctor_id="doc_002"))

        assert [m.id for m in registry.list_by_provider("doc_001")] == [early.id, late.id]

    def test_resolve_short_code(self, registry, make_request):
        meeting = registry.create(make_request())

        assert registry.resolve_short_code(meeting.short_code).id == meeting.id
        with pytest.raises(MeetingNotFound):
            registry.resolve_short_code("zzzzzzzz")
        with pytest.raises(MeetingNotFound):
            registry.resolve_short_code("")

    def test_ambiguous_short_code(self, store, calendar, clock, make_request):
        tokens = Mock()
        tokens.new_meeting_id.side_effect = ["cons_aaaa11112222", "cons_bbbb11112222"]
        tokens.new_access_token.side_effect = ["token-a", "token-b"]
        registry = MeetingRegistry(store, calendar=calendar, tokens=tokens, clock=clock)

        registry.create(make_request())
        registry.create(make_request(scheduled_time=NOW + timedelta(hours=4)))

        with pytest.raises(MeetingNotFound):
            registry.resolve_short_code("11112222")

    def test_returned_copy_is_detached(self, registry, make_request):
        meeting = registry.create(make_request())
        meeting.patient_name = "Someone Else"

        assert registry.get(meeting.id).patient_name == "Jane Doe"


class TestTransitions:
    def test_cancel_is_idempotent(self, registry, make_request):
        meeting = registry.create(make_request())

        assert registry.cancel(meeting.id).status == MeetingStatus.CANCELLED
        assert registry.cancel(meeting.id).status == MeetingStatus.CANCELLED

    def test_cancel_unknown(self, registry):
        with pytest.raises(MeetingNotFound):
            registry.cancel("cons_missing")

    def test_completed_cannot_be_cancelled(self, registry, make_request):
        meeting = registry.create(make_request())
        registry.complete(meeting.id)

        with pytest.raises(InvalidTransition):
            registry.cancel(meeting.id)

    def test_cancelled_cannot_be_completed(self, registry, make_request):
        meeting = registry.create(make_request())
        registry.cancel(meeting.id)

        with pytest.raises(InvalidTransition) as exc_info:
            registry.complete(meeting.id)

        assert exc_info.value.current == "cancelled"

    def test_complete_is_idempotent(self, registry, make_request):
        meeting = registry.create(make_request())
        registry.complete(meeting.id)
        assert registry.complete(meeting.id).status == MeetingStatus.COMPLETED

    def test_start_then_complete(self, registry, make_request, clock):
        meeting = registry.create(make_request())
        clock.now = meeting.scheduled_time

        assert registry.start_consultation(meeting.id).status == MeetingStatus.IN_CONSULTATION
        assert registry.complete(meeting.id).status == MeetingStatus.COMPLETED

    def test_start_cancelled_meeting(self, registry, make_request):
        meeting = registry.create(make_request())
        registry.cancel(meeting.id)

        with pytest.raises(MeetingCancelled):
            registry.start_consultation(meeting.id)


class TestJoin:
    def test_join_with_token(self, registry, make_request, clock):
        meeting = registry.create(make_request())
        clock.now = meeting.scheduled_time - timedelta(minutes=30)

        joined = registry.mark_patient_joined(meeting.id, meeting.access_token)

        assert joined.patient_joined is True
        assert registry.get(meeting.id).patient_joined is True

    def test_wrong_token_rejected(self, registry, make_request):
        meeting = registry.create(make_request())

        with pytest.raises(InvalidAccessToken):
            registry.mark_patient_joined(meeting.id, "guess")
        with pytest.raises(InvalidAccessToken):
            registry.authorize_join(meeting.id, None)

        assert registry.get(meeting.id).patient_joined is False

    def test_join_expired_meeting(self, registry, make_request, clock):
        meeting = registry.create(make_request())
        clock.advance(hours=25)

        with pytest.raises(MeetingExpired) as exc_info:
            registry.mark_patient_joined(meeting.id, meeting.access_token)

        assert not isinstance(exc_info.value, MeetingCancelled)

    def test_join_cancelled_meeting(self, registry, make_request):
        meeting = registry.create(make_request())
        registry.cancel(meeting.id)

        with pytest.raises(MeetingCancelled):
            registry.authorize_join(meeting.id, meeting.access_token)


class TestJoinWindow:
    """Joining opens an hour before the start and closes 15 minutes after it."""

    def test_opens_exactly_an_hour_before(self, registry, make_request, clock):
        meeting = registry.create(make_request())
        clock.now = meeting.scheduled_time - timedelta(minutes=60)

        assert registry.authorize_join(meeting.id, meeting.access_token).id == meeting.id

    def test_too_early(self, registry, make_request, clock):
        meeting = registry.create(make_request())
        clock.now = meeting.scheduled_time - timedelta(minutes=61)

        with pytest.raises(JoinWindowClosed) as exc_info:
            registry.authorize_join(meeting.id, meeting.access_token)

        assert exc_info.value.too_early is True
        assert exc_info.value.recoverable is True
        assert exc_info.value.opens_at == meeting.scheduled_time - timedelta(hours=1)

    def test_closes_fifteen_minutes_after_start(self, registry, make_request, clock):
        meeting = registry.create(make_request())
        clock.now = meeting.scheduled_time + timedelta(minutes=15)

        assert registry.mark_patient_joined(meeting.id, meeting.access_token).patient_joined

    def test_after_close(self, registry, make_request, clock):
        meeting = registry.create(make_request())
        clock.now = meeting.scheduled_time + timedelta(minutes=16)

        with pytest.raises(JoinWindowClosed) as exc_info:
            registry.authorize_join(meeting.id, meeting.access_token)

        assert exc_info.value.too_early is False
        assert exc_info.value.closes_at == meeting.scheduled_time + timedelta(minutes=15)

    def test_early_join_not_recorded(self, registry, make_request):
        meeting = registry.create(make_request(scheduled_time=NOW + timedelta(hours=20)))

        with pytest.raises(JoinWindowClosed):
            registry.mark_patient_joined(meeting.id, meeting.access_token)

        assert registry.get(meeting.id).patient_joined is False


class TestCancelByToken:
    def test_cancels_meeting_holding_token(self, registry, make_request):
        meeting = registry.create(make_request())
        other = registry.create(make_request(doctor_id="doc_002"))

        cancelled = registry.cancel_by_token(meeting.access_token)

        assert cancelled.id == meeting.id
        assert cancelled.status == MeetingStatus.CANCELLED
        assert registry.get(other.id).status == MeetingStatus.SCHEDULED

    @pytest.mark.parametrize("token", ["no-such-token", "", None])
    def test_unknown_token(self, registry, make_request, token):
        meeting = registry.create(make_request())

        with pytest.raises(InvalidAccessToken):
            registry.cancel_by_token(token)

        assert registry.get(meeting.id).status == MeetingStatus.SCHEDULED


class TestReschedule:
    def test_moves_meeting_keeping_identity(self, registry, make_request):
        meeting = registry.create(make_request())
        new_time = NOW + timedelta(hours=6)

        moved = registry.reschedule(meeting.id, new_time)

        assert moved.scheduled_time == new_time
        assert moved.id == meeting.id
        assert moved.access_token == meeting.access_token
        assert moved.expires_at == meeting.expires_at

    def test_can_shift_within_own_slot(self, registry, make_request):
        meeting = registry.create(make_request())
        registry.reschedule(meeting.id, meeting.scheduled_time + timedelta(minutes=15))

    def test_conflict_with_other_booking(self, registry, make_request):
        meeting = registry.create(make_request())
        other = registry.create(make_request(scheduled_time=NOW + timedelta(hours=4)))

        with pytest.raises(SlotConflict) as exc_info:
            registry.reschedule(meeting.id, other.scheduled_time)

        assert exc_info.value.conflicting_meeting_id == other.id

    def test_past_time(self, registry, make_request):
        meeting = registry.create(make_request())

        with pytest.raises(ValidationError):
            registry.reschedule(meeting.id, NOW - timedelta(hours=1))

    def test_cancelled_meeting(self, registry, make_request):
        meeting = registry.create(make_request())
        registry.cancel(meeting.id)

        with pytest.raises(MeetingCancelled):
            registry.reschedule(meeting.id, NOW + timedelta(hours=6))

    def test_started_meeting(self, registry, make_request, clock):
        meeting = registry.create(make_request())
        registry.start_consultation(meeting.id)

        with pytest.raises(InvalidTransition):
            registry.reschedule(meeting.id, NOW + timedelta(hours=6))
