"""Shared test fixtures."""
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from telehealth.availability import SlotCalendar
from telehealth.invitations import InvitationDispatcher
from telehealth.mail import MailReceipt
from telehealth.models import ConsultationType, Meeting, MeetingStatus
from telehealth.registry import MeetingRegistry
from telehealth.store import InMemoryDispatchLog, InMemoryMeetingStore

# Monday morning, before the working day starts
NOW = datetime(2025, 3, 3, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that tests move forward explicitly."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def store():
    return InMemoryMeetingStore()


@pytest.fixture
def dispatch_log():
    return InMemoryDispatchLog()


@pytest.fixture
def calendar(store, clock):
    return SlotCalendar(store, clock=clock, timezone_name="UTC")


@pytest.fixture
def registry(store, calendar, clock):
    return MeetingRegistry(store, calendar=calendar, clock=clock)


@pytest.fixture
def transport():
    """Mail transport that accepts everything."""
    mock = Mock()
    mock.send.return_value = MailReceipt(ok=True, message_id="msg-001")
    return mock


@pytest.fixture
def dispatcher(registry, dispatch_log, transport, clock):
    dispatcher = InvitationDispatcher(
        registry,
        dispatch_log,
        transport,
        clock=clock,
        timeout=5,
        retry_wait_seconds=0,
        base_url="https://clinic.example",
    )
    yield dispatcher
    dispatcher.shutdown(wait=True)


@pytest.fixture
def make_request():
    """Build a valid scheduling request dict; override any field."""
    def _create(**overrides):
        data = {
            "patient_id": "pat_001",
            "patient_name": "Jane Doe",
            "patient_email": "jane.doe@example.com",
            "patient_phone": "+1 (555) 010-0200",
            "doctor_id": "doc_001",
            "doctor_name": "Dr. Smith",
            "scheduled_time": NOW + timedelta(hours=2),
            "duration_minutes": 30,
            "consultation_type": "general",
            "notes": None,
        }
        data.update(overrides)
        return data
    return _create


@pytest.fixture
def make_meeting():
    """Build a Meeting directly, bypassing the registry."""
    counter = [0]

    def _create(**overrides):
        counter[0] += 1
        data = {
            "id": f"cons_{counter[0]:032x}",
            "access_token": f"token-{counter[0]}",
            "patient_id": "pat_001",
            "patient_name": "Jane Doe",
            "patient_email": "jane.doe@example.com",
            "doctor_id": "doc_001",
            "doctor_name": "Dr. Smith",
            "scheduled_time": NOW + timedelta(hours=2),
            "duration_minutes": 30,
            "consultation_type": ConsultationType.GENERAL,
            "created_at": NOW,
            "expires_at": NOW + timedelta(hours=24),
            "status": MeetingStatus.SCHEDULED,
            "patient_joined": False,
        }
        data.update(overrides)
        return Meeting(**data)
    return _create
