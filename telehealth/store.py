"""Persistence for meetings and dispatch history.

Two interchangeable backends:
- InMemory*: thread-safe dicts/lists for tests and single-process demos
- Sql*: SQLAlchemy tables, one transaction per write

Stores hand out copies; mutating a returned Meeting never changes stored state.
The dispatch log has no update or delete operations.
"""
import threading
from typing import Dict, List, Optional, Protocol

from sqlalchemy.orm import sessionmaker

from telehealth.database_models import DispatchRow, MeetingRow, from_db_time, make_engine, to_db_time
from telehealth.models import InvitationDispatchRecord, Meeting


class MeetingStore(Protocol):
    def get(self, meeting_id: str) -> Optional[Meeting]: ...

    def put(self, meeting: Meeting) -> None: ...

    def list_by_provider(self, provider_id: str) -> List[Meeting]: ...

    def list_all(self) -> List[Meeting]: ...

    def delete(self, meeting_id: str) -> bool: ...

    def find_by_suffix(self, suffix: str) -> List[Meeting]: ...

    def find_by_access_token(self, access_token: str) -> Optional[Meeting]: ...


class DispatchLog(Protocol):
    def append(self, record: InvitationDispatchRecord) -> None: ...

    def list_for_meeting(self, meeting_id: str) -> List[InvitationDispatchRecord]: ...

    def list_all(self) -> List[InvitationDispatchRecord]: ...


class InMemoryMeetingStore:
    """Dict-backed meeting store."""

    def __init__(self):
        self._meetings: Dict[str, Meeting] = {}
        self.lock = threading.Lock()

    def get(self, meeting_id: str) -> Optional[Meeting]:
        with self.lock:
            meeting = self._meetings.get(meeting_id)
            return meeting.model_copy() if meeting else None

    def put(self, meeting: Meeting) -> None:
        with self.lock:
            self._meetings[meeting.id] = meeting.model_copy()

    def list_by_provider(self, provider_id: str) -> List[Meeting]:
        with self.lock:
            return [m.model_copy() for m in self._meetings.values() if m.doctor_id == provider_id]

    def list_all(self) -> List[Meeting]:
        with self.lock:
            return [m.model_copy() for m in self._meetings.values()]

    def delete(self, meeting_id: str) -> bool:
        with self.lock:
            return self._meetings.pop(meeting_id, None) is not None

    def find_by_suffix(self, suffix: str) -> List[Meeting]:
        if not suffix:
            return []
        with self.lock:
            return [m.model_copy() for m in self._meetings.values() if m.id.endswith(suffix)]

    def find_by_access_token(self, access_token: str) -> Optional[Meeting]:
        with self.lock:
            for meeting in self._meetings.values():
                if meeting.access_token == access_token:
                    return meeting.model_copy()
        return None


class InMemoryDispatchLog:
    """List-backed append-only dispatch history."""

    def __init__(self):
        self._records: List[InvitationDispatchRecord] = []
        self.lock = threading.Lock()

    def append(self, record: InvitationDispatchRecord) -> None:
        with self.lock:
            self._records.append(record)

    def list_for_meeting(self, meeting_id: str) -> List[InvitationDispatchRecord]:
        with self.lock:
            return [r for r in self._records if r.meeting_id == meeting_id]

    def list_all(self) -> List[InvitationDispatchRecord]:
        with self.lock:
            return list(self._records)


def _meeting_from_row(row: MeetingRow) -> Meeting:
    return Meeting(
        id=row.id,
        access_token=row.access_token,
        patient_id=row.patient_id,
        patient_name=row.patient_name,
        patient_email=row.patient_email,
        patient_phone=row.patient_phone,
        doctor_id=row.doctor_id,
        doctor_name=row.doctor_name,
        scheduled_time=from_db_time(row.scheduled_time),
        duration_minutes=row.duration_minutes,
        consultation_type=row.consultation_type,
        notes=row.notes,
        created_at=from_db_time(row.created_at),
        expires_at=from_db_time(row.expires_at),
        status=row.status,
        patient_joined=row.patient_joined,
    )


def _copy_to_row(meeting: Meeting, row: MeetingRow) -> None:
    row.access_token = meeting.access_token
    row.patient_id = meeting.patient_id
    row.patient_name = meeting.patient_name
    row.patient_email = meeting.patient_email
    row.patient_phone = meeting.patient_phone
    row.doctor_id = meeting.doctor_id
    row.doctor_name = meeting.doctor_name
    row.scheduled_time = to_db_time(meeting.scheduled_time)
    row.duration_minutes = meeting.duration_minutes
    row.consultation_type = meeting.consultation_type.value
    row.notes = meeting.notes
    row.created_at = to_db_time(meeting.created_at)
    row.expires_at = to_db_time(meeting.expires_at)
    row.status = meeting.status.value
    row.patient_joined = meeting.patient_joined


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlMeetingStore:
    """
    SQLAlchemy-backed meeting store.

    Pattern: Thin wrapper around SQLAlchemy sessions, one transaction per call.
    """

    def __init__(self, database_url: Optional[str] = None, engine=None):
        """
        Args:
            database_url: SQLAlchemy connection string (ignored if engine given)
            engine: Existing engine to share with a SqlDispatchLog
        """
        self.engine = engine if engine is not None else make_engine(database_url)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def get(self, meeting_id: str) -> Optional[Meeting]:
        with self.SessionLocal() as db:
            row = db.get(MeetingRow, meeting_id)
            return _meeting_from_row(row) if row else None

    def put(self, meeting: Meeting) -> None:
        """Insert or replace a meeting by id."""
        with self.SessionLocal() as db:
            row = db.get(MeetingRow, meeting.id)
            if row is None:
                row = MeetingRow(id=meeting.id)
                db.add(row)
            _copy_to_row(meeting, row)
            db.commit()

    def list_by_provider(self, provider_id: str) -> List[Meeting]:
        with self.SessionLocal() as db:
            rows = db.query(MeetingRow).filter(MeetingRow.doctor_id == provider_id).all()
            return [_meeting_from_row(r) for r in rows]

    def list_all(self) -> List[Meeting]:
        with self.SessionLocal() as db:
            return [_meeting_from_row(r) for r in db.query(MeetingRow).all()]

    def delete(self, meeting_id: str) -> bool:
        with self.SessionLocal() as db:
            deleted = db.query(MeetingRow).filter(MeetingRow.id == meeting_id).delete()
            db.commit()
        return deleted > 0

    def find_by_suffix(self, suffix: str) -> List[Meeting]:
        if not suffix:
            return []
        with self.SessionLocal() as db:
            rows = db.query(MeetingRow).filter(
                MeetingRow.id.like(f"%{_escape_like(suffix)}", escape="\\")
            ).all()
            return [_meeting_from_row(r) for r in rows]

    def find_by_access_token(self, access_token: str) -> Optional[Meeting]:
        with self.SessionLocal() as db:
            row = db.query(MeetingRow).filter(MeetingRow.access_token == access_token).first()
            return _meeting_from_row(row) if row else None


class SqlDispatchLog:
    """SQLAlchemy-backed dispatch history."""

    def __init__(self, database_url: Optional[str] = None, engine=None):
        self.engine = engine if engine is not None else make_engine(database_url)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def append(self, record: InvitationDispatchRecord) -> None:
        with self.SessionLocal() as db:
            db.add(DispatchRow(
                id=record.id,
                meeting_id=record.meeting_id,
                recipient=record.recipient,
                dispatched_at=to_db_time(record.dispatched_at),
                channel=record.channel,
                outcome=record.outcome.value,
                kind=record.kind.value,
                subject=record.subject,
                message_id=record.message_id,
                error=record.error,
                request_id=record.request_id,
            ))
            db.commit()

    def list_for_meeting(self, meeting_id: str) -> List[InvitationDispatchRecord]:
        with self.SessionLocal() as db:
            rows = db.query(DispatchRow).filter(
                DispatchRow.meeting_id == meeting_id
            ).order_by(DispatchRow.dispatched_at).all()
            return [self._record_from_row(r) for r in rows]

    def list_all(self) -> List[InvitationDispatchRecord]:
        with self.SessionLocal() as db:
            rows = db.query(DispatchRow).order_by(DispatchRow.dispatched_at).all()
            return [self._record_from_row(r) for r in rows]

    @staticmethod
    def _record_from_row(row: DispatchRow) -> InvitationDispatchRecord:
        return InvitationDispatchRecord(
            id=row.id,
            meeting_id=row.meeting_id,
            recipient=row.recipient,
            dispatched_at=from_db_time(row.dispatched_at),
            channel=row.channel,
            outcome=row.outcome,
            kind=row.kind,
            subject=row.subject,
            message_id=row.message_id,
            error=row.error,
            request_id=row.request_id,
        )
