"""SQLAlchemy tables for meetings and invitation dispatch history."""
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, create_engine, event
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def to_db_time(value: datetime) -> datetime:
    """Store instants as naive UTC (SQLite drops tzinfo)."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def from_db_time(value: datetime) -> datetime:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(database_url: str):
    """
    Create an engine; in-memory SQLite is shared across threads.

    Args:
        database_url: SQLAlchemy connection string

    Returns:
        Engine with tables created
    """
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(database_url, pool_pre_ping=True)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    Base.metadata.create_all(engine)
    return engine


class MeetingRow(Base):
    """Consultation meeting table."""
    __tablename__ = "meetings"

    id = Column(String(64), primary_key=True, index=True)
    access_token = Column(String(128), nullable=False, unique=True)
    patient_id = Column(String(100), nullable=True, index=True)
    patient_name = Column(String(200), nullable=False)
    patient_email = Column(String(320), nullable=False)
    patient_phone = Column(String(50), nullable=True)
    doctor_id = Column(String(100), nullable=False, index=True)
    doctor_name = Column(String(200), nullable=False)
    scheduled_time = Column(DateTime, nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=False)
    consultation_type = Column(String(30), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    status = Column(String(30), nullable=False)
    patient_joined = Column(Boolean, default=False, nullable=False)

    def __repr__(self):
        return f"<MeetingRow(id={self.id}, doctor={self.doctor_id}, status={self.status})>"


class DispatchRow(Base):
    """Invitation dispatch history (append-only)."""
    __tablename__ = "invitation_dispatches"

    id = Column(String(64), primary_key=True)
    meeting_id = Column(String(64), ForeignKey("meetings.id"), nullable=False, index=True)
    recipient = Column(String(320), nullable=False)
    dispatched_at = Column(DateTime, nullable=False, index=True)
    channel = Column(String(20), nullable=False, default="email")
    outcome = Column(String(20), nullable=False)
    kind = Column(String(30), nullable=False)
    subject = Column(String(500), nullable=True)
    message_id = Column(String(200), nullable=True)
    error = Column(Text, nullable=True)
    request_id = Column(String(40), nullable=True)

    def __repr__(self):
        return f"<DispatchRow(meeting={self.meeting_id}, outcome={self.outcome})>"
