"""
Test configuration and shared fixtures for the scheduling test suite.

Uses an in-memory SQLite database per test by default (set
TEST_DATABASE_URL to run against PostgreSQL). Each test gets a fresh schema,
so tests never see each other's data.
"""

import os

# The application engine is built at import time; keep it off PostgreSQL in tests
os.environ.setdefault("DATABASE_URL", "sqlite://")

import threading
from datetime import time
from typing import Generator, List, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base, build_engine, get_db
from models import AppointmentType, Patient, Provider, WorkingHoursRule
from shared_types.scheduling import AffectedBooking, AuditEvent
from utils.provider_locks import ProviderLockRegistry

# Import all models to ensure they're registered with SQLAlchemy before tables are created
import models  # noqa: F401


TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite://")


@pytest.fixture(scope="function")
def db_engine() -> Generator[Engine, None, None]:
    """
    Create a database engine with a fresh schema for one test.

    In-memory SQLite needs StaticPool so every session shares the one
    connection that holds the database.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = build_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    else:
        engine = build_engine(TEST_DATABASE_URL)
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine, expire_on_commit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Provide a database session for a test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def file_engine(tmp_path) -> Generator[Engine, None, None]:
    """
    File-backed SQLite engine for tests that use several threads.

    Every thread gets its own connection and session, like separate
    requests in a running server.
    """
    engine = build_engine(f"sqlite:///{tmp_path / 'scheduling.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def lock_registry() -> ProviderLockRegistry:
    """A private lock registry so tests never share locks."""
    return ProviderLockRegistry()


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------

def _add_weekday_hours(db: Session, provider_id: int, start: time, end: time) -> None:
    for day_of_week in range(7):
        working = day_of_week < 5
        db.add(WorkingHoursRule(
            provider_id=provider_id,
            day_of_week=day_of_week,
            is_working=working,
            start_time=start if working else None,
            end_time=end if working else None,
        ))
    db.commit()


@pytest.fixture
def provider_factory(db_session):
    """Create providers working Monday to Friday (default 09:00-17:00), weekends off."""
    def make(name: str = "Dr. Chen", start: time = time(9, 0), end: time = time(17, 0)) -> Provider:
        provider = Provider(full_name=name)
        db_session.add(provider)
        db_session.commit()
        db_session.refresh(provider)
        _add_weekday_hours(db_session, provider.id, start, end)
        return provider
    return make


@pytest.fixture
def provider(provider_factory) -> Provider:
    """Provider working Monday to Friday, 09:00-17:00."""
    return provider_factory()


@pytest.fixture
def unconfigured_provider(db_session) -> Provider:
    """Provider without any working hours rows."""
    provider = Provider(full_name="Dr. New")
    db_session.add(provider)
    db_session.commit()
    db_session.refresh(provider)
    return provider


@pytest.fixture
def patient(db_session) -> Patient:
    patient = Patient(full_name="Test Patient")
    db_session.add(patient)
    db_session.commit()
    db_session.refresh(patient)
    return patient


@pytest.fixture
def appointment_type(db_session) -> AppointmentType:
    """30-minute appointment type without buffer."""
    appointment_type = AppointmentType(name="Consultation", duration_minutes=30, buffer_minutes=0)
    db_session.add(appointment_type)
    db_session.commit()
    db_session.refresh(appointment_type)
    return appointment_type


@pytest.fixture
def buffered_type(db_session) -> AppointmentType:
    """30-minute appointment type followed by a 15-minute buffer."""
    appointment_type = AppointmentType(name="Treatment", duration_minutes=30, buffer_minutes=15)
    db_session.add(appointment_type)
    db_session.commit()
    db_session.refresh(appointment_type)
    return appointment_type


# ---------------------------------------------------------------------------
# Collaborator sinks
# ---------------------------------------------------------------------------

class RecordingAuditSink:
    def __init__(self) -> None:
        self.events: List[AuditEvent] = []

    def emit(self, event: AuditEvent) -> None:
        self.events.append(event)

    @property
    def actions(self) -> List[str]:
        return [event.action for event in self.events]


class RecordingNotificationSink:
    def __init__(self) -> None:
        self.calls: List[Tuple[int, List[AffectedBooking]]] = []

    def notify_affected_bookings(self, leave_id: int, bookings) -> None:
        self.calls.append((leave_id, list(bookings)))


class FailingSink:
    """Sink whose every call raises, for the log-but-don't-fail paths."""

    def emit(self, event: AuditEvent) -> None:
        raise RuntimeError("audit store unavailable")

    def notify_affected_bookings(self, leave_id: int, bookings) -> None:
        raise RuntimeError("notification service unavailable")


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def notification_sink() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def failing_sink() -> FailingSink:
    return FailingSink()


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

@pytest.fixture
def client(db_session, audit_sink, notification_sink) -> Generator[TestClient, None, None]:
    """TestClient with the database and collaborator sinks overridden."""
    from api.dependencies import get_audit_sink, get_notification_sink
    from main import app

    def override_get_db() -> Generator[Session, None, None]:
        try:
            yield db_session
        finally:
            # Don't close the session as it's managed by the test fixture
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_audit_sink] = lambda: audit_sink
    app.dependency_overrides[get_notification_sink] = lambda: notification_sink
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def barrier_factory():
    """Build a barrier for threads that must start their request together."""
    return lambda parties: threading.Barrier(parties, timeout=10)
