"""Pytest fixtures and configuration for daygrid tests."""

import os

# Keep the app's module-level engine off the working directory.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
import uuid
from datetime import date
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from daygrid.database.database import Base
from daygrid.database.repository import TimetableRepository
from daygrid.errors import NotFound, ReconciliationFailed
from daygrid.models.identity import Identity
from daygrid.models.notification import NotificationLevel
from daygrid.models.task import TaskRecord
from daygrid.notifications import Notifier


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

# 2024-01-01 is a Monday
MONDAY = date(2024, 1, 1)


@pytest.fixture(scope="function")
def db_session():
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test.
    """
    from daygrid.database import models  # noqa: F401

    # Create engine with StaticPool for in-memory database
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def timetable_repository(db_session: Session):
    """Create a TimetableRepository instance for testing."""
    return TimetableRepository(db_session)


@pytest.fixture
def test_owner_id():
    """Owner ID for multi-user testing."""
    return "test-owner-123"


@pytest.fixture
def test_identity(test_owner_id):
    return Identity(owner_id=test_owner_id, is_authenticated=True)


@pytest.fixture
def test_client(db_session: Session, test_identity):
    """Create a FastAPI test client with overridden database dependency and authentication."""
    from daygrid.api.app import app
    from daygrid.database.database import get_db
    from daygrid.auth.dependencies import get_current_identity

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close the session here, let the fixture handle it

    def override_get_current_identity():
        return test_identity

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_identity] = override_get_current_identity

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


class RecordingNotifier(Notifier):
    """Notifier that keeps every notification for assertions."""

    def __init__(self):
        self.messages = []

    def notify(self, level, message):
        self.messages.append((NotificationLevel(level), message))

    @property
    def errors(self):
        return [m for level, m in self.messages if level == NotificationLevel.ERROR]

    @property
    def successes(self):
        return [m for level, m in self.messages if level == NotificationLevel.SUCCESS]


class FakeTimetableService:
    """In-memory stand-in for TimetableClient.

    Add a method name to `fail` to make it raise ReconciliationFailed, or map
    it in `errors` to any exception to raise instead. A `threading.Event` in
    `gates` holds the call until the event is set.
    Every call is recorded in `calls` as (method name, args).
    """

    def __init__(self):
        self.records = {}
        self.fail = set()
        self.errors = {}
        self.gates = {}
        self.calls = []

    def _check(self, name, *args):
        self.calls.append((name, args))
        gate = self.gates.get(name)
        if gate is not None:
            gate.wait(timeout=5)
        if name in self.fail:
            raise ReconciliationFailed(f"{name} unavailable")
        if name in self.errors:
            raise self.errors[name]

    def call_count(self, name):
        return sum(1 for called, _ in self.calls if called == name)

    def seed(self, day, slot, description="", completed=False):
        record = TaskRecord(id=str(uuid.uuid4()), day=day, slot=slot, description=description, completed=completed)
        self.records[record.id] = record
        return record

    def list_tasks(self, start=None, end=None):
        self._check("list_tasks", start, end)
        return sorted(
            (r for r in self.records.values()
             if (start is None or r.day >= start) and (end is None or r.day <= end)),
            key=lambda r: r.day,
        )

    def create_task(self, day, slot, description):
        self._check("create_task", day, slot, description)
        for record in self.records.values():
            if record.day == day and record.slot == slot:
                return record
        return self.seed(day, slot, description)

    def update_task(self, task_id, changes):
        self._check("update_task", task_id, changes)
        if task_id not in self.records:
            raise NotFound(f"{task_id} not found")
        record = self.records[task_id].model_copy(update=changes)
        self.records[task_id] = record
        return record

    def delete_task(self, task_id):
        self._check("delete_task", task_id)
        return 1 if self.records.pop(task_id, None) is not None else 0

    def bulk_upsert(self, entries, start=None, end=None, exclude_ids=()):
        self._check("bulk_upsert", entries, start, end, exclude_ids)
        touched = set()
        for entry in entries:
            existing = self.records.get(entry.get("id")) if entry.get("id") else None
            if existing is None:
                existing = next(
                    (r for r in self.records.values() if r.day == entry["day"] and r.slot == entry["slot"]),
                    None,
                )
            record_id = existing.id if existing else str(uuid.uuid4())
            self.records[record_id] = TaskRecord(
                id=record_id,
                day=entry["day"],
                slot=entry["slot"],
                description=entry["description"],
                completed=entry["completed"],
            )
            touched.add(record_id)
        for record_id, record in list(self.records.items()):
            if start <= record.day <= end and record_id not in touched and record_id not in exclude_ids:
                del self.records[record_id]
        return True


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def fake_service():
    return FakeTimetableService()


@pytest.fixture
def adapter(fake_service, notifier):
    from daygrid.client.reconciliation import ReconciliationAdapter
    return ReconciliationAdapter(fake_service, notifier)


@pytest.fixture
def snapshot_dir(tmp_path):
    return str(tmp_path / "snapshots")


@pytest.fixture
def monday():
    return MONDAY
