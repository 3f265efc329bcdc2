"""Pytest configuration and shared fixtures.

This module provides fixtures and configuration used across all tests.
"""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, List, Optional, Tuple

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parent.parent

# Set required environment variables for tests BEFORE importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "test_account_sid")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test_auth_token")
os.environ.setdefault("TWILIO_PHONE_NUMBER", "+15550000000")
os.environ.setdefault("TOKEN_SECRET", "test-token-secret")
os.environ.setdefault("FORM_BASE_URL", "https://forms.example.com")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("REMINDER_ENABLED", "false")
os.environ.setdefault("QUESTIONS_FILE", str(ROOT / "questions" / "intake.yaml"))
os.environ.setdefault("ENVIRONMENT", "test")

from app.config import get_settings  # noqa: E402
from app.models.database import Base, get_db  # noqa: E402
from app.models.submission import Submission, SubmissionStatus  # noqa: E402
from app.schemas.questions import QuestionSet  # noqa: E402
from app.services.messaging import Messenger  # noqa: E402
from app.services.object_store import LocalObjectStore, get_object_store  # noqa: E402
from app.services.question_loader import get_question_set  # noqa: E402
from app.services.step_b_tokens import StepBTokenService, get_token_service  # noqa: E402
from app.services.twilio_client import SendResult, get_sms_sender  # noqa: E402

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeSmsSender:
    """Records outbound messages instead of calling Twilio.

    Numbers in `failing` get a failed SendResult, mimicking a Twilio error.
    """

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []
        self.failing: set = set()

    def send(self, to: Optional[str], body: str) -> SendResult:
        if not to:
            return SendResult(success=False, error="missing_destination")
        if to in self.failing:
            return SendResult(success=False, error="twilio_error_21610")
        self.sent.append((to, body))
        return SendResult(success=True, sid=f"SM{len(self.sent):032d}")

    def bodies_to(self, to: str) -> List[str]:
        return [body for number, body in self.sent if number == to]


class FakeObjectStore(LocalObjectStore):
    """Local store that remembers which keys were deleted."""

    def __init__(self):
        self.deleted: List[str] = []

    def delete(self, keys):
        self.deleted.extend(keys)
        return list(keys)


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine with SQLite in-memory database.

    Note:
        StaticPool shares the single in-memory connection, so the database
        stays visible to route handlers running in TestClient's threadpool.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,  # Set to True for SQL debugging
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session.

    Note:
        Session is rolled back after each test to ensure isolation.
    """
    TestSessionLocal = sessionmaker(
        bind=db_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = TestSessionLocal()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def question_set() -> QuestionSet:
    """Three-question set with the default message templates."""
    return QuestionSet(
        metadata={"id": "test_intake", "name": "Test Intake", "version": "1.0.0"},
        questions=[
            "What is your date of birth?",
            "What is your height?",
            "What is your weight?",
        ],
    )


@pytest.fixture
def sms_sender() -> FakeSmsSender:
    return FakeSmsSender()


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def token_service() -> StepBTokenService:
    return StepBTokenService("test-token-secret", ttl_days=7)


@pytest.fixture
def messenger(sms_sender, question_set, settings) -> Messenger:
    return Messenger(sms_sender, question_set, settings=settings)


@pytest.fixture
def make_submission(db_session):
    """Factory persisting a submission with sensible defaults."""

    def _make(**fields) -> Submission:
        defaults = {
            "status": SubmissionStatus.STARTED.value,
            "current_step": 0,
            "answers": {},
            "last_active": FIXED_NOW,
            "created_at": FIXED_NOW,
        }
        defaults.update(fields)
        submission = Submission(**defaults)
        db_session.add(submission)
        db_session.commit()
        return submission

    return _make


@pytest.fixture
def client(db_session, sms_sender, object_store, question_set, token_service):
    """FastAPI TestClient wired to the test database and fake transports.

    The lifespan is not entered, so no scheduler task is started.
    """
    from fastapi.testclient import TestClient

    from app.main import app

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_sms_sender] = lambda: sms_sender
    app.dependency_overrides[get_object_store] = lambda: object_store
    app.dependency_overrides[get_question_set] = lambda: question_set
    app.dependency_overrides[get_token_service] = lambda: token_service

    yield TestClient(app)

    app.dependency_overrides.clear()
