"""Shared pytest fixtures for backend tests."""

import os

# Must be set before assessment.config is imported anywhere.
os.environ.setdefault("RANKING_CACHE_ENABLED", "false")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")

import uuid  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from assessment.api.deps import get_clock  # noqa: E402
from assessment.core.security import create_access_token  # noqa: E402
from assessment.db.models import Question, QuestionKindEnum, Quiz, Subject  # noqa: E402
from assessment.db.session import Base, get_db  # noqa: E402
from assessment.main import app  # noqa: E402


# Use an in-memory SQLite database for testing with static pool
SQLALCHEMY_TEST_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,  # Use StaticPool to keep connection alive
    echo=False,
)
TestSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(scope="function")
def db():
    """Fresh schema and session per test (services commit, so no rollback trick)."""
    Base.metadata.create_all(bind=engine)
    session = TestSession()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture(scope="function")
def client(db: Session, clock: FrozenClock):
    """FastAPI test client with overridden DB and clock dependencies."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    # Remove TrustedHostMiddleware for tests to allow 'testserver' host
    app.user_middleware = [m for m in app.user_middleware if "TrustedHost" not in str(m)]

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ── Callers ───────────────────────────────────────────────────────────────────


def auth(user_id: uuid.UUID, *capabilities: str) -> dict:
    token = create_access_token(user_id, capabilities=list(capabilities))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    """Bearer headers for an arbitrary user id and capabilities."""
    return auth


@pytest.fixture
def learner_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def admin_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def learner_headers(learner_id: uuid.UUID) -> dict:
    return auth(learner_id)


@pytest.fixture
def admin_headers(admin_id: uuid.UUID) -> dict:
    return auth(admin_id, "admin")


# ── Content factories ─────────────────────────────────────────────────────────


@pytest.fixture
def make_subject(db: Session):
    def _make(title: str = "Mathematics", requires_approval: bool = False) -> Subject:
        subject = Subject(title=title, requires_approval=requires_approval)
        db.add(subject)
        db.commit()
        db.refresh(subject)
        return subject

    return _make


@pytest.fixture
def make_quiz(db: Session):
    """Quiz whose questions each have four options, option 0 correct by default."""

    def _make(
        marks: tuple[float, ...] = (5.0, 5.0),
        negative_marks: tuple[float, ...] = (1.0, 1.0),
        pass_threshold: float | None = 50.0,
        duration_minutes: int = 30,
        max_attempts: int | None = None,
        subject: Subject | None = None,
        kinds: tuple[QuestionKindEnum, ...] | None = None,
        correct: tuple[list[int], ...] | None = None,
        available_from: datetime | None = None,
        available_to: datetime | None = None,
        is_active: bool = True,
    ) -> Quiz:
        quiz = Quiz(
            title="Quiz",
            subject_id=subject.id if subject else None,
            duration_minutes=duration_minutes,
            max_attempts=max_attempts,
            pass_threshold=pass_threshold,
            available_from=available_from,
            available_to=available_to,
            is_active=is_active,
        )
        quiz.questions = [
            Question(
                position=i,
                text=f"Question {i + 1}",
                kind=kinds[i] if kinds else QuestionKindEnum.SINGLE,
                options=["a", "b", "c", "d"],
                correct_options=correct[i] if correct else [0],
                marks=m,
                negative_marks=negative_marks[i],
            )
            for i, m in enumerate(marks)
        ]
        db.add(quiz)
        db.commit()
        db.refresh(quiz)
        return quiz

    return _make
