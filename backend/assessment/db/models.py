"""SQLAlchemy ORM models for the assessment core.

Tables
------
- subjects                – gating configuration owned by the content service
- quizzes                 – quiz definitions (read-only to this service)
- questions               – ordered questions of a quiz
- attempts                – one learner's timed run through a quiz + stored score
- attempt_answers         – current selection per (attempt, question)
- subject_access_requests – request / approve / reject workflow
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from assessment.db.session import Base


# ── helpers ───────────────────────────────────────────────────────────────────


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> uuid.UUID:
    return uuid.uuid4()


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend.

    SQLite drops tzinfo on the way out; reattach UTC so deadline comparisons
    against an aware clock never mix naive and aware values.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


# ── Enums (stored as VARCHAR via SQLAlchemy Enum) ─────────────────────────────


class QuestionKindEnum(str, enum.Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"


class AttemptStatusEnum(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    EXPIRED = "expired"


class ResultEnum(str, enum.Enum):
    PASS = "pass"
    FAIL = "fail"


class AccessRequestStatusEnum(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


# ── Subjects ──────────────────────────────────────────────────────────────────


class Subject(Base):
    __tablename__ = "subjects"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    title: Mapped[str] = mapped_column(String(200))
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)

    quizzes: Mapped[list["Quiz"]] = relationship(back_populates="subject")


# ── Quizzes ───────────────────────────────────────────────────────────────────


class Quiz(Base):
    __tablename__ = "quizzes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    title: Mapped[str] = mapped_column(String(300))
    subject_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("subjects.id"), nullable=True, index=True
    )
    duration_minutes: Mapped[int] = mapped_column(Integer)
    max_attempts: Mapped[int | None] = mapped_column(Integer, nullable=True)  # None → unbounded
    pass_threshold: Mapped[float | None] = mapped_column(Float, nullable=True)
    available_from: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    available_to: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)

    subject: Mapped["Subject | None"] = relationship(back_populates="quizzes")
    questions: Mapped[list["Question"]] = relationship(
        back_populates="quiz",
        cascade="all, delete-orphan",
        order_by="Question.position",
    )


class Question(Base):
    __tablename__ = "questions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    quiz_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("quizzes.id"), index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    text: Mapped[str] = mapped_column(Text, default="")
    kind: Mapped[QuestionKindEnum] = mapped_column(
        Enum(QuestionKindEnum, name="question_kind_enum", values_callable=_enum_values),
        default=QuestionKindEnum.SINGLE,
    )
    options: Mapped[list | None] = mapped_column(JSON, nullable=True)  # option texts
    correct_options: Mapped[list] = mapped_column(JSON, default=list)  # option indices
    marks: Mapped[float] = mapped_column(Float, default=1.0)
    negative_marks: Mapped[float] = mapped_column(Float, default=0.0)

    quiz: Mapped["Quiz"] = relationship(back_populates="questions")


# ── Attempts ──────────────────────────────────────────────────────────────────


class Attempt(Base):
    __tablename__ = "attempts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    quiz_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("quizzes.id"), index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), index=True)
    status: Mapped[AttemptStatusEnum] = mapped_column(
        Enum(AttemptStatusEnum, name="attempt_status_enum", values_callable=_enum_values),
        default=AttemptStatusEnum.IN_PROGRESS,
    )
    started_at: Mapped[datetime] = mapped_column(UTCDateTime)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, index=True)
    submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # score: populated exactly once, on the terminal transition
    marks_obtained: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_marks: Mapped[float | None] = mapped_column(Float, nullable=True)
    correct_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    incorrect_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    unattempted_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    result: Mapped[ResultEnum | None] = mapped_column(
        Enum(ResultEnum, name="result_enum", values_callable=_enum_values),
        nullable=True,
    )

    quiz: Mapped["Quiz"] = relationship("Quiz")
    answers: Mapped[list["AttemptAnswer"]] = relationship(
        back_populates="attempt", cascade="all, delete-orphan"
    )

    __table_args__ = (
        # create-if-absent primitive: one live attempt per learner per quiz
        Index(
            "uq_attempt_user_quiz_in_progress",
            "user_id",
            "quiz_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
    )


class AttemptAnswer(Base):
    """Latest selection for one question of an attempt."""

    __tablename__ = "attempt_answers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    attempt_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("attempts.id")
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("questions.id")
    )
    selection: Mapped[list] = mapped_column(JSON, default=list)
    answered_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow, onupdate=_utcnow
    )

    attempt: Mapped["Attempt"] = relationship(back_populates="answers")

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_attempt_answer_question"),
    )


# ── Subject access requests ───────────────────────────────────────────────────


class SubjectAccessRequest(Base):
    __tablename__ = "subject_access_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), index=True)
    subject_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("subjects.id"), index=True
    )
    status: Mapped[AccessRequestStatusEnum] = mapped_column(
        Enum(
            AccessRequestStatusEnum,
            name="access_request_status_enum",
            values_callable=_enum_values,
        ),
        default=AccessRequestStatusEnum.PENDING,
        index=True,
    )
    email: Mapped[str] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    decided_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)
    decided_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    subject: Mapped["Subject"] = relationship("Subject")

    __table_args__ = (
        Index(
            "uq_access_request_user_subject_pending",
            "user_id",
            "subject_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )
