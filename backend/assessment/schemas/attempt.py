"""Attempt schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from assessment.db.models import AttemptStatusEnum, ResultEnum


class AttemptStart(BaseModel):
    """POST /api/attempt/start"""

    quiz_id: uuid.UUID

    model_config = {"extra": "forbid"}


class AnswerSubmit(BaseModel):
    """PATCH /api/attempt/{id}/answer — a single option index, a list, or null to clear."""

    question_id: uuid.UUID
    selection: int | list[int] | None = None

    model_config = {"extra": "forbid"}


class AnswerRecorded(BaseModel):
    """Result of recording one answer."""

    attempt_id: uuid.UUID
    question_id: uuid.UUID
    answered_count: int


class ScoreBreakdown(BaseModel):
    """Outcome of scoring one attempt. ``marks_obtained`` may be negative."""

    marks_obtained: float
    total_marks: float
    correct_count: int
    incorrect_count: int
    unattempted_count: int
    percentage: float
    result: ResultEnum


class AttemptRead(BaseModel):
    """Attempt state as seen by its owner."""

    id: uuid.UUID
    quiz_id: uuid.UUID
    user_id: uuid.UUID
    status: AttemptStatusEnum
    started_at: datetime
    expires_at: datetime
    submitted_at: datetime | None = None
    answered_count: int = 0
    time_spent_seconds: int | None = None
    score: ScoreBreakdown | None = None


class AttemptEligibility(BaseModel):
    """How many more attempts a learner has on a quiz."""

    quiz_id: uuid.UUID
    attempts_made: int
    max_attempts: int | None = None
    attempts_left: int | None = None  # None → unbounded
    can_attempt: bool
    in_progress_attempt_id: uuid.UUID | None = None
    reason: str | None = Field(default=None, description="error_code that would block start()")


class QuestionReport(BaseModel):
    """One row of an attempt report."""

    question_id: uuid.UUID
    position: int
    is_answered: bool
    is_correct: bool
    marks_obtained: float
    marks: float
    negative_marks: float
    selection: list[int] = []
    correct_options: list[int]


class AttemptReport(BaseModel):
    """Per-question breakdown of a submitted or expired attempt."""

    attempt_id: uuid.UUID
    quiz_id: uuid.UUID
    status: AttemptStatusEnum
    score: ScoreBreakdown
    questions: list[QuestionReport]
