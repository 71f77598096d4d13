"""Quiz definition value types consumed from the quiz catalog.

These are the typed, validated shapes the core works with; catalog rows are
converted into them at the persistence boundary and unknown fields are
rejected.
"""

import uuid
from datetime import datetime, timedelta

from pydantic import BaseModel, Field, model_validator

from assessment.db.models import QuestionKindEnum


class QuestionDefinition(BaseModel):
    """One question of a quiz with its marking rules."""

    id: uuid.UUID
    kind: QuestionKindEnum = QuestionKindEnum.SINGLE
    marks: float = Field(gt=0)
    negative_marks: float = Field(default=0.0, ge=0)
    option_count: int | None = Field(default=None, ge=1)
    correct_options: frozenset[int]

    model_config = {"extra": "forbid", "frozen": True}

    @model_validator(mode="after")
    def _check_correct_options(self) -> "QuestionDefinition":
        if not self.correct_options:
            raise ValueError("a question needs at least one correct option")
        if self.kind == QuestionKindEnum.SINGLE and len(self.correct_options) != 1:
            raise ValueError("single-select questions have exactly one correct option")
        if self.option_count is not None and any(
            i < 0 or i >= self.option_count for i in self.correct_options
        ):
            raise ValueError("correct option index out of range")
        return self


class QuizDefinition(BaseModel):
    """Read-only view of a quiz as far as attempts and scoring are concerned."""

    id: uuid.UUID
    subject_id: uuid.UUID | None = None
    duration_minutes: int = Field(gt=0)
    max_attempts: int | None = Field(default=None, ge=1)  # None → unbounded
    pass_threshold: float = Field(ge=0, le=100)
    available_from: datetime | None = None
    available_to: datetime | None = None
    is_active: bool = True
    questions: tuple[QuestionDefinition, ...]

    model_config = {"extra": "forbid", "frozen": True}

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes)

    def question(self, question_id: uuid.UUID) -> QuestionDefinition | None:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def is_open_at(self, moment: datetime) -> bool:
        """True if *moment* falls inside the (inclusive) availability window."""
        if self.available_from is not None and moment < self.available_from:
            return False
        if self.available_to is not None and moment > self.available_to:
            return False
        return True
