"""Quiz catalog adapter.

Quiz content is authored and stored by the content service; this module only
reads the ``quizzes`` / ``questions`` rows and converts them into validated
``QuizDefinition`` values. Content the core cannot score safely (no pass
threshold, inconsistent correct options) is rejected here, at the boundary.
"""

import logging
import uuid

import pydantic
from sqlalchemy.orm import Session, selectinload

from assessment.core.errors import InvalidConfiguration, NotFound
from assessment.db.models import Quiz
from assessment.schemas.quiz import QuestionDefinition, QuizDefinition

logger = logging.getLogger(__name__)


def _to_definition(quiz: Quiz) -> QuizDefinition:
    if quiz.pass_threshold is None:
        raise InvalidConfiguration(
            "Quiz has no pass threshold configured", quiz_id=str(quiz.id)
        )
    try:
        return QuizDefinition(
            id=quiz.id,
            subject_id=quiz.subject_id,
            duration_minutes=quiz.duration_minutes,
            max_attempts=quiz.max_attempts,
            pass_threshold=quiz.pass_threshold,
            available_from=quiz.available_from,
            available_to=quiz.available_to,
            is_active=quiz.is_active,
            questions=tuple(
                QuestionDefinition(
                    id=q.id,
                    kind=q.kind,
                    marks=q.marks,
                    negative_marks=q.negative_marks,
                    option_count=len(q.options) if q.options else None,
                    correct_options=frozenset(q.correct_options or ()),
                )
                for q in quiz.questions
            ),
        )
    except pydantic.ValidationError as exc:
        logger.warning("Quiz %s failed definition checks: %s", quiz.id, exc)
        raise InvalidConfiguration(
            "Quiz definition is invalid",
            quiz_id=str(quiz.id),
            errors=[e["msg"] for e in exc.errors()],
        ) from exc


def get_quiz_definition(db: Session, quiz_id: uuid.UUID) -> QuizDefinition:
    """Return the typed definition of *quiz_id*, or raise ``NotFound``."""
    quiz = (
        db.query(Quiz)
        .options(selectinload(Quiz.questions))
        .filter(Quiz.id == quiz_id)
        .first()
    )
    if quiz is None:
        raise NotFound("Quiz not found", quiz_id=str(quiz_id))
    return _to_definition(quiz)
