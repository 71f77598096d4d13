"""Scoring engine — pure marks / negative-marking / pass-fail computation.

Per question:
  - unattempted (no entry, or an empty selection) → 0, counted as unattempted
  - correct (selected option set equals the correct option set) → +marks
  - incorrect (any other non-empty selection) → −negative_marks

``marks_obtained`` is the plain sum of those deltas. It is **not** floored at
zero, per question or in total: aggressive negative marking is the quiz
author's policy and a negative total is reported as-is.

Pass/fail compares the unrounded percentage with the threshold; the stored
percentage is rounded to two decimals afterwards.

No I/O and no clock; the same inputs always produce the same breakdown.
"""

from __future__ import annotations

import math
import uuid
from collections.abc import Iterable, Mapping

from assessment.core.errors import ValidationError
from assessment.db.models import ResultEnum
from assessment.schemas.attempt import ScoreBreakdown
from assessment.schemas.quiz import QuestionDefinition, QuizDefinition


def normalise_selection(selection: int | Iterable[int] | None) -> frozenset[int]:
    """Coerce an API selection (index, list of indices, or None) to a set."""
    if selection is None:
        return frozenset()
    if isinstance(selection, bool):
        raise ValidationError("Selection must be option indices, not a boolean")
    if isinstance(selection, int):
        return frozenset((selection,))
    return frozenset(selection)


def is_correct(question: QuestionDefinition, selection: frozenset[int]) -> bool:
    """Exact match — for multi-select this is set equality, no partial credit."""
    return selection == question.correct_options


def question_delta(question: QuestionDefinition, selection: frozenset[int]) -> float:
    """Marks one question contributes: +marks, −negative_marks, or 0 if unanswered."""
    if not selection:
        return 0.0
    if is_correct(question, selection):
        return question.marks
    return -question.negative_marks


def raw_percentage(marks_obtained: float, total_marks: float) -> float:
    if total_marks == 0:
        return 0.0
    return marks_obtained / total_marks * 100


def percentage_of(marks_obtained: float, total_marks: float) -> float:
    """Percentage rounded to two decimals; 0 when the quiz carries no marks."""
    return round(raw_percentage(marks_obtained, total_marks), 2)


def score(
    quiz: QuizDefinition,
    answers: Mapping[uuid.UUID, Iterable[int]],
) -> ScoreBreakdown:
    """Score *answers* (question id → selected option indices) against *quiz*."""
    unknown = set(answers) - {q.id for q in quiz.questions}
    if unknown:
        raise ValidationError(
            "Answers reference questions that are not part of this quiz",
            question_ids=sorted(str(qid) for qid in unknown),
        )

    deltas: list[float] = []
    correct = incorrect = unattempted = 0

    for question in quiz.questions:
        selection = frozenset(answers.get(question.id, ()))
        if not selection:
            unattempted += 1
            continue
        if is_correct(question, selection):
            correct += 1
        else:
            incorrect += 1
        deltas.append(question_delta(question, selection))

    marks_obtained = math.fsum(deltas) + 0.0  # -0.0 → 0.0
    total_marks = math.fsum(q.marks for q in quiz.questions)
    # threshold is checked on the unrounded figure; rounding is for display only
    raw = raw_percentage(marks_obtained, total_marks)
    result = ResultEnum.PASS if raw >= quiz.pass_threshold else ResultEnum.FAIL

    return ScoreBreakdown(
        marks_obtained=marks_obtained,
        total_marks=total_marks,
        correct_count=correct,
        incorrect_count=incorrect,
        unattempted_count=unattempted,
        percentage=round(raw, 2),
        result=result,
    )
