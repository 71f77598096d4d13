"""Attempt session manager — the attempt state machine.

States::

    in_progress ──submit()──────────────▶ submitted   (submitted_at = now)
         │
         └──deadline observed──────────▶ expired     (submitted_at = expires_at)

Both terminal states carry a score computed by ``services.scoring`` from the
answers present at the moment of the transition, and are immutable after it.

Expiry is *lazy*: there is no timer. Every operation that touches an attempt
compares the stored ``expires_at`` with the injected clock and performs the
expiry transition itself when the deadline has passed. The Celery sweep in
``assessment.tasks`` only runs the same code path early.

Races are settled by the database:
  - ``start()`` inserts and lets the partial unique index on
    (user_id, quiz_id) WHERE status = 'in_progress' reject a second live
    attempt → ``Conflict``
  - terminal transitions are ``UPDATE … WHERE status = 'in_progress'``; if
    two observers race, one updates the row and the other reads back the
    winner's outcome
  - answer writes lock the attempt row (``SELECT … FOR UPDATE``)
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from assessment.core.clock import Clock, utcnow
from assessment.core.errors import (
    AttemptLimitExceeded,
    Conflict,
    Expired,
    Forbidden,
    InvalidState,
    NotAvailable,
    NotFound,
    ValidationError,
)
from assessment.db.models import Attempt, AttemptAnswer, AttemptStatusEnum, QuestionKindEnum
from assessment.schemas.attempt import (
    AttemptEligibility,
    AttemptRead,
    AttemptReport,
    QuestionReport,
    ScoreBreakdown,
)
from assessment.schemas.quiz import QuestionDefinition, QuizDefinition
from assessment.services import catalog, ranking_cache, scoring
from assessment.services.access_gate import AccessGate

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (AttemptStatusEnum.SUBMITTED, AttemptStatusEnum.EXPIRED)


# ── read-model helpers ────────────────────────────────────────────────────────


def score_of(attempt: Attempt) -> ScoreBreakdown | None:
    """The stored score of a terminal attempt (None while in progress)."""
    if attempt.result is None:
        return None
    return ScoreBreakdown(
        marks_obtained=attempt.marks_obtained,
        total_marks=attempt.total_marks,
        correct_count=attempt.correct_count,
        incorrect_count=attempt.incorrect_count,
        unattempted_count=attempt.unattempted_count,
        percentage=attempt.percentage,
        result=attempt.result,
    )


def attempt_to_read(attempt: Attempt) -> AttemptRead:
    time_spent = None
    if attempt.submitted_at is not None:
        time_spent = int((attempt.submitted_at - attempt.started_at).total_seconds())
    return AttemptRead(
        id=attempt.id,
        quiz_id=attempt.quiz_id,
        user_id=attempt.user_id,
        status=attempt.status,
        started_at=attempt.started_at,
        expires_at=attempt.expires_at,
        submitted_at=attempt.submitted_at,
        answered_count=len(attempt.answers),
        time_spent_seconds=time_spent,
        score=score_of(attempt),
    )


def _validate_selection(question: QuestionDefinition, selection: frozenset[int]) -> None:
    if any(i < 0 for i in selection):
        raise ValidationError("Option indices must be non-negative")
    if question.option_count is not None and any(
        i >= question.option_count for i in selection
    ):
        raise ValidationError(
            "Selection references an option the question does not have",
            question_id=str(question.id),
            option_count=question.option_count,
        )
    if question.kind == QuestionKindEnum.SINGLE and len(selection) > 1:
        raise ValidationError(
            "Single-select question accepts one option", question_id=str(question.id)
        )


class AttemptSessionManager:
    """Creates attempts, records answers, and drives terminal transitions."""

    def __init__(self, db: Session, gate: AccessGate, clock: Clock = utcnow) -> None:
        self.db = db
        self.gate = gate
        self.clock = clock

    # ── start ─────────────────────────────────────────────────────────────

    def start(self, user_id: uuid.UUID, quiz_id: uuid.UUID) -> Attempt:
        """Open a new in-progress attempt for *user_id* on *quiz_id*."""
        quiz = catalog.get_quiz_definition(self.db, quiz_id)

        if quiz.subject_id is not None and not self.gate.is_authorized(
            user_id, quiz.subject_id
        ):
            raise Forbidden(
                "You do not have access to this subject", subject_id=str(quiz.subject_id)
            )

        now = self.clock()
        if not quiz.is_active:
            raise NotAvailable("Quiz is not active", quiz_id=str(quiz_id))
        if not quiz.is_open_at(now):
            raise NotAvailable(
                "Quiz is outside its availability window",
                available_from=quiz.available_from.isoformat() if quiz.available_from else None,
                available_to=quiz.available_to.isoformat() if quiz.available_to else None,
            )

        # a stale live attempt is closed first so it counts toward the limit
        live = self._live_attempt(user_id, quiz_id)
        if live is not None:
            self._expire_if_overdue(live, quiz)

        if quiz.max_attempts is not None:
            used = self._terminal_count(user_id, quiz_id)
            if used >= quiz.max_attempts:
                raise AttemptLimitExceeded(
                    f"You have reached the maximum number of attempts ({quiz.max_attempts}) for this quiz",
                    max_attempts=quiz.max_attempts,
                    attempts_made=used,
                )

        attempt = Attempt(
            quiz_id=quiz_id,
            user_id=user_id,
            status=AttemptStatusEnum.IN_PROGRESS,
            started_at=now,
            expires_at=now + quiz.duration,
        )
        self.db.add(attempt)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict(
                "An attempt for this quiz is already in progress", quiz_id=str(quiz_id)
            )
        self.db.refresh(attempt)
        logger.info(
            "Attempt %s started: user=%s quiz=%s expires_at=%s",
            attempt.id, user_id, quiz_id, attempt.expires_at.isoformat(),
        )
        return attempt

    # ── answers ───────────────────────────────────────────────────────────

    def record_answer(
        self,
        attempt_id: uuid.UUID,
        question_id: uuid.UUID,
        selection: int | list[int] | None,
        user_id: uuid.UUID | None = None,
    ) -> int:
        """Overwrite the selection for one question. Returns the answered count.

        An empty selection clears the answer (the question counts as
        unattempted). Past the deadline nothing is written: the attempt is
        expired and scored on the answers it already had, then ``Expired``
        is raised.
        """
        attempt = self._load(attempt_id, user_id, lock=True)
        quiz = catalog.get_quiz_definition(self.db, attempt.quiz_id)
        question = quiz.question(question_id)
        if question is None:
            raise NotFound("Question not found in this quiz", question_id=str(question_id))

        if attempt.status != AttemptStatusEnum.IN_PROGRESS:
            raise InvalidState(
                f"Attempt is {attempt.status.value}", status=attempt.status.value
            )
        self._expire_if_overdue(attempt, quiz)
        if attempt.status == AttemptStatusEnum.SUBMITTED:
            raise InvalidState("Attempt is submitted", status=attempt.status.value)
        if attempt.status == AttemptStatusEnum.EXPIRED:
            raise Expired(
                "Attempt time is over; answers were auto-submitted",
                expired_at=attempt.expires_at.isoformat(),
            )

        chosen = scoring.normalise_selection(selection)
        _validate_selection(question, chosen)

        existing = (
            self.db.query(AttemptAnswer)
            .filter(
                AttemptAnswer.attempt_id == attempt.id,
                AttemptAnswer.question_id == question_id,
            )
            .first()
        )
        if not chosen:
            if existing is not None:
                self.db.delete(existing)
        elif existing is not None:
            existing.selection = sorted(chosen)
        else:
            self.db.add(
                AttemptAnswer(
                    attempt_id=attempt.id,
                    question_id=question_id,
                    selection=sorted(chosen),
                    answered_at=self.clock(),
                )
            )
        self.db.commit()

        return (
            self.db.query(func.count(AttemptAnswer.id))
            .filter(AttemptAnswer.attempt_id == attempt.id)
            .scalar()
        )

    # ── submit ────────────────────────────────────────────────────────────

    def submit(self, attempt_id: uuid.UUID, user_id: uuid.UUID | None = None) -> ScoreBreakdown:
        """Submit and score. Repeating the call returns the stored score."""
        attempt = self._load(attempt_id, user_id, lock=True)

        if attempt.status == AttemptStatusEnum.SUBMITTED:
            logger.debug("Attempt %s already submitted — returning stored score", attempt_id)
            return score_of(attempt)
        if attempt.status == AttemptStatusEnum.EXPIRED:
            raise self._expired_on_submit(attempt)

        quiz = catalog.get_quiz_definition(self.db, attempt.quiz_id)
        now = self.clock()
        if now >= attempt.expires_at:
            self._finalise(attempt, quiz, AttemptStatusEnum.EXPIRED, attempt.expires_at)
        else:
            self._finalise(attempt, quiz, AttemptStatusEnum.SUBMITTED, now)

        # whichever transition won (ours or a concurrent one) decides the reply
        if attempt.status == AttemptStatusEnum.SUBMITTED:
            return score_of(attempt)
        raise self._expired_on_submit(attempt)

    # ── reads ─────────────────────────────────────────────────────────────

    def get(self, attempt_id: uuid.UUID, user_id: uuid.UUID | None = None) -> Attempt:
        """Load an attempt, expiring it first if its deadline has passed."""
        attempt = self._load(attempt_id, user_id)
        self._expire_if_overdue(attempt)
        return attempt

    def list_for_user(self, user_id: uuid.UUID, skip: int = 0, limit: int = 20) -> list[Attempt]:
        """The user's attempts, newest first, with overdue ones expired."""
        overdue = (
            self.db.query(Attempt)
            .filter(
                Attempt.user_id == user_id,
                Attempt.status == AttemptStatusEnum.IN_PROGRESS,
                Attempt.expires_at <= self.clock(),
            )
            .all()
        )
        for attempt in overdue:
            self._expire_if_overdue(attempt)

        return (
            self.db.query(Attempt)
            .filter(Attempt.user_id == user_id)
            .order_by(Attempt.started_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def report(self, attempt_id: uuid.UUID, user_id: uuid.UUID | None = None) -> AttemptReport:
        """Per-question breakdown of a terminal attempt.

        Correct options are only revealed once the attempt is closed, so an
        attempt still in progress is ``InvalidState``.
        """
        attempt = self.get(attempt_id, user_id)
        if attempt.status == AttemptStatusEnum.IN_PROGRESS:
            raise InvalidState(
                "Report is available once the attempt is submitted or expired",
                status=attempt.status.value,
            )

        quiz = catalog.get_quiz_definition(self.db, attempt.quiz_id)
        answers = {a.question_id: frozenset(a.selection or ()) for a in attempt.answers}
        rows = []
        for position, question in enumerate(quiz.questions, start=1):
            selection = answers.get(question.id, frozenset())
            rows.append(
                QuestionReport(
                    question_id=question.id,
                    position=position,
                    is_answered=bool(selection),
                    is_correct=bool(selection) and scoring.is_correct(question, selection),
                    marks_obtained=scoring.question_delta(question, selection),
                    marks=question.marks,
                    negative_marks=question.negative_marks,
                    selection=sorted(selection),
                    correct_options=sorted(question.correct_options),
                )
            )
        return AttemptReport(
            attempt_id=attempt.id,
            quiz_id=attempt.quiz_id,
            status=attempt.status,
            score=score_of(attempt),
            questions=rows,
        )

    def eligibility(self, user_id: uuid.UUID, quiz_id: uuid.UUID) -> AttemptEligibility:
        """Whether ``start()`` would currently succeed, and how many attempts remain."""
        quiz = catalog.get_quiz_definition(self.db, quiz_id)

        live = self._live_attempt(user_id, quiz_id)
        if live is not None and self._expire_if_overdue(live, quiz):
            live = None

        made = self._terminal_count(user_id, quiz_id)
        left = None if quiz.max_attempts is None else max(0, quiz.max_attempts - made)

        reason = None
        if quiz.subject_id is not None and not self.gate.is_authorized(user_id, quiz.subject_id):
            reason = Forbidden.error_code
        elif not quiz.is_active or not quiz.is_open_at(self.clock()):
            reason = NotAvailable.error_code
        elif left == 0:
            reason = AttemptLimitExceeded.error_code
        elif live is not None:
            reason = Conflict.error_code

        return AttemptEligibility(
            quiz_id=quiz_id,
            attempts_made=made,
            max_attempts=quiz.max_attempts,
            attempts_left=left,
            can_attempt=reason is None,
            in_progress_attempt_id=live.id if live is not None else None,
            reason=reason,
        )

    # ── reconciliation ────────────────────────────────────────────────────

    def expire_overdue(self, limit: int = 500) -> int:
        """Close out in-progress attempts past their deadline. Returns how many."""
        overdue = (
            self.db.query(Attempt)
            .filter(
                Attempt.status == AttemptStatusEnum.IN_PROGRESS,
                Attempt.expires_at <= self.clock(),
            )
            .order_by(Attempt.expires_at)
            .limit(limit)
            .all()
        )
        quizzes: dict[uuid.UUID, QuizDefinition] = {}
        expired = 0
        for attempt in overdue:
            if attempt.quiz_id not in quizzes:
                quizzes[attempt.quiz_id] = catalog.get_quiz_definition(self.db, attempt.quiz_id)
            if self._expire_if_overdue(attempt, quizzes[attempt.quiz_id]):
                expired += 1
        return expired

    # ── internals ─────────────────────────────────────────────────────────

    def _load(
        self, attempt_id: uuid.UUID, user_id: uuid.UUID | None = None, lock: bool = False
    ) -> Attempt:
        query = self.db.query(Attempt).filter(Attempt.id == attempt_id)
        if user_id is not None:
            # attempts are private to their owner; others see 404
            query = query.filter(Attempt.user_id == user_id)
        if lock:
            query = query.with_for_update()
        attempt = query.first()
        if attempt is None:
            raise NotFound("Attempt not found", attempt_id=str(attempt_id))
        return attempt

    def _live_attempt(self, user_id: uuid.UUID, quiz_id: uuid.UUID) -> Attempt | None:
        return (
            self.db.query(Attempt)
            .filter(
                Attempt.user_id == user_id,
                Attempt.quiz_id == quiz_id,
                Attempt.status == AttemptStatusEnum.IN_PROGRESS,
            )
            .first()
        )

    def _terminal_count(self, user_id: uuid.UUID, quiz_id: uuid.UUID) -> int:
        return (
            self.db.query(func.count(Attempt.id))
            .filter(
                Attempt.user_id == user_id,
                Attempt.quiz_id == quiz_id,
                Attempt.status.in_(TERMINAL_STATUSES),
            )
            .scalar()
        )

    def _expire_if_overdue(self, attempt: Attempt, quiz: QuizDefinition | None = None) -> bool:
        """Lazy expiry. True if this call moved the attempt to ``expired``."""
        if attempt.status != AttemptStatusEnum.IN_PROGRESS:
            return False
        if self.clock() < attempt.expires_at:
            return False
        if quiz is None:
            quiz = catalog.get_quiz_definition(self.db, attempt.quiz_id)
        return self._finalise(attempt, quiz, AttemptStatusEnum.EXPIRED, attempt.expires_at)

    def _finalise(
        self,
        attempt: Attempt,
        quiz: QuizDefinition,
        status: AttemptStatusEnum,
        submitted_at: datetime,
    ) -> bool:
        """Score and move to a terminal state. False if another writer got there first."""
        answers = {a.question_id: frozenset(a.selection or ()) for a in attempt.answers}
        breakdown = scoring.score(quiz, answers)

        result = self.db.execute(
            update(Attempt)
            .where(
                Attempt.id == attempt.id,
                Attempt.status == AttemptStatusEnum.IN_PROGRESS,
            )
            .values(
                status=status,
                submitted_at=submitted_at,
                marks_obtained=breakdown.marks_obtained,
                total_marks=breakdown.total_marks,
                correct_count=breakdown.correct_count,
                incorrect_count=breakdown.incorrect_count,
                unattempted_count=breakdown.unattempted_count,
                percentage=breakdown.percentage,
                result=breakdown.result,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.rollback()
            self.db.refresh(attempt)
            logger.info("Attempt %s was finalised concurrently as %s", attempt.id, attempt.status.value)
            return False

        self.db.commit()
        self.db.refresh(attempt)
        ranking_cache.invalidate()
        logger.info(
            "Attempt %s %s: %.2f/%.2f (%.2f%%, %s)",
            attempt.id, status.value, breakdown.marks_obtained, breakdown.total_marks,
            breakdown.percentage, breakdown.result.value,
        )
        return True

    @staticmethod
    def _expired_on_submit(attempt: Attempt) -> InvalidState:
        return InvalidState(
            "Attempt expired and was auto-submitted; explicit submit is rejected",
            status=attempt.status.value,
            expired_at=attempt.expires_at.isoformat(),
        )
