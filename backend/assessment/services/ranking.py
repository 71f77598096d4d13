"""Ranking aggregator — comparative standing over terminal attempts.

Only ``submitted`` and ``expired`` attempts count; in-progress attempts are
invisible here. The aggregation key is a parameter (``RankingScope``): every
quiz, one quiz, or every quiz of one subject.

Order (a strict total order, so ranks are unique ordinals 1..N):
  1. average percentage, descending
  2. total marks obtained, descending
  3. earliest first submission, ascending
  4. user id, ascending — last resort so equal histories still sort stably

``average_score`` is the mean of the stored attempt percentages, which are
already rounded to two decimals when the attempt is scored. The mean is then
rounded again for display, but rows are sorted on the unrounded mean.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from assessment.core.errors import ValidationError
from assessment.db.models import Attempt, AttemptStatusEnum, Quiz, ResultEnum
from assessment.schemas.ranking import NeighborWindow, RankingEntry, ScopeSummary
from assessment.services import ranking_cache

logger = logging.getLogger(__name__)

_TERMINAL = (AttemptStatusEnum.SUBMITTED, AttemptStatusEnum.EXPIRED)


@dataclass(frozen=True)
class RankingScope:
    """``all``, ``quiz:<uuid>`` or ``subject:<uuid>``."""

    kind: str = "all"
    target_id: uuid.UUID | None = None

    @classmethod
    def parse(cls, raw: str | None) -> "RankingScope":
        if not raw or raw == "all":
            return cls()
        kind, _, target = raw.partition(":")
        if kind not in ("quiz", "subject") or not target:
            raise ValidationError(
                "Scope must be 'all', 'quiz:<id>' or 'subject:<id>'", scope=raw
            )
        try:
            return cls(kind=kind, target_id=uuid.UUID(target))
        except ValueError:
            raise ValidationError("Scope id is not a valid UUID", scope=raw)

    def __str__(self) -> str:
        if self.target_id is None:
            return self.kind
        return f"{self.kind}:{self.target_id}"


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


class RankingAggregator:
    """Read-only aggregation over the ``attempts`` table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _scoped(self, stmt, scope: RankingScope):
        stmt = stmt.select_from(Attempt).where(Attempt.status.in_(_TERMINAL))
        if scope.kind == "quiz":
            stmt = stmt.where(Attempt.quiz_id == scope.target_id)
        elif scope.kind == "subject":
            stmt = stmt.join(Quiz, Quiz.id == Attempt.quiz_id).where(
                Quiz.subject_id == scope.target_id
            )
        return stmt

    # ── aggregation ───────────────────────────────────────────────────────

    def aggregate(self, scope: RankingScope) -> list[RankingEntry]:
        """Every user with at least one terminal attempt in *scope*, ranked."""
        label = str(scope)
        generation = ranking_cache.current_generation()
        if generation is not None:
            cached = ranking_cache.cache_get(label, generation)
            if cached is not None:
                return [RankingEntry.model_validate(row) for row in cached]

        entries = self._compute(scope)

        if generation is not None:
            ranking_cache.cache_set(
                label, generation, [e.model_dump(mode="json") for e in entries]
            )
        return entries

    def _compute(self, scope: RankingScope) -> list[RankingEntry]:
        stmt = self._scoped(
            select(
                Attempt.user_id,
                func.count(Attempt.id).label("attempts"),
                func.avg(Attempt.percentage).label("average"),
                func.max(Attempt.percentage).label("best"),
                func.sum(Attempt.marks_obtained).label("marks"),
                func.sum(case((Attempt.result == ResultEnum.PASS, 1), else_=0)).label("passed"),
                func.sum(Attempt.correct_count).label("correct"),
                func.sum(Attempt.incorrect_count).label("incorrect"),
                func.min(Attempt.submitted_at).label("first_submitted_at"),
            ),
            scope,
        ).group_by(Attempt.user_id)
        rows = self.db.execute(stmt).all()

        rows = sorted(
            rows,
            key=lambda r: (
                -(r.average or 0.0),
                -(r.marks or 0.0),
                r.first_submitted_at,
                str(r.user_id),
            ),
        )
        entries = [
            RankingEntry(
                user_id=r.user_id,
                rank=position,
                average_score=round(r.average or 0.0, 2),
                best_score=r.best or 0.0,
                total_marks_obtained=(r.marks or 0.0) + 0.0,
                total_attempts=r.attempts,
                pass_rate=round(_ratio(r.passed or 0, r.attempts), 4),
                accuracy=round(
                    _ratio(r.correct or 0, (r.correct or 0) + (r.incorrect or 0)), 4
                ),
                first_submitted_at=r.first_submitted_at,
            )
            for position, r in enumerate(rows, start=1)
        ]
        logger.debug("Ranking computed for %s: %d users", scope, len(entries))
        return entries

    # ── views ─────────────────────────────────────────────────────────────

    def neighbors(
        self, user_id: uuid.UUID, scope: RankingScope, window_size: int
    ) -> NeighborWindow:
        """The user's entry plus up to *window_size* entries on each side (no wrap)."""
        if window_size < 0:
            raise ValidationError("Window size must be non-negative", window=window_size)
        entries = self.aggregate(scope)
        index = next((i for i, e in enumerate(entries) if e.user_id == user_id), None)
        if index is None:
            return NeighborWindow(scope=str(scope), total_users=len(entries))
        return NeighborWindow(
            scope=str(scope),
            rank=entries[index].rank,
            total_users=len(entries),
            entry=entries[index],
            above=entries[max(0, index - window_size):index],
            below=entries[index + 1:index + 1 + window_size],
        )

    def top(self, scope: RankingScope, limit: int) -> list[RankingEntry]:
        if limit < 1:
            raise ValidationError("Limit must be at least 1", limit=limit)
        return self.aggregate(scope)[:limit]

    def summary(self, scope: RankingScope) -> ScopeSummary:
        stmt = self._scoped(
            select(
                func.count(Attempt.id).label("attempts"),
                func.count(func.distinct(Attempt.user_id)).label("users"),
                func.avg(Attempt.percentage).label("average"),
                func.sum(case((Attempt.result == ResultEnum.PASS, 1), else_=0)).label("passed"),
                func.sum(Attempt.marks_obtained).label("marks"),
                func.sum(Attempt.total_marks).label("possible"),
            ),
            scope,
        )
        row = self.db.execute(stmt).one()
        return ScopeSummary(
            scope=str(scope),
            total_attempts=row.attempts,
            total_users=row.users,
            average_score=round(row.average or 0.0, 2),
            pass_rate=round(_ratio(row.passed or 0, row.attempts), 4),
            total_marks_obtained=(row.marks or 0.0) + 0.0,
            total_marks_possible=row.possible or 0.0,
        )
