"""Tests for ranking aggregation, neighbour windows and summaries."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import Session

from assessment.core.errors import ValidationError
from assessment.db.models import Attempt, AttemptStatusEnum, ResultEnum
from assessment.services.ranking import RankingAggregator, RankingScope

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def _terminal(
    db: Session,
    quiz,
    user_id: uuid.UUID,
    percentage: float,
    marks: float,
    submitted_after: timedelta = timedelta(minutes=10),
    correct: int = 1,
    incorrect: int = 0,
    status: AttemptStatusEnum = AttemptStatusEnum.SUBMITTED,
) -> Attempt:
    attempt = Attempt(
        quiz_id=quiz.id,
        user_id=user_id,
        status=status,
        started_at=T0,
        expires_at=T0 + timedelta(hours=1),
        submitted_at=T0 + submitted_after,
        marks_obtained=marks,
        total_marks=50.0,
        correct_count=correct,
        incorrect_count=incorrect,
        unattempted_count=0,
        percentage=percentage,
        result=ResultEnum.PASS if percentage >= 50 else ResultEnum.FAIL,
    )
    db.add(attempt)
    db.commit()
    return attempt


# ── Ordering ───────────────────────────────────────────────────────────────────


class TestOrdering:
    def test_ties_on_average_broken_by_total_marks(self, db, make_quiz):
        quiz = make_quiz()
        a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        _terminal(db, quiz, a, 80, 40)
        _terminal(db, quiz, b, 80, 45)
        _terminal(db, quiz, c, 60, 30)

        entries = RankingAggregator(db).aggregate(RankingScope())
        assert [(e.user_id, e.rank) for e in entries] == [(b, 1), (a, 2), (c, 3)]

    def test_earlier_first_submission_wins_remaining_tie(self, db, make_quiz):
        quiz = make_quiz()
        late, early = uuid.uuid4(), uuid.uuid4()
        _terminal(db, quiz, late, 70, 35, submitted_after=timedelta(minutes=20))
        _terminal(db, quiz, early, 70, 35, submitted_after=timedelta(minutes=5))

        entries = RankingAggregator(db).aggregate(RankingScope())
        assert [e.user_id for e in entries] == [early, late]
        assert [e.rank for e in entries] == [1, 2]

    def test_identical_histories_still_get_unique_ranks(self, db, make_quiz):
        quiz = make_quiz()
        users = [uuid.uuid4() for _ in range(4)]
        for u in users:
            _terminal(db, quiz, u, 50, 25)
        entries = RankingAggregator(db).aggregate(RankingScope())
        assert [e.rank for e in entries] == [1, 2, 3, 4]
        assert [e.user_id for e in entries] == sorted(users, key=str)

    def test_sorted_on_unrounded_mean_of_stored_percentages(self, db, make_quiz):
        quiz = make_quiz()
        ahead, behind = uuid.uuid4(), uuid.uuid4()
        _terminal(db, quiz, ahead, 10.0, 5)
        _terminal(db, quiz, ahead, 10.01, 5)
        _terminal(db, quiz, behind, 10.0, 20)
        _terminal(db, quiz, behind, 10.0, 20)

        entries = RankingAggregator(db).aggregate(RankingScope())
        assert [e.user_id for e in entries] == [ahead, behind]
        assert entries[0].average_score in (10.0, 10.01)

    def test_in_progress_attempts_are_ignored(self, db, make_quiz):
        quiz = make_quiz()
        u = uuid.uuid4()
        db.add(
            Attempt(
                quiz_id=quiz.id,
                user_id=u,
                status=AttemptStatusEnum.IN_PROGRESS,
                started_at=T0,
                expires_at=T0 + timedelta(hours=1),
            )
        )
        db.commit()
        assert RankingAggregator(db).aggregate(RankingScope()) == []


# ── Aggregates ─────────────────────────────────────────────────────────────────


class TestAggregates:
    def test_per_user_statistics(self, db, make_quiz):
        quiz = make_quiz()
        u = uuid.uuid4()
        _terminal(db, quiz, u, 80, 40, correct=8, incorrect=2, submitted_after=timedelta(minutes=3))
        _terminal(
            db, quiz, u, 30, 15, correct=2, incorrect=6,
            status=AttemptStatusEnum.EXPIRED, submitted_after=timedelta(minutes=9),
        )

        (entry,) = RankingAggregator(db).aggregate(RankingScope())
        assert entry.total_attempts == 2
        assert entry.average_score == 55.0
        assert entry.best_score == 80.0
        assert entry.total_marks_obtained == 55.0
        assert entry.pass_rate == 0.5
        assert entry.accuracy == round(10 / 18, 4)
        assert entry.first_submitted_at == T0 + timedelta(minutes=3)

    def test_accuracy_zero_without_graded_answers(self, db, make_quiz):
        quiz = make_quiz()
        _terminal(db, quiz, uuid.uuid4(), 0, 0, correct=0, incorrect=0)
        (entry,) = RankingAggregator(db).aggregate(RankingScope())
        assert entry.accuracy == 0.0

    def test_negative_totals_are_kept(self, db, make_quiz):
        quiz = make_quiz()
        _terminal(db, quiz, uuid.uuid4(), -20, -10, correct=0, incorrect=5)
        (entry,) = RankingAggregator(db).aggregate(RankingScope())
        assert entry.total_marks_obtained == -10.0
        assert entry.average_score == -20.0


# ── Scopes ─────────────────────────────────────────────────────────────────────


class TestScopes:
    def test_quiz_and_subject_scopes(self, db, make_quiz, make_subject):
        subject = make_subject()
        quiz_in_subject = make_quiz(subject=subject)
        loose_quiz = make_quiz()
        a, b = uuid.uuid4(), uuid.uuid4()
        _terminal(db, quiz_in_subject, a, 90, 45)
        _terminal(db, loose_quiz, b, 95, 47)

        ranking = RankingAggregator(db)
        assert [e.user_id for e in ranking.aggregate(RankingScope())] == [b, a]
        assert [e.user_id for e in ranking.aggregate(RankingScope("quiz", loose_quiz.id))] == [b]
        assert [e.user_id for e in ranking.aggregate(RankingScope("subject", subject.id))] == [a]

    def test_parse(self):
        target = uuid.uuid4()
        assert RankingScope.parse("all") == RankingScope()
        assert RankingScope.parse(None) == RankingScope()
        assert RankingScope.parse(f"quiz:{target}") == RankingScope("quiz", target)
        assert str(RankingScope.parse(f"subject:{target}")) == f"subject:{target}"

    @pytest.mark.parametrize("raw", ["team:1", "quiz:", "quiz:not-a-uuid", "subject"])
    def test_parse_rejects_malformed(self, raw):
        with pytest.raises(ValidationError):
            RankingScope.parse(raw)


# ── Neighbours ─────────────────────────────────────────────────────────────────


class TestNeighbors:
    def _seed(self, db, make_quiz, n=7):
        quiz = make_quiz()
        users = [uuid.uuid4() for _ in range(n)]
        for i, u in enumerate(users):
            _terminal(db, quiz, u, 90 - i * 10, 45 - i * 5)
        return users

    def test_window_in_the_middle(self, db, make_quiz):
        users = self._seed(db, make_quiz)
        window = RankingAggregator(db).neighbors(users[3], RankingScope(), 2)
        assert window.rank == 4
        assert window.total_users == 7
        assert [e.user_id for e in window.above] == users[1:3]
        assert [e.user_id for e in window.below] == users[4:6]

    def test_window_does_not_wrap(self, db, make_quiz):
        users = self._seed(db, make_quiz)
        ranking = RankingAggregator(db)

        top = ranking.neighbors(users[0], RankingScope(), 3)
        assert top.above == []
        assert [e.user_id for e in top.below] == users[1:4]

        bottom = ranking.neighbors(users[-1], RankingScope(), 3)
        assert [e.user_id for e in bottom.above] == users[3:6]
        assert bottom.below == []

    def test_user_without_attempts(self, db, make_quiz):
        self._seed(db, make_quiz, n=2)
        window = RankingAggregator(db).neighbors(uuid.uuid4(), RankingScope(), 3)
        assert window.rank is None
        assert window.entry is None
        assert window.total_users == 2

    def test_negative_window_rejected(self, db):
        with pytest.raises(ValidationError):
            RankingAggregator(db).neighbors(uuid.uuid4(), RankingScope(), -1)


# ── Summary / HTTP ─────────────────────────────────────────────────────────────


class TestSummaryAndRoutes:
    def test_summary(self, db, make_quiz):
        quiz = make_quiz()
        _terminal(db, quiz, uuid.uuid4(), 80, 40)
        _terminal(db, quiz, uuid.uuid4(), 40, 20)
        summary = RankingAggregator(db).summary(RankingScope())
        assert summary.total_attempts == 2
        assert summary.total_users == 2
        assert summary.average_score == 60.0
        assert summary.pass_rate == 0.5
        assert summary.total_marks_obtained == 60.0
        assert summary.total_marks_possible == 100.0

    def test_empty_summary(self, db):
        summary = RankingAggregator(db).summary(RankingScope())
        assert summary.total_attempts == 0
        assert summary.average_score == 0.0

    def test_me_endpoint(self, client, db, make_quiz, learner_id, learner_headers):
        quiz = make_quiz()
        _terminal(db, quiz, uuid.uuid4(), 90, 45)
        _terminal(db, quiz, learner_id, 70, 35)
        resp = client.get(f"/api/ranking/me?scope=quiz:{quiz.id}&window=1", headers=learner_headers)
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["rank"] == 2
        assert data["total_users"] == 2
        assert len(data["above"]) == 1
        assert data["below"] == []

    def test_top_endpoint(self, client, db, make_quiz, learner_headers):
        quiz = make_quiz()
        for pct in (60, 90, 75):
            _terminal(db, quiz, uuid.uuid4(), pct, pct / 2)
        resp = client.get("/api/ranking/top?limit=2", headers=learner_headers)
        assert [e["average_score"] for e in resp.json()] == [90.0, 75.0]

    def test_bad_scope_is_422(self, client, learner_headers):
        resp = client.get("/api/ranking/me?scope=planet:earth", headers=learner_headers)
        assert resp.status_code == 422
        assert resp.json()["error_code"] == "validation_error"

    def test_submitted_attempt_appears_in_ranking(self, client, make_quiz, learner_headers):
        quiz = make_quiz()
        attempt_id = client.post(
            "/api/attempt/start", json={"quiz_id": str(quiz.id)}, headers=learner_headers
        ).json()["id"]
        client.patch(
            f"/api/attempt/{attempt_id}/answer",
            json={"question_id": str(quiz.questions[0].id), "selection": 0},
            headers=learner_headers,
        )
        client.post(f"/api/attempt/{attempt_id}/submit", headers=learner_headers)

        data = client.get("/api/ranking/me", headers=learner_headers).json()
        assert data["rank"] == 1
        assert data["entry"]["average_score"] == 50.0
        assert data["entry"]["pass_rate"] == 1.0
