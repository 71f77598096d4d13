"""Ranking / comparison schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel


class RankingEntry(BaseModel):
    """One learner's standing inside a scope."""

    user_id: uuid.UUID
    rank: int
    average_score: float
    best_score: float
    total_marks_obtained: float
    total_attempts: int
    pass_rate: float  # fraction 0‥1
    accuracy: float  # fraction 0‥1
    first_submitted_at: datetime


class NeighborWindow(BaseModel):
    """GET /api/ranking/me — own entry plus the learners around it."""

    scope: str
    rank: int | None = None
    total_users: int
    entry: RankingEntry | None = None
    above: list[RankingEntry] = []
    below: list[RankingEntry] = []


class ScopeSummary(BaseModel):
    """Aggregate figures for everybody in a scope."""

    scope: str
    total_attempts: int
    total_users: int
    average_score: float
    pass_rate: float
    total_marks_obtained: float
    total_marks_possible: float
