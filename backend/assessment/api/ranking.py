"""Ranking and comparison routes."""

from fastapi import APIRouter, Depends, Query

from assessment.api.deps import get_current_caller, get_ranking
from assessment.config import settings
from assessment.core.security import Caller
from assessment.schemas.ranking import NeighborWindow, RankingEntry, ScopeSummary
from assessment.services.ranking import RankingAggregator, RankingScope

router = APIRouter()

_SCOPE_HELP = "'all', 'quiz:<id>' or 'subject:<id>'"


@router.get("/me", response_model=NeighborWindow)
def my_ranking(
    scope: str = Query("all", description=_SCOPE_HELP),
    window: int | None = Query(None, ge=0, le=50),
    caller: Caller = Depends(get_current_caller),
    ranking: RankingAggregator = Depends(get_ranking),
):
    """Own rank plus the learners immediately above and below."""
    size = settings.RANKING_WINDOW_SIZE if window is None else window
    return ranking.neighbors(caller.user_id, RankingScope.parse(scope), size)


@router.get("/top", response_model=list[RankingEntry])
def top_performers(
    scope: str = Query("all", description=_SCOPE_HELP),
    limit: int | None = Query(None, ge=1, le=100),
    caller: Caller = Depends(get_current_caller),
    ranking: RankingAggregator = Depends(get_ranking),
):
    return ranking.top(RankingScope.parse(scope), limit or settings.RANKING_TOP_LIMIT)


@router.get("/summary", response_model=ScopeSummary)
def scope_summary(
    scope: str = Query("all", description=_SCOPE_HELP),
    caller: Caller = Depends(get_current_caller),
    ranking: RankingAggregator = Depends(get_ranking),
):
    return ranking.summary(RankingScope.parse(scope))
