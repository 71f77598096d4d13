"""Attempt lifecycle routes: start, answer, submit, read, report."""

import logging
import uuid

from fastapi import APIRouter, Depends, Query, status

from assessment.api.deps import get_attempt_manager, get_current_caller
from assessment.core.security import Caller
from assessment.schemas.attempt import (
    AnswerRecorded,
    AnswerSubmit,
    AttemptEligibility,
    AttemptRead,
    AttemptReport,
    AttemptStart,
    ScoreBreakdown,
)
from assessment.services.attempts import AttemptSessionManager, attempt_to_read

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/start", response_model=AttemptRead, status_code=status.HTTP_201_CREATED)
def start_attempt(
    body: AttemptStart,
    caller: Caller = Depends(get_current_caller),
    manager: AttemptSessionManager = Depends(get_attempt_manager),
):
    """Open a timed attempt. 403 gated, 409 already in progress, 422 limit / window."""
    attempt = manager.start(caller.user_id, body.quiz_id)
    return attempt_to_read(attempt)


@router.patch("/{attempt_id}/answer", response_model=AnswerRecorded)
def record_answer(
    attempt_id: uuid.UUID,
    body: AnswerSubmit,
    caller: Caller = Depends(get_current_caller),
    manager: AttemptSessionManager = Depends(get_attempt_manager),
):
    answered = manager.record_answer(
        attempt_id, body.question_id, body.selection, user_id=caller.user_id
    )
    return AnswerRecorded(
        attempt_id=attempt_id, question_id=body.question_id, answered_count=answered
    )


@router.post("/{attempt_id}/submit", response_model=ScoreBreakdown)
def submit_attempt(
    attempt_id: uuid.UUID,
    caller: Caller = Depends(get_current_caller),
    manager: AttemptSessionManager = Depends(get_attempt_manager),
):
    """Score and close the attempt. Resubmitting returns the same score."""
    return manager.submit(attempt_id, user_id=caller.user_id)


@router.get("/quiz/{quiz_id}/eligibility", response_model=AttemptEligibility)
def attempt_eligibility(
    quiz_id: uuid.UUID,
    caller: Caller = Depends(get_current_caller),
    manager: AttemptSessionManager = Depends(get_attempt_manager),
):
    return manager.eligibility(caller.user_id, quiz_id)


@router.get("/", response_model=list[AttemptRead])
def list_my_attempts(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(get_current_caller),
    manager: AttemptSessionManager = Depends(get_attempt_manager),
):
    """Current user's attempts, newest first."""
    attempts = manager.list_for_user(caller.user_id, skip=skip, limit=limit)
    return [attempt_to_read(a) for a in attempts]


@router.get("/{attempt_id}", response_model=AttemptRead)
def get_attempt(
    attempt_id: uuid.UUID,
    caller: Caller = Depends(get_current_caller),
    manager: AttemptSessionManager = Depends(get_attempt_manager),
):
    return attempt_to_read(manager.get(attempt_id, user_id=caller.user_id))


@router.get("/{attempt_id}/report", response_model=AttemptReport)
def get_attempt_report(
    attempt_id: uuid.UUID,
    caller: Caller = Depends(get_current_caller),
    manager: AttemptSessionManager = Depends(get_attempt_manager),
):
    """Per-question results. 409 while the attempt is still in progress."""
    return manager.report(attempt_id, user_id=caller.user_id)
