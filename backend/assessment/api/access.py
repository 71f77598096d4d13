"""Subject access request routes."""

import logging
import uuid

from fastapi import APIRouter, Depends, Query, status

from assessment.api.deps import get_access_gate, get_current_caller
from assessment.core.security import Caller
from assessment.db.models import AccessRequestStatusEnum
from assessment.schemas.access import (
    AccessCheck,
    AccessDecision,
    AccessRequestCreate,
    AccessRequestPage,
    AccessRequestRead,
)
from assessment.services.access_gate import AccessGate

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=AccessRequestRead, status_code=status.HTTP_201_CREATED)
def create_request(
    body: AccessRequestCreate,
    caller: Caller = Depends(get_current_caller),
    gate: AccessGate = Depends(get_access_gate),
):
    """File a pending request for a gated subject. 409 if one is already pending."""
    return gate.request(caller.user_id, body.subject_id, body.email, body.phone)


@router.get("/", response_model=AccessRequestPage)
def list_requests(
    status_filter: AccessRequestStatusEnum | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(get_current_caller),
    gate: AccessGate = Depends(get_access_gate),
):
    """Admin: list requests, optionally filtered by status."""
    items, total, total_pages = gate.list_requests(
        caller, status=status_filter, page=page, limit=limit
    )
    return AccessRequestPage(
        items=[AccessRequestRead.model_validate(r) for r in items],
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages,
    )


@router.post("/{request_id}/decide", response_model=AccessRequestRead)
def decide_request(
    request_id: uuid.UUID,
    body: AccessDecision,
    caller: Caller = Depends(get_current_caller),
    gate: AccessGate = Depends(get_access_gate),
):
    """Admin: approve or reject a pending request. 409 if already decided."""
    return gate.decide(request_id, body.outcome, caller, notes=body.notes)


@router.get("/access/{subject_id}", response_model=AccessCheck)
def check_access(
    subject_id: uuid.UUID,
    caller: Caller = Depends(get_current_caller),
    gate: AccessGate = Depends(get_access_gate),
):
    return AccessCheck(
        subject_id=subject_id, authorized=gate.is_authorized(caller.user_id, subject_id)
    )
