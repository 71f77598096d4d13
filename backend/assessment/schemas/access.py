"""Subject access request schemas."""

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, EmailStr, Field

from assessment.db.models import AccessRequestStatusEnum


class DecisionOutcome(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class AccessRequestCreate(BaseModel):
    """POST /api/subject-request"""

    subject_id: uuid.UUID
    email: EmailStr
    phone: str | None = Field(default=None, max_length=50)

    model_config = {"extra": "forbid"}


class AccessDecision(BaseModel):
    """POST /api/subject-request/{id}/decide"""

    outcome: DecisionOutcome
    notes: str | None = Field(default=None, max_length=500)

    model_config = {"extra": "forbid"}


class AccessRequestRead(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    subject_id: uuid.UUID
    status: AccessRequestStatusEnum
    email: str
    phone: str | None = None
    notes: str | None = None
    decided_by: uuid.UUID | None = None
    created_at: datetime
    decided_at: datetime | None = None

    model_config = {"from_attributes": True}


class AccessRequestPage(BaseModel):
    """Paginated admin listing."""

    items: list[AccessRequestRead]
    total: int
    page: int
    limit: int
    total_pages: int


class AccessCheck(BaseModel):
    subject_id: uuid.UUID
    authorized: bool
