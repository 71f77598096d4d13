"""Access gate — who may start attempts on a subject's quizzes.

Subjects flagged ``requires_approval`` by the content service are gated: a
learner files a request, an administrator approves or rejects it once.

Integrity rules are enforced by the database, not by check-then-write:
  - one *pending* request per (user, subject) → partial unique index;
    a second insert fails and surfaces as ``Conflict``
  - decisions are a compare-and-update on ``status = 'pending'``; of two
    concurrent decisions exactly one updates a row, the other gets
    ``InvalidState``
"""

import logging
import math
import uuid

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from assessment.config import settings
from assessment.core.clock import Clock, utcnow
from assessment.core.errors import Conflict, Forbidden, InvalidState, NotFound, ValidationError
from assessment.core.security import Caller, user_has_capability
from assessment.db.models import AccessRequestStatusEnum, Subject, SubjectAccessRequest
from assessment.schemas.access import DecisionOutcome

logger = logging.getLogger(__name__)

_OUTCOME_STATUS = {
    DecisionOutcome.APPROVE: AccessRequestStatusEnum.APPROVED,
    DecisionOutcome.REJECT: AccessRequestStatusEnum.REJECTED,
}


class AccessGate:
    """Request / decide / authorize workflow for gated subjects."""

    def __init__(self, db: Session, clock: Clock = utcnow) -> None:
        self.db = db
        self.clock = clock

    # ── queries ───────────────────────────────────────────────────────────

    def is_authorized(self, user_id: uuid.UUID, subject_id: uuid.UUID) -> bool:
        """True if the subject is ungated or the user holds an approved request."""
        subject = self.db.get(Subject, subject_id)
        if subject is None:
            return False
        if not subject.requires_approval:
            return True
        return self._has_approved(user_id, subject_id)

    def get(self, request_id: uuid.UUID) -> SubjectAccessRequest:
        req = self.db.get(SubjectAccessRequest, request_id)
        if req is None:
            raise NotFound("Access request not found", request_id=str(request_id))
        return req

    def list_requests(
        self,
        caller: Caller,
        status: AccessRequestStatusEnum | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[SubjectAccessRequest], int, int]:
        """Admin listing, newest first. Returns (items, total, total_pages)."""
        self._require_admin(caller)
        query = self.db.query(SubjectAccessRequest)
        if status is not None:
            query = query.filter(SubjectAccessRequest.status == status)
        total = query.count()
        items = (
            query.order_by(SubjectAccessRequest.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total, max(1, math.ceil(total / limit))

    # ── commands ──────────────────────────────────────────────────────────

    def request(
        self,
        user_id: uuid.UUID,
        subject_id: uuid.UUID,
        email: str,
        phone: str | None = None,
    ) -> SubjectAccessRequest:
        """File a pending access request for *subject_id*."""
        subject = self.db.get(Subject, subject_id)
        if subject is None:
            raise NotFound("Subject not found", subject_id=str(subject_id))
        if not subject.requires_approval:
            raise ValidationError(
                "This subject does not require approval", subject_id=str(subject_id)
            )
        if self._has_approved(user_id, subject_id):
            raise Conflict("You already have access to this subject")

        req = SubjectAccessRequest(
            user_id=user_id,
            subject_id=subject_id,
            status=AccessRequestStatusEnum.PENDING,
            email=email,
            phone=phone,
            created_at=self.clock(),
        )
        self.db.add(req)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict(
                "You already have a pending request for this subject",
                subject_id=str(subject_id),
            )
        self.db.refresh(req)
        logger.info("Access request %s filed: user=%s subject=%s", req.id, user_id, subject_id)
        return req

    def decide(
        self,
        request_id: uuid.UUID,
        outcome: DecisionOutcome,
        caller: Caller,
        notes: str | None = None,
    ) -> SubjectAccessRequest:
        """Approve or reject a pending request — exactly once."""
        self._require_admin(caller)

        values = {
            "status": _OUTCOME_STATUS[outcome],
            "decided_at": self.clock(),
            "decided_by": caller.user_id,
        }
        if notes is not None:
            values["notes"] = notes

        result = self.db.execute(
            update(SubjectAccessRequest)
            .where(
                SubjectAccessRequest.id == request_id,
                SubjectAccessRequest.status == AccessRequestStatusEnum.PENDING,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.rollback()
            req = self.get(request_id)
            raise InvalidState(
                f"Request already {req.status.value}",
                request_id=str(request_id),
                status=req.status.value,
            )
        self.db.commit()

        req = self.get(request_id)
        self.db.refresh(req)
        logger.info(
            "Access request %s %s by %s", request_id, req.status.value, caller.user_id
        )
        return req

    # ── helpers ───────────────────────────────────────────────────────────

    def _has_approved(self, user_id: uuid.UUID, subject_id: uuid.UUID) -> bool:
        return (
            self.db.query(SubjectAccessRequest.id)
            .filter(
                SubjectAccessRequest.user_id == user_id,
                SubjectAccessRequest.subject_id == subject_id,
                SubjectAccessRequest.status == AccessRequestStatusEnum.APPROVED,
            )
            .first()
            is not None
        )

    @staticmethod
    def _require_admin(caller: Caller) -> None:
        if not user_has_capability(caller, settings.ADMIN_CAPABILITY):
            raise Forbidden("Admin access required")
