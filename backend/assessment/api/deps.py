"""FastAPI dependencies shared across routes."""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from assessment.core.clock import Clock, utcnow
from assessment.core.security import Caller, caller_from_payload, decode_access_token
from assessment.db.session import get_db
from assessment.services.access_gate import AccessGate
from assessment.services.attempts import AttemptSessionManager
from assessment.services.ranking import RankingAggregator

# tokens are issued by the external auth service
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def get_current_caller(token: str = Depends(oauth2_scheme)) -> Caller:
    """Decode the bearer JWT into a ``Caller``, or 401."""
    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    caller = caller_from_payload(payload)
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload"
        )
    return caller


def get_clock() -> Clock:
    """Overridden in tests with a frozen clock."""
    return utcnow


def get_access_gate(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> AccessGate:
    return AccessGate(db, clock=clock)


def get_attempt_manager(
    db: Session = Depends(get_db),
    gate: AccessGate = Depends(get_access_gate),
    clock: Clock = Depends(get_clock),
) -> AttemptSessionManager:
    return AttemptSessionManager(db, gate, clock=clock)


def get_ranking(db: Session = Depends(get_db)) -> RankingAggregator:
    return RankingAggregator(db)
