"""Bearer-token decoding and capability checks.

Tokens are issued by the external auth service; this service only verifies
them. A token carries the user id in ``sub`` and capability tags in ``caps``.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from assessment.config import settings


@dataclass(frozen=True)
class Caller:
    """The authenticated principal behind a request."""

    user_id: uuid.UUID
    capabilities: frozenset[str] = field(default_factory=frozenset)


def user_has_capability(caller: Caller, capability: str) -> bool:
    """Plain membership check — no role hierarchy is encoded here."""
    return capability in caller.capabilities


# ── JWT tokens ────────────────────────────────────────────────────────────────


def create_access_token(
    user_id: uuid.UUID,
    capabilities: list[str] | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT access token (used by tooling and tests)."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=60))
    to_encode = {"sub": str(user_id), "caps": list(capabilities or []), "exp": expire}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and validate a JWT. Returns payload dict or None on failure."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def caller_from_payload(payload: dict) -> Caller | None:
    """Build a ``Caller`` from a decoded token payload, or None if malformed."""
    sub = payload.get("sub")
    if sub is None:
        return None
    try:
        user_id = uuid.UUID(str(sub))
    except ValueError:
        return None
    caps = payload.get("caps") or []
    if not isinstance(caps, list):
        return None
    return Caller(user_id=user_id, capabilities=frozenset(str(c) for c in caps))
