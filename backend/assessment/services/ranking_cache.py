"""Redis-backed cache for ranking aggregations.

Rankings are derived data: recomputing them is always correct, caching only
saves the group-by over every terminal attempt. Entries are keyed by scope
and a *generation* counter; every terminal attempt transition bumps the
generation, so stale aggregations are never read back and simply age out
via their TTL.

Callers read the generation *before* computing and write under that same
generation, so a result computed while an attempt was being submitted is
stored under the retired generation and never served.

All Redis failures are non-fatal — reads behave as misses, writes are dropped.
"""

import hashlib
import json
import logging
from typing import Any

import redis

from assessment.config import settings

logger = logging.getLogger(__name__)

_pool: redis.ConnectionPool | None = None

_GENERATION_KEY = "ranking_cache:generation"


def _get_redis() -> redis.Redis:
    """Return a Redis client backed by a shared connection pool."""
    global _pool
    if _pool is None:
        _pool = redis.ConnectionPool.from_url(
            settings.redis_url,
            decode_responses=True,
            max_connections=10,
        )
    return redis.Redis(connection_pool=_pool)


def _make_key(scope: str, generation: str) -> str:
    """Deterministic key from the scope label and a generation."""
    digest = hashlib.sha256(scope.encode()).hexdigest()[:16]
    return f"ranking_cache:{digest}:{generation}"


def current_generation() -> str | None:
    """Current generation, or None when caching is disabled or Redis is down."""
    if not settings.RANKING_CACHE_ENABLED:
        return None
    try:
        return _get_redis().get(_GENERATION_KEY) or "0"
    except Exception as e:
        logger.warning("Ranking cache unavailable (non-fatal): %s", e)
        return None


def cache_get(scope: str, generation: str) -> list[dict[str, Any]] | None:
    """Return the cached ranking rows for *scope* (None on miss)."""
    try:
        key = _make_key(scope, generation)
        raw = _get_redis().get(key)
        if raw:
            logger.debug("Ranking cache HIT: %s", key)
            return json.loads(raw)
        logger.debug("Ranking cache MISS: %s", key)
        return None
    except Exception as e:
        logger.warning("Ranking cache read failed (non-fatal): %s", e)
        return None


def cache_set(
    scope: str,
    generation: str,
    rows: list[dict[str, Any]],
    ttl: int | None = None,
) -> None:
    """Store ranking rows for *scope* under *generation*."""
    try:
        key = _make_key(scope, generation)
        _get_redis().setex(
            key, ttl or settings.RANKING_CACHE_TTL_SECONDS, json.dumps(rows, default=str)
        )
        logger.debug("Ranking cache SET: %s (%d rows)", key, len(rows))
    except Exception as e:
        logger.warning("Ranking cache write failed (non-fatal): %s", e)


def invalidate() -> None:
    """Retire every cached ranking by moving to a new generation."""
    if not settings.RANKING_CACHE_ENABLED:
        return
    try:
        _get_redis().incr(_GENERATION_KEY)
    except Exception as e:
        logger.warning("Ranking cache invalidation failed (non-fatal): %s", e)
