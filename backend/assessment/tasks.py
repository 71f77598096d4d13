"""Background tasks executed by Celery workers."""

import logging

from assessment.celery_app import celery_app
from assessment.config import settings
from assessment.db.session import get_session_factory
from assessment.services.access_gate import AccessGate
from assessment.services.attempts import AttemptSessionManager

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="expire_overdue_attempts", max_retries=3)
def expire_overdue_attempts(self, batch_size: int | None = None) -> dict:
    """Close out in-progress attempts whose deadline has passed.

    Runs the same lazy-expiry transition every read path uses, so an attempt
    expired here is indistinguishable from one expired on observation.
    """
    factory = get_session_factory()
    db = factory()
    try:
        manager = AttemptSessionManager(db, AccessGate(db))
        expired = manager.expire_overdue(limit=batch_size or settings.EXPIRY_SWEEP_BATCH_SIZE)
        if expired:
            logger.info("Expiry sweep closed %d overdue attempt(s)", expired)
        return {"success": True, "expired": expired}

    except Exception as exc:
        logger.exception("Expiry sweep failed")
        db.rollback()
        raise self.retry(exc=exc, countdown=10 * (3**self.request.retries))

    finally:
        db.close()
