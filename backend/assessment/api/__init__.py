"""API route package — imports all routers for main.py."""

from assessment.api.health import router as health_router  # noqa: F401
from assessment.api.attempts import router as attempts_router  # noqa: F401
from assessment.api.access import router as access_router  # noqa: F401
from assessment.api.ranking import router as ranking_router  # noqa: F401
