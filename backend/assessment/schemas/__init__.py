"""Pydantic schemas — re‑exported for convenience."""

from assessment.schemas.common import ErrorResponse  # noqa: F401
from assessment.schemas.quiz import (  # noqa: F401
    QuestionDefinition,
    QuizDefinition,
)
from assessment.schemas.attempt import (  # noqa: F401
    AnswerRecorded,
    AnswerSubmit,
    AttemptEligibility,
    AttemptRead,
    AttemptReport,
    AttemptStart,
    QuestionReport,
    ScoreBreakdown,
)
from assessment.schemas.access import (  # noqa: F401
    AccessCheck,
    AccessDecision,
    AccessRequestCreate,
    AccessRequestPage,
    AccessRequestRead,
    DecisionOutcome,
)
from assessment.schemas.ranking import (  # noqa: F401
    NeighborWindow,
    RankingEntry,
    ScopeSummary,
)
