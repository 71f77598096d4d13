"""Wall clock used by every time-based transition.

Services receive a ``Clock`` instead of calling ``datetime.now`` themselves so
that deadline and availability checks go through one injectable code path.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
