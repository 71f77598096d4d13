"""Database wiring for the assessment service.

The engine is built from ``settings.DATABASE_URL`` the first time something
asks for it, so importing the models (alembic, Celery workers, tests) never
opens a connection. Request handlers get their session from ``get_db``;
Celery tasks and scripts take one from ``get_session_factory()``.
"""

from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from assessment.config import settings

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def engine_options(database_url: str) -> dict:
    """Keyword arguments for ``create_engine`` suited to the URL's backend."""
    options: dict = {"echo": settings.DATABASE_ECHO}
    if make_url(database_url).get_backend_name() == "sqlite":
        # FastAPI runs sync handlers in a threadpool
        options["connect_args"] = {"check_same_thread": False}
    else:
        # stale connections after a Postgres restart would fail the first query
        options["pool_pre_ping"] = True
    return options


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), autocommit=False, autoflush=False)
    return _session_factory


class Base(DeclarativeBase):
    """Declarative base for subjects, quizzes, attempts and access requests."""


def get_db() -> Iterator[Session]:
    """Request-scoped session; closed (and any open transaction discarded) afterwards."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()
