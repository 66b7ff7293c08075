from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, scoped_session, declarative_base

from config import DATABASE_URL

# ---------------------------------------------------------------------------
# Database configuration
# ---------------------------------------------------------------------------

# Thread-local session factory. Each crud call opens a short-lived session on
# whatever engine is currently bound via ``configure_engine``.
SessionLocal = scoped_session(sessionmaker(autoflush=False))

# Declarative base class that the ORM models should inherit from.
Base = declarative_base()

_engine: Engine | None = None


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------

def configure_engine(database_url: str | None = None) -> Engine:
    """(Re)bind the session factory to ``database_url``.

    ``check_same_thread`` must be disabled for SQLite so FastAPI's worker
    threads can share the connection pool.
    """
    global _engine

    url = database_url or DATABASE_URL
    if _engine is not None:
        _engine.dispose()
    _engine = create_engine(
        url,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
        echo=False,
    )
    SessionLocal.remove()
    SessionLocal.configure(bind=_engine)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        return configure_engine()
    return _engine


def init_db() -> None:
    """Create tables if they do not yet exist.

    Importing ``predica.memory.models`` registers all subclasses with the Base
    metadata, after which ``metadata.create_all`` will build the schema.
    """
    # The models import needs to stay **inside** the function to avoid circular
    # imports.
    from . import models  # noqa: F401  (side-effect import)

    Base.metadata.create_all(bind=get_engine())


configure_engine()
