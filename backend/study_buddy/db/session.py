"""Lazily built engine and transactional sessions for the profile document tables."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import Settings, get_settings
from .monitoring import instrument_engine

_IN_MEMORY_SQLITE = frozenset({"sqlite://", "sqlite:///:memory:"})


@dataclass
class _DatabaseState:
    engine: Optional[Engine] = None
    sessions: Optional[sessionmaker[Session]] = None


_state = _DatabaseState()


def engine_options(settings: Settings) -> Dict[str, Any]:
    """Keyword arguments for ``create_engine`` derived from the backend settings."""
    url = settings.database_url or ""
    options: Dict[str, Any] = {"echo": settings.database_echo, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(pool_size=settings.database_pool_size, max_overflow=settings.database_max_overflow)
        return options
    options["connect_args"] = {"check_same_thread": False}
    if url in _IN_MEMORY_SQLITE:
        # Every pooled connection would otherwise open its own empty database.
        options["poolclass"] = StaticPool
    return options


def get_engine() -> Engine:
    if _state.engine is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("STUDY_BUDDY_DATABASE_URL must be configured before using the database.")
        engine = create_engine(settings.database_url, **engine_options(settings))
        instrument_engine(engine)
        _state.engine = engine
        _state.sessions = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return _state.engine


def get_session_factory() -> sessionmaker[Session]:
    if _state.sessions is None:
        get_engine()
    assert _state.sessions is not None
    return _state.sessions


@contextmanager
def session_scope(*, commit: bool = True) -> Iterator[Session]:
    """Yield a session that commits on success (when ``commit``) and rolls back on error."""
    session = get_session_factory()()
    try:
        yield session
        if commit:
            session.commit()
    except Exception:  # noqa: BLE001
        session.rollback()
        raise
    finally:
        session.close()


def create_schema() -> None:
    """Create the tables in place; SQLite development databases skip Alembic."""
    from . import models  # noqa: F401
    from .base import Base

    Base.metadata.create_all(get_engine())


def dispose_engine() -> None:
    if _state.engine is not None:
        _state.engine.dispose()
    _state.engine = None
    _state.sessions = None


__all__ = [
    "create_schema",
    "dispose_engine",
    "engine_options",
    "get_engine",
    "get_session_factory",
    "session_scope",
]
