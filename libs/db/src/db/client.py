"""SQLAlchemy engine/session helpers for the workspace database.

Usage
-----
from db.client import create_engine_for, init_schema, make_session_factory, session_scope

engine = create_engine_for(url)
init_schema(engine)
factory = make_session_factory(engine)
with session_scope(factory) as s:
    s.execute(...)

Engines are created explicitly by entrypoints and passed down; this module
keeps no process-wide state.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models.store import Base


def create_engine_for(database_url: str | None) -> Engine:
    """Create an engine for ``database_url``; raises when it is unset."""

    if not database_url:
        raise RuntimeError("DATABASE_URL is not set; cannot initialize database client")
    return create_engine(database_url, pool_pre_ping=True)


def init_schema(engine: Engine) -> None:
    """Create missing tables (idempotent)."""

    Base.metadata.create_all(bind=engine)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False, class_=Session)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "create_engine_for",
    "init_schema",
    "make_session_factory",
    "session_scope",
]
