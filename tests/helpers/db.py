"""DB helpers for tests: bootstrap a temporary SQLite DB for the SQL repository."""

from __future__ import annotations

from pathlib import Path

from db.client import create_engine_for, init_schema, make_session_factory
from sqlalchemy import text as sql_text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def bootstrap_sqlite_db(db_file: Path) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine_for(url)
    init_schema(engine)
    _assert_store_schema(engine)
    engine.dispose()
    return url


def sqlite_session_factory(db_file: Path) -> sessionmaker[Session]:
    url = bootstrap_sqlite_db(db_file)
    return make_session_factory(create_engine_for(url))


def _assert_store_schema(engine: Engine) -> None:
    """Quick sanity check that ``init_schema`` created the item table."""

    with engine.connect() as conn:
        rows = conn.execute(sql_text("PRAGMA table_info('si_store_items')")).fetchall()
    got = {row[1] for row in rows}  # (cid, name, type, notnull, dflt_value, pk)
    expected = {"table_name", "pk", "sk", "secondary_key", "payload", "created_at", "updated_at"}
    assert expected <= got, f"si_store_items schema drift: missing={expected - got}"
