# ruff: noqa: I001
"""SQL-backed :class:`~spending_insights.repository.Repository`.

Items live in the ``si_store_items`` table owned by ``libs/db``
(``db.models.store.StoreItem``). Writes are upserts keyed by
``(table_name, pk, sk)``: ``INSERT ... ON CONFLICT DO UPDATE`` on PostgreSQL
and SQLite, ``Session.merge`` elsewhere.

Driver and SQLAlchemy errors are translated into the repository's typed
errors by :func:`with_error_handling`.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import func, select
from sqlalchemy import exc as sa_exc
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, sessionmaker

from db.client import session_scope
from db.models.store import StoreItem
from .logging_setup import get_logger
from .repository import (
    ConditionalCheckFailedError,
    ItemNotFoundError,
    StoreError,
    StoredItem,
    StoreValidationError,
    ThroughputExceededError,
)

_logger = get_logger("spending_insights.persistence")


@contextmanager
def with_error_handling(operation: str) -> Iterator[None]:
    """Re-raise SQLAlchemy failures as typed store errors."""

    try:
        yield
    except StoreError:
        raise
    except sa_exc.NoResultFound as e:
        raise ItemNotFoundError(f"{operation}: item not found", operation=operation) from e
    except sa_exc.IntegrityError as e:
        raise ConditionalCheckFailedError(
            f"{operation}: conditional check failed", operation=operation
        ) from e
    except sa_exc.DataError as e:
        raise StoreValidationError(
            f"{operation}: invalid data: {e.orig}", operation=operation
        ) from e
    except (sa_exc.OperationalError, sa_exc.TimeoutError) as e:
        _logger.warning(
            "store:throughput operation=%s error=%s", operation, e.__class__.__name__
        )
        raise ThroughputExceededError(
            f"{operation}: store unavailable or throttled", operation=operation
        ) from e
    except sa_exc.SQLAlchemyError as e:
        raise StoreError(f"{operation}: {e}", operation=operation) from e


def _to_stored(row: StoreItem) -> StoredItem:
    return StoredItem(
        table=row.table_name,
        pk=row.pk,
        sk=row.sk,
        payload=dict(row.payload or {}),
        secondary_key=row.secondary_key,
    )


def _upsert(session: Session, values: dict[str, Any]) -> None:
    dialect = session.get_bind().dialect.name
    if dialect in ("postgresql", "sqlite"):
        insert = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = insert(StoreItem).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[StoreItem.table_name, StoreItem.pk, StoreItem.sk],
            set_={
                "payload": stmt.excluded.payload,
                "secondary_key": stmt.excluded.secondary_key,
                "updated_at": func.current_timestamp(),
            },
        )
        session.execute(stmt)
        return
    session.merge(StoreItem(**values))


class SqlRepository:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get(self, table: str, pk: str, sk: str) -> StoredItem | None:
        with with_error_handling("get"), session_scope(self._session_factory) as session:
            row = session.get(StoreItem, (table, pk, sk))
            return _to_stored(row) if row is not None else None

    def put(self, item: StoredItem) -> None:
        if not item.table or not item.pk or not item.sk:
            raise StoreValidationError("table, pk and sk are required", operation="put")
        values = {
            "table_name": item.table,
            "pk": item.pk,
            "sk": item.sk,
            "secondary_key": item.secondary_key,
            "payload": dict(item.payload),
        }
        with with_error_handling("put"), session_scope(self._session_factory) as session:
            _upsert(session, values)

    def query_by_prefix(self, table: str, pk: str, sk_prefix: str) -> list[StoredItem]:
        stmt = (
            select(StoreItem)
            .where(
                StoreItem.table_name == table,
                StoreItem.pk == pk,
                StoreItem.sk.startswith(sk_prefix, autoescape=True),
            )
            .order_by(StoreItem.sk)
        )
        with with_error_handling("query_by_prefix"), session_scope(
            self._session_factory
        ) as session:
            return [_to_stored(r) for r in session.scalars(stmt)]

    def query_by_secondary_key(self, table: str, secondary_key: str) -> list[StoredItem]:
        stmt = (
            select(StoreItem)
            .where(StoreItem.table_name == table, StoreItem.secondary_key == secondary_key)
            .order_by(StoreItem.pk, StoreItem.sk)
        )
        with with_error_handling("query_by_secondary_key"), session_scope(
            self._session_factory
        ) as session:
            return [_to_stored(r) for r in session.scalars(stmt)]


__all__ = ["SqlRepository", "with_error_handling"]
