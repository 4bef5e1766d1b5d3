"""Key-value repository abstraction and the storage key scheme.

Every entity is stored as a :class:`StoredItem` addressed by
``(table, pk, sk)`` and optionally indexed by a ``secondary_key``. The key
scheme lives here and nowhere else:

- partition key:          ``USER#<user_id>``
- transaction sort key:   ``DT#<yyyy-mm-dd>#TX#<transaction_id>``
- transaction secondary:  ``USER#<user_id>#W#<yyyy>-W<ww>``
- insight sort key:       ``W#<week key>`` or ``D#<day key>``

Adapters raise the typed errors below; callers never see driver exceptions.
"""

from __future__ import annotations

import copy
import datetime as dt
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from .periods import Period, week_key

TRANSACTIONS_TABLE = "transactions"
INSIGHTS_TABLE = "insights"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class StoreError(RuntimeError):
    """Base class for repository failures."""

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class ItemNotFoundError(StoreError):
    pass


class StoreValidationError(StoreError):
    pass


class ThroughputExceededError(StoreError):
    pass


class ConditionalCheckFailedError(StoreError):
    pass


# ---------------------------------------------------------------------------
# Items and protocol
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StoredItem:
    table: str
    pk: str
    sk: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    secondary_key: str | None = None


class Repository(Protocol):
    def get(self, table: str, pk: str, sk: str) -> StoredItem | None: ...

    def put(self, item: StoredItem) -> None: ...

    def query_by_prefix(self, table: str, pk: str, sk_prefix: str) -> list[StoredItem]:
        """Items in ``pk`` whose sort key starts with ``sk_prefix``, by sort key."""
        ...

    def query_by_secondary_key(self, table: str, secondary_key: str) -> list[StoredItem]:
        """Items carrying ``secondary_key``, ordered by ``(pk, sk)``."""
        ...


# ---------------------------------------------------------------------------
# Key scheme
# ---------------------------------------------------------------------------


def user_pk(user_id: str) -> str:
    return f"USER#{user_id}"


def transaction_sk(day: dt.date, transaction_id: str) -> str:
    return f"DT#{day.isoformat()}#TX#{transaction_id}"


def transaction_day_prefix(day: dt.date) -> str:
    return f"DT#{day.isoformat()}#"


def transaction_week_index(user_id: str, day_or_key: dt.date | str) -> str:
    key = day_or_key if isinstance(day_or_key, str) else week_key(day_or_key)
    return f"USER#{user_id}#W#{key}"


def insight_sk(period: Period) -> str:
    prefix = "W" if period.kind == "week" else "D"
    return f"{prefix}#{period.key}"


# ---------------------------------------------------------------------------
# In-memory adapter
# ---------------------------------------------------------------------------


def _validate_item(item: StoredItem) -> None:
    if not item.table or not item.pk or not item.sk:
        raise StoreValidationError("table, pk and sk are required", operation="put")


class InMemoryRepository:
    """Thread-safe dict-backed repository; payloads are deep-copied in and out."""

    def __init__(self) -> None:
        self._items: dict[tuple[str, str, str], StoredItem] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _copy(item: StoredItem) -> StoredItem:
        return StoredItem(
            table=item.table,
            pk=item.pk,
            sk=item.sk,
            payload=copy.deepcopy(dict(item.payload)),
            secondary_key=item.secondary_key,
        )

    def get(self, table: str, pk: str, sk: str) -> StoredItem | None:
        with self._lock:
            item = self._items.get((table, pk, sk))
        return self._copy(item) if item is not None else None

    def put(self, item: StoredItem) -> None:
        _validate_item(item)
        stored = self._copy(item)
        with self._lock:
            self._items[(item.table, item.pk, item.sk)] = stored

    def query_by_prefix(self, table: str, pk: str, sk_prefix: str) -> list[StoredItem]:
        with self._lock:
            hits = [
                it
                for (t, p, s), it in self._items.items()
                if t == table and p == pk and s.startswith(sk_prefix)
            ]
        return [self._copy(it) for it in sorted(hits, key=lambda it: it.sk)]

    def query_by_secondary_key(self, table: str, secondary_key: str) -> list[StoredItem]:
        with self._lock:
            hits = [
                it
                for (t, _p, _s), it in self._items.items()
                if t == table and it.secondary_key == secondary_key
            ]
        return [self._copy(it) for it in sorted(hits, key=lambda it: (it.pk, it.sk))]


__all__ = [
    "INSIGHTS_TABLE",
    "TRANSACTIONS_TABLE",
    "ConditionalCheckFailedError",
    "InMemoryRepository",
    "ItemNotFoundError",
    "Repository",
    "StoreError",
    "StoreValidationError",
    "StoredItem",
    "ThroughputExceededError",
    "insight_sk",
    "transaction_day_prefix",
    "transaction_sk",
    "transaction_week_index",
    "user_pk",
]
