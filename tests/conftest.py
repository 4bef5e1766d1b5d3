"""Pytest configuration shared by the suite.

Puts the workspace ``packages/`` and ``libs/db/src`` directories on
``sys.path`` so tests run against the source tree without an install, and
keeps tests hermetic: environment variables read by ``Settings.from_env`` are
cleared for every test so a developer's shell or ``.env`` cannot leak in.
"""

# ruff: noqa: E402, I001
from __future__ import annotations

import datetime as dt
import itertools
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_SRC_DIRS = [_ROOT / "packages", _ROOT / "libs" / "db" / "src", _ROOT]
sys.path[:0] = [str(p) for p in _SRC_DIRS if str(p) not in sys.path]

from spending_insights.repository import InMemoryRepository
from spending_insights.stores import InsightStore, TransactionStore

_ENV_VARS = (
    "SPENDING_INSIGHTS_CLASSIFIER",
    "SPENDING_INSIGHTS_OPENAI_MODEL",
    "SPENDING_INSIGHTS_AI_TIMEOUT",
    "SPENDING_INSIGHTS_AI_MAX_ATTEMPTS",
    "SPENDING_INSIGHTS_CONCURRENCY",
    "SPENDING_INSIGHTS_LOG_LEVEL",
    "DATABASE_URL",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def tx_store(repo: InMemoryRepository) -> TransactionStore:
    return TransactionStore(repo)


@pytest.fixture
def insight_store(repo: InMemoryRepository) -> InsightStore:
    return InsightStore(repo)


@pytest.fixture
def seq_ids() -> Callable[[], str]:
    """Deterministic id factory: ``id-1``, ``id-2``, ..."""

    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def fixed_clock() -> Callable[[], dt.datetime]:
    now = dt.datetime(2024, 1, 21, 12, 0, tzinfo=dt.UTC)
    return lambda: now
