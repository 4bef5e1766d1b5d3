"""Typed stores for transactions and insights over a :class:`Repository`."""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable
from dataclasses import dataclass, field

from .logging_setup import get_logger
from .models import Insight, Transaction
from .periods import Period, PeriodKind
from .pmap import p_map_settled
from .repository import (
    INSIGHTS_TABLE,
    TRANSACTIONS_TABLE,
    ItemNotFoundError,
    Repository,
    StoredItem,
    insight_sk,
    transaction_day_prefix,
    transaction_sk,
    transaction_week_index,
    user_pk,
)

_logger = get_logger("spending_insights.stores")


@dataclass(frozen=True, slots=True)
class WriteFailure:
    transaction_id: str
    error: Exception


@dataclass(slots=True)
class BatchWriteResult:
    written: list[str] = field(default_factory=list)
    failures: list[WriteFailure] = field(default_factory=list)


class TransactionStore:
    def __init__(self, repository: Repository) -> None:
        self.repository = repository

    @staticmethod
    def _item(tx: Transaction) -> StoredItem:
        return StoredItem(
            table=TRANSACTIONS_TABLE,
            pk=user_pk(tx.user_id),
            sk=transaction_sk(tx.date, tx.id),
            payload=tx.model_dump(mode="json"),
            secondary_key=transaction_week_index(tx.user_id, tx.date),
        )

    def put(self, tx: Transaction) -> None:
        self.repository.put(self._item(tx))

    def batch_put(
        self, transactions: Iterable[Transaction], *, concurrency: int = 1
    ) -> BatchWriteResult:
        """Write each transaction independently.

        A failed write is recorded in ``failures`` and does not stop or roll
        back the others.
        """

        result = BatchWriteResult()
        for outcome in p_map_settled(transactions, self.put, concurrency=concurrency):
            if outcome.error is None:
                result.written.append(outcome.item.id)
                continue
            _logger.warning(
                "store:write_failed id=%s error=%s",
                outcome.item.id,
                outcome.error.__class__.__name__,
            )
            result.failures.append(WriteFailure(outcome.item.id, outcome.error))
        return result

    def get(self, user_id: str, day: dt.date, transaction_id: str) -> Transaction | None:
        item = self.repository.get(
            TRANSACTIONS_TABLE, user_pk(user_id), transaction_sk(day, transaction_id)
        )
        return Transaction.model_validate(item.payload) if item is not None else None

    def list_for_user(self, user_id: str) -> list[Transaction]:
        items = self.repository.query_by_prefix(TRANSACTIONS_TABLE, user_pk(user_id), "DT#")
        return [Transaction.model_validate(it.payload) for it in items]

    def list_for_period(self, user_id: str, period: Period) -> list[Transaction]:
        if period.kind == "week":
            items = self.repository.query_by_secondary_key(
                TRANSACTIONS_TABLE, transaction_week_index(user_id, period.key)
            )
        else:
            items = self.repository.query_by_prefix(
                TRANSACTIONS_TABLE, user_pk(user_id), transaction_day_prefix(period.start)
            )
        return [Transaction.model_validate(it.payload) for it in items]

    def correct_category(
        self,
        user_id: str,
        day: dt.date,
        transaction_id: str,
        category: str,
        subcategory: str | None = None,
    ) -> Transaction:
        """Apply a user's category correction; the only post-creation change."""

        current = self.get(user_id, day, transaction_id)
        if current is None:
            raise ItemNotFoundError(
                f"transaction {transaction_id} not found", operation="correct_category"
            )
        updated = current.model_copy(update={"category": category, "subcategory": subcategory})
        self.put(updated)
        return updated


class InsightStore:
    def __init__(self, repository: Repository) -> None:
        self.repository = repository

    def get(self, user_id: str, period: Period) -> Insight | None:
        item = self.repository.get(INSIGHTS_TABLE, user_pk(user_id), insight_sk(period))
        return Insight.model_validate(item.payload) if item is not None else None

    def put(self, insight: Insight) -> None:
        period = Period(
            kind=insight.period_kind,
            key=insight.period_key,
            start=insight.period_start,
            end=insight.period_end,
        )
        self.repository.put(
            StoredItem(
                table=INSIGHTS_TABLE,
                pk=user_pk(insight.user_id),
                sk=insight_sk(period),
                payload=insight.model_dump(mode="json"),
            )
        )

    def list_for_user(self, user_id: str, *, kind: PeriodKind | None = None) -> list[Insight]:
        """Insights for ``user_id``, most recent period first."""

        prefix = {"week": "W#", "day": "D#", None: ""}[kind]
        items = self.repository.query_by_prefix(INSIGHTS_TABLE, user_pk(user_id), prefix)
        insights = [Insight.model_validate(it.payload) for it in items]
        insights.sort(key=lambda i: (i.period_start, i.period_kind == "day"), reverse=True)
        return insights

    def mark_implemented(self, user_id: str, period: Period, recommendation_id: str) -> Insight:
        insight = self.get(user_id, period)
        if insight is None:
            raise ItemNotFoundError(
                f"no insight for {user_id} in {period.key}", operation="mark_implemented"
            )
        if recommendation_id not in {r.id for r in insight.recommendations}:
            raise ValueError(f"Unknown recommendation id: {recommendation_id}")
        if recommendation_id in insight.implemented_actions:
            return insight
        updated = insight.model_copy(
            update={"implemented_actions": [*insight.implemented_actions, recommendation_id]}
        )
        self.put(updated)
        return updated


__all__ = ["BatchWriteResult", "InsightStore", "TransactionStore", "WriteFailure"]
