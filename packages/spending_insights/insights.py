"""Period-scoped insight generation.

:class:`InsightService` is the only writer of :class:`~.models.Insight`
records. For one ``(user_id, period)``:

- an existing insight is returned as-is unless regeneration is forced
  (no recomputation, no write);
- a period without transactions yields ``success=False`` and writes nothing,
  so the call can simply be retried later;
- otherwise the pipeline runs (classification of still-uncategorized
  transactions, aggregation, opportunity detection, recommendation synthesis)
  and the new insight replaces any prior one.

Two concurrent forced regenerations race benignly: the last write wins.
Store errors propagate to the caller.
"""

from __future__ import annotations

import datetime as dt
import uuid
from collections.abc import Callable, Mapping
from decimal import Decimal
from typing import Any

from .classify import Classifier, classify_transactions
from .logging_setup import get_logger
from .models import GenerationResult, Insight, Transaction, format_money, to_money
from .opportunities import calculate_category_spending, detect
from .periods import Period, PeriodKind, parse_period
from .recommendations import synthesize
from .stores import InsightStore, TransactionStore

TOP_CATEGORY_COUNT = 5
UNCATEGORIZED = "Uncategorized"
MSG_EXISTING = "Existing insights returned"

_logger = get_logger("spending_insights.insights")


def _require_user(user_id: str | None) -> str:
    if not user_id or not str(user_id).strip():
        raise ValueError("userId is required")
    return str(user_id).strip()


class InsightService:
    def __init__(
        self,
        *,
        transactions: TransactionStore,
        insights: InsightStore,
        classifier: Classifier | None = None,
        classify_concurrency: int = 4,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self.transactions = transactions
        self.insights = insights
        self.classifier = classifier
        self.classify_concurrency = classify_concurrency
        self._now = clock or (lambda: dt.datetime.now(dt.UTC))

    def _resolve_period(self, period: Period | dt.date | str | None, kind: PeriodKind) -> Period:
        return parse_period(period, kind=kind, today=self._now().date())

    def _reclassify(self, txs: list[Transaction]) -> list[Transaction]:
        if self.classifier is None:
            return txs
        pending = [i for i, tx in enumerate(txs) if tx.category == UNCATEGORIZED]
        if not pending:
            return txs
        updated = classify_transactions(
            [txs[i] for i in pending], self.classifier, concurrency=self.classify_concurrency
        )
        out = list(txs)
        for i, tx in zip(pending, updated, strict=True):
            out[i] = tx
        return out

    def build_insight(self, user_id: str, period: Period, txs: list[Transaction]) -> Insight:
        """Run the analysis pipeline over ``txs``; no store access."""

        aggregates = calculate_category_spending(txs)
        opportunities = detect(txs, aggregates)
        recommendations = synthesize(opportunities, aggregates)
        total_spent = sum(
            (tx.amount for tx in txs if tx.transaction_type == "debit"), Decimal(0)
        )
        potential = sum((r.potential_savings for r in recommendations), Decimal(0))
        return Insight(
            id=str(uuid.uuid4()),
            user_id=user_id,
            period_kind=period.kind,
            period_key=period.key,
            period_start=period.start,
            period_end=period.end,
            total_spent=to_money(total_spent),
            top_categories=aggregates[:TOP_CATEGORY_COUNT],
            recommendations=recommendations,
            potential_savings=to_money(potential),
            implemented_actions=[],
            generated_at=self._now(),
            transaction_count=len(txs),
        )

    def generate(
        self,
        user_id: str,
        period: Period | dt.date | str | None = None,
        *,
        force_regenerate: bool = False,
        kind: PeriodKind = "week",
    ) -> GenerationResult:
        user_id = _require_user(user_id)
        resolved = self._resolve_period(period, kind)

        if not force_regenerate:
            existing = self.insights.get(user_id, resolved)
            if existing is not None:
                _logger.info("insights:existing user=%s period=%s", user_id, resolved.key)
                return GenerationResult(
                    success=True, generated=False, insight=existing, message=MSG_EXISTING
                )

        txs = self.transactions.list_for_period(user_id, resolved)
        if not txs:
            _logger.info("insights:no_transactions user=%s period=%s", user_id, resolved.key)
            return GenerationResult(
                success=False,
                generated=False,
                message=f"No transactions found for the specified {resolved.kind}",
            )

        insight = self.build_insight(user_id, resolved, self._reclassify(txs))
        self.insights.put(insight)

        _logger.info(
            "insights:generated user=%s period=%s transactions=%d recommendations=%d savings=%s",
            user_id,
            resolved.key,
            insight.transaction_count,
            len(insight.recommendations),
            insight.potential_savings,
        )
        return GenerationResult(
            success=True,
            generated=True,
            insight=insight,
            message=(
                f"Generated {len(insight.recommendations)} recommendations with "
                f"{format_money(insight.potential_savings)} potential savings"
            ),
        )

    def mark_action_implemented(
        self,
        user_id: str,
        period: Period | dt.date | str,
        recommendation_id: str,
        *,
        kind: PeriodKind = "week",
    ) -> Insight:
        user_id = _require_user(user_id)
        return self.insights.mark_implemented(
            user_id, self._resolve_period(period, kind), recommendation_id
        )

    def list_insights(self, user_id: str, *, kind: PeriodKind | None = None) -> list[Insight]:
        return self.insights.list_for_user(_require_user(user_id), kind=kind)


def run_trigger(event: Mapping[str, Any], service: InsightService) -> GenerationResult:
    """Handle a manual or scheduled trigger ``{userId, periodOf?, forceRegenerate?, daily?}``.

    Fan-out over all users when ``userId`` is absent is the scheduler's job;
    here a missing ``userId`` is a pre-flight error.
    """

    user_id = _require_user(event.get("userId"))
    kind: PeriodKind = "day" if event.get("daily") else "week"
    return service.generate(
        user_id,
        event.get("periodOf"),
        force_regenerate=bool(event.get("forceRegenerate", False)),
        kind=kind,
    )


__all__ = ["InsightService", "run_trigger"]
