"""Data models for ``spending_insights``.

Money is carried as ``Decimal`` quantized to cents (``ROUND_HALF_UP``) so
annualized savings figures compare exactly (``15.99 * 12 == 191.88``).
Persisted entities (``Transaction``, ``Insight``) are pydantic models and are
stored as their JSON-mode dump; transient pipeline values (``Opportunity``)
are frozen dataclasses.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .periods import PeriodKind

type TransactionType = Literal["debit", "credit"]
type Difficulty = Literal["easy", "medium", "hard"]
type Impact = Literal["low", "medium", "high"]
type OpportunityType = Literal["subscription", "fee", "category_overspend", "duplicate"]
type RecommendationType = Literal["save", "invest", "eliminate_fee", "optimize"]

CENTS = Decimal("0.01")


def to_money(value: Decimal | int | str) -> Decimal:
    """Quantize ``value`` to cents with half-up rounding."""

    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    return f"${to_money(value):.2f}"


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class Transaction(BaseModel):
    """A parsed, redacted and (eventually) classified transaction.

    Immutable after creation; the only sanctioned mutation is a category
    correction, performed through ``model_copy(update=...)`` by the store.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    user_id: str
    amount: Decimal = Field(ge=0)
    description: str
    original_description: str
    category: str = "Uncategorized"
    subcategory: str | None = None
    date: dt.date
    account: str = "Unknown"
    is_recurring: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    merchant_name: str
    transaction_type: TransactionType

    @field_validator("amount")
    @classmethod
    def _quantize_amount(cls, v: Decimal) -> Decimal:
        return to_money(v)


class ClassificationResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    category: str
    subcategory: str | None = None
    confidence: float = Field(ge=0.0, le=1.0)
    is_recurring: bool = False
    merchant_name: str
    reasoning: str
    source: Literal["keyword", "openai"] = "keyword"


# ---------------------------------------------------------------------------
# Parsing / ingestion envelopes
# ---------------------------------------------------------------------------


class ParseError(BaseModel):
    """A structured, row-scoped parse or validation error.

    ``row`` is the 1-based line number in the input (the header is row 1).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    row: int
    field: str | None = None
    value: str | None = None
    error: str
    severity: Literal["error", "warning"] = "error"


class ParseResult(BaseModel):
    transactions: list[Transaction] = Field(default_factory=list)
    errors: list[ParseError] = Field(default_factory=list)
    total_rows: int = 0
    successful_rows: int = 0


class DetectedCharge(BaseModel):
    """A fee or subscription flagged while ingesting a statement."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    transaction_id: str
    description: str
    amount: Decimal
    annual_cost: Decimal
    is_fee: bool = False
    is_subscription: bool = False


class IngestionResult(BaseModel):
    success: bool
    message: str
    processed_count: int = 0
    errors: list[ParseError] = Field(default_factory=list)
    detected_fees: list[DetectedCharge] = Field(default_factory=list)
    # Transaction ids whose individual write failed.
    write_failures: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Aggregates, opportunities and recommendations
# ---------------------------------------------------------------------------


class CategorySpending(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    category: str
    total_amount: Decimal
    transaction_count: int
    average_amount: Decimal
    percent_of_total: Decimal


@dataclass(frozen=True, slots=True)
class Opportunity:
    """A detected avoidable cost, prior to being phrased as advice."""

    type: OpportunityType
    description: str
    potential_savings: Decimal
    difficulty: Difficulty
    reasoning: str
    category: str | None = None
    transactions: tuple[Transaction, ...] = ()


class Recommendation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    type: RecommendationType
    title: str
    description: str
    potential_savings: Decimal
    difficulty: Difficulty
    priority: int
    action_steps: list[str] = Field(min_length=1)
    reasoning: str
    category: str | None = None
    confidence: float = Field(ge=0.0, le=1.0)
    estimated_time_to_implement: str
    impact: Impact

    @field_validator("action_steps")
    @classmethod
    def _steps_are_instructions(cls, v: list[str]) -> list[str]:
        for step in v:
            if len(step.strip()) <= 10:
                raise ValueError(f"action step too short: {step!r}")
        return v


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------


class Insight(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    user_id: str
    period_kind: PeriodKind = "week"
    period_key: str
    period_start: dt.date
    period_end: dt.date
    total_spent: Decimal
    top_categories: list[CategorySpending] = Field(default_factory=list, max_length=5)
    recommendations: list[Recommendation] = Field(default_factory=list)
    potential_savings: Decimal
    implemented_actions: list[str] = Field(default_factory=list)
    generated_at: dt.datetime
    transaction_count: int


class GenerationResult(BaseModel):
    success: bool
    generated: bool = False
    insight: Insight | None = None
    message: str


__all__ = [
    "CENTS",
    "CategorySpending",
    "ClassificationResult",
    "DetectedCharge",
    "Difficulty",
    "GenerationResult",
    "Impact",
    "IngestionResult",
    "Insight",
    "Opportunity",
    "OpportunityType",
    "ParseError",
    "ParseResult",
    "PeriodKind",
    "Recommendation",
    "RecommendationType",
    "Transaction",
    "TransactionType",
    "format_money",
    "to_money",
]
