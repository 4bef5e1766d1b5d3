"""Category aggregation and savings-opportunity detection.

Four independent detectors run over a period's transactions:

- subscription: recurring charges with subscription vocabulary,
  savings = amount x 12
- fee: fee/charge/overdraft vocabulary or the ``Fees`` category,
  savings = amount x 12 (assumes a monthly occurrence)
- category_overspend: a category total above ``OVERSPEND_THRESHOLD``,
  savings = total x 0.20 x 52
- duplicate: repeated (amount, date, first 20 chars of description) keys,
  savings = sum of the repeated amounts

Results are sorted by potential savings, largest first.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from .logging_setup import get_logger
from .models import (
    CategorySpending,
    Opportunity,
    Transaction,
    format_money,
    to_money,
)

MONTHS_PER_YEAR = 12
WEEKS_PER_YEAR = 52
OVERSPEND_THRESHOLD = Decimal("200")
OVERSPEND_REDUCTION = Decimal("0.20")
DUPLICATE_DESCRIPTION_PREFIX = 20
SMALL_MONTHLY_CEILING = Decimal("50")

SUBSCRIPTION_KEYWORDS: tuple[str, ...] = (
    "subscription",
    "netflix",
    "spotify",
    "hulu",
    "disney+",
    "apple music",
    "monthly",
)
FEE_KEYWORDS: tuple[str, ...] = ("fee", "charge", "overdraft")
FEE_CATEGORY = "Fees"

_logger = get_logger("spending_insights.opportunities")


def _mentions(text: str, keywords: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(k in lowered for k in keywords)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def calculate_category_spending(transactions: Iterable[Transaction]) -> list[CategorySpending]:
    """Aggregate debit spending per category, largest total first.

    Credits are ignored. ``percent_of_total`` is relative to total debit
    spending and rounded to two decimals.
    """

    totals: dict[str, list[Decimal]] = {}
    for tx in transactions:
        if tx.transaction_type != "debit":
            continue
        totals.setdefault(tx.category, []).append(tx.amount)

    grand_total = sum((sum(v, Decimal(0)) for v in totals.values()), Decimal(0))
    out: list[CategorySpending] = []
    for category, amounts in totals.items():
        total = sum(amounts, Decimal(0))
        percent = total / grand_total * 100 if grand_total > 0 else Decimal(0)
        out.append(
            CategorySpending(
                category=category,
                total_amount=to_money(total),
                transaction_count=len(amounts),
                average_amount=to_money(total / len(amounts)),
                percent_of_total=to_money(percent),
            )
        )
    out.sort(key=lambda c: c.total_amount, reverse=True)
    return out


# ---------------------------------------------------------------------------
# Ingestion-time screening
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChargeScreening:
    is_subscription: bool
    is_fee: bool
    annual_cost: Decimal

    @property
    def flagged(self) -> bool:
        return self.is_subscription or self.is_fee


def screen_charge(tx: Transaction) -> ChargeScreening:
    """Flag a single transaction as a likely subscription and/or fee."""

    desc = tx.description.lower()
    annual = Decimal(0)
    is_subscription = _mentions(desc, ("netflix", "spotify", "subscription"))
    if is_subscription:
        annual = tx.amount * MONTHS_PER_YEAR
    is_fee = _mentions(desc, FEE_KEYWORDS)
    if is_fee:
        annual = tx.amount * MONTHS_PER_YEAR
    if 0 < tx.amount < SMALL_MONTHLY_CEILING and ("monthly" in desc or is_subscription):
        is_subscription = True
        annual = tx.amount * MONTHS_PER_YEAR
    return ChargeScreening(
        is_subscription=is_subscription, is_fee=is_fee, annual_cost=to_money(annual)
    )


# ---------------------------------------------------------------------------
# Detectors
# ---------------------------------------------------------------------------


def _subscriptions(transactions: Sequence[Transaction]) -> list[Opportunity]:
    out: list[Opportunity] = []
    for tx in transactions:
        if not (tx.is_recurring and _mentions(tx.description, SUBSCRIPTION_KEYWORDS)):
            continue
        savings = to_money(tx.amount * MONTHS_PER_YEAR)
        out.append(
            Opportunity(
                type="subscription",
                description=f"Review {tx.merchant_name or tx.description} subscription",
                potential_savings=savings,
                difficulty="easy",
                category=tx.category,
                transactions=(tx,),
                reasoning=(
                    f"This recurring charge of {format_money(tx.amount)} could save "
                    f"{format_money(savings)} annually if cancelled"
                ),
            )
        )
    return out


def _fees(transactions: Sequence[Transaction]) -> list[Opportunity]:
    out: list[Opportunity] = []
    for tx in transactions:
        if not (tx.category == FEE_CATEGORY or _mentions(tx.description, FEE_KEYWORDS)):
            continue
        out.append(
            Opportunity(
                type="fee",
                description=f"Eliminate {tx.description} fee",
                potential_savings=to_money(tx.amount * MONTHS_PER_YEAR),
                difficulty="medium",
                category=tx.category,
                transactions=(tx,),
                reasoning=(
                    f"Bank fees like this {format_money(tx.amount)} charge can often be "
                    "avoided by changing account types or banking habits"
                ),
            )
        )
    return out


def _overspend(
    transactions: Sequence[Transaction], category_aggregates: Sequence[CategorySpending]
) -> list[Opportunity]:
    out: list[Opportunity] = []
    for agg in category_aggregates:
        if agg.total_amount <= OVERSPEND_THRESHOLD:
            continue
        savings = to_money(agg.total_amount * OVERSPEND_REDUCTION * WEEKS_PER_YEAR)
        evidence = tuple(
            tx
            for tx in transactions
            if tx.category == agg.category and tx.transaction_type == "debit"
        )
        out.append(
            Opportunity(
                type="category_overspend",
                description=f"Optimize {agg.category} spending",
                potential_savings=savings,
                difficulty="medium",
                category=agg.category,
                transactions=evidence,
                reasoning=(
                    f"You spent {format_money(agg.total_amount)} on {agg.category} this week. "
                    f"A 20% reduction could save {format_money(savings)} annually"
                ),
            )
        )
    return out


def find_duplicate_transactions(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Return every transaction after the first with the same duplicate key."""

    seen: set[tuple[Decimal, object, str]] = set()
    duplicates: list[Transaction] = []
    for tx in transactions:
        key = (tx.amount, tx.date, tx.description[:DUPLICATE_DESCRIPTION_PREFIX])
        if key in seen:
            duplicates.append(tx)
        else:
            seen.add(key)
    return duplicates


def _duplicates(transactions: Sequence[Transaction]) -> list[Opportunity]:
    duplicates = find_duplicate_transactions(transactions)
    if not duplicates:
        return []
    total = to_money(sum((tx.amount for tx in duplicates), Decimal(0)))
    return [
        Opportunity(
            type="duplicate",
            description="Review potential duplicate charges",
            potential_savings=total,
            difficulty="easy",
            transactions=tuple(duplicates),
            reasoning=(
                f"Found {len(duplicates)} potentially duplicate transactions totaling "
                f"{format_money(total)}"
            ),
        )
    ]


def detect(
    transactions: Sequence[Transaction],
    category_aggregates: Sequence[CategorySpending],
) -> list[Opportunity]:
    """Run all detectors and return opportunities, largest savings first."""

    found = [
        *_subscriptions(transactions),
        *_fees(transactions),
        *_overspend(transactions, category_aggregates),
        *_duplicates(transactions),
    ]
    found.sort(key=lambda o: o.potential_savings, reverse=True)
    _logger.debug(
        "opportunities:detected count=%d types=%s",
        len(found),
        ",".join(sorted({o.type for o in found})),
    )
    return found


__all__ = [
    "ChargeScreening",
    "FEE_KEYWORDS",
    "OVERSPEND_THRESHOLD",
    "SUBSCRIPTION_KEYWORDS",
    "calculate_category_spending",
    "detect",
    "find_duplicate_transactions",
    "screen_charge",
]
