"""Turn detected opportunities into a short, ranked list of recommendations.

At most ``MAX_OPPORTUNITIES`` opportunities (already sorted by savings) are
phrased as advice; the i-th receives ``priority = n - i``. Difficulty,
confidence, time estimate, description and action steps come from fixed
per-type tables. When the top spending category exceeds
``TRACKING_THRESHOLD`` a category-tracking recommendation is appended with
priority 3. The final list is ordered by priority, highest first (stable for
ties).
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Sequence
from decimal import Decimal

from .models import (
    CategorySpending,
    Impact,
    Opportunity,
    OpportunityType,
    Recommendation,
    RecommendationType,
    format_money,
    to_money,
)

MAX_OPPORTUNITIES = 5
TRACKING_THRESHOLD = Decimal("100")
TRACKING_REDUCTION = Decimal("0.15")
TRACKING_PRIORITY = 3
WEEKS_PER_YEAR = 52

_TYPE_MAP: dict[OpportunityType, RecommendationType] = {
    "subscription": "eliminate_fee",
    "fee": "eliminate_fee",
    "category_overspend": "optimize",
    "duplicate": "save",
}

_CONFIDENCE: dict[OpportunityType, float] = {
    "subscription": 0.9,
    "fee": 0.8,
    "duplicate": 0.95,
    "category_overspend": 0.7,
}

_TIME_TO_IMPLEMENT: dict[OpportunityType, str] = {
    "subscription": "5 minutes",
    "fee": "15 minutes",
    "duplicate": "10 minutes",
    "category_overspend": "1 hour",
}

_DESCRIPTIONS: dict[OpportunityType, str] = {
    "subscription": (
        "Review this recurring subscription to determine if it's still providing value. "
        "Consider cancelling or downgrading to a cheaper plan."
    ),
    "fee": (
        "This fee can likely be avoided by changing your banking habits or account type. "
        "Contact your bank to discuss options."
    ),
    "category_overspend": (
        "Look for ways to reduce spending in this category through budgeting, "
        "finding alternatives, or changing habits."
    ),
    "duplicate": (
        "Review these transactions to ensure they're not duplicates or unauthorized "
        "charges. Contact your bank if needed."
    ),
}


def _action_steps(opportunity: Opportunity) -> list[str]:
    match opportunity.type:
        case "subscription":
            return [
                "Log into your account or app",
                "Navigate to subscription/billing settings",
                "Cancel or downgrade the subscription",
                "Confirm cancellation via email",
            ]
        case "fee":
            return [
                "Call your bank or visit a branch",
                "Ask about fee-free account options",
                "Understand what triggers the fee",
                "Set up account alerts to avoid future fees",
            ]
        case "category_overspend":
            return [
                f"Set a weekly budget for {opportunity.category}",
                "Track spending in this category daily",
                "Look for cheaper alternatives",
                "Review and adjust weekly",
            ]
        case "duplicate":
            return [
                "Review the transactions carefully",
                "Contact merchants for any duplicates",
                "Dispute charges with your bank if needed",
                "Monitor future statements closely",
            ]
    raise ValueError(f"unknown opportunity type: {opportunity.type!r}")


def categorize_impact(potential_savings: Decimal) -> Impact:
    if potential_savings < 100:
        return "low"
    if potential_savings < 500:
        return "medium"
    return "high"


def _tracking_recommendation(
    top: CategorySpending, new_id: Callable[[], str]
) -> Recommendation:
    savings = to_money(top.total_amount * TRACKING_REDUCTION * WEEKS_PER_YEAR)
    budget = to_money(top.total_amount * (1 - TRACKING_REDUCTION))
    return Recommendation(
        id=new_id(),
        type="save",
        title=f"Track {top.category} spending more closely",
        description=(
            f"You spent {format_money(top.total_amount)} on {top.category} this week "
            f"({top.percent_of_total:.1f}% of total spending). "
            "Consider setting a weekly budget for this category."
        ),
        potential_savings=savings,
        difficulty="easy",
        priority=TRACKING_PRIORITY,
        action_steps=[
            f"Set a weekly budget of {format_money(budget)} for {top.category}",
            "Track spending in this category daily",
            "Look for alternatives or ways to reduce costs",
            "Review progress weekly",
        ],
        reasoning=(
            "This is your highest spending category. "
            "Small reductions here can have significant impact."
        ),
        category=top.category,
        confidence=0.8,
        estimated_time_to_implement="10 minutes",
        impact=categorize_impact(savings),
    )


def synthesize(
    opportunities: Sequence[Opportunity],
    category_aggregates: Sequence[CategorySpending],
    *,
    id_factory: Callable[[], str] | None = None,
) -> list[Recommendation]:
    """Build recommendations from the top ``opportunities`` by savings.

    ``category_aggregates`` must be sorted by total, largest first; only its
    head is consulted.
    """

    new_id = id_factory or (lambda: str(uuid.uuid4()))
    ranked = sorted(opportunities, key=lambda o: o.potential_savings, reverse=True)
    selected = ranked[:MAX_OPPORTUNITIES]
    n = len(selected)

    recs: list[Recommendation] = []
    for i, opp in enumerate(selected):
        recs.append(
            Recommendation(
                id=new_id(),
                type=_TYPE_MAP[opp.type],
                title=opp.description,
                description=_DESCRIPTIONS[opp.type],
                potential_savings=to_money(opp.potential_savings),
                difficulty=opp.difficulty,
                priority=n - i,
                action_steps=_action_steps(opp),
                reasoning=opp.reasoning,
                category=opp.category,
                confidence=_CONFIDENCE[opp.type],
                estimated_time_to_implement=_TIME_TO_IMPLEMENT[opp.type],
                impact=categorize_impact(opp.potential_savings),
            )
        )

    if category_aggregates and category_aggregates[0].total_amount > TRACKING_THRESHOLD:
        recs.append(_tracking_recommendation(category_aggregates[0], new_id))

    recs.sort(key=lambda r: r.priority, reverse=True)
    return recs


__all__ = ["MAX_OPPORTUNITIES", "categorize_impact", "synthesize"]
