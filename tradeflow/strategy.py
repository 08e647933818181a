"""
tradeflow.strategy — Rule-based strategy insight cards.

Derives market concentration and the fastest-growing commodity from the
filtered records and turns them into prioritized recommendation cards.
High-priority cards come first; order within a priority is stable.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from tradeflow.aggregator import group_sum
from tradeflow.constants import CONCENTRATION_ALERT_SHARE, GROWTH_SPLIT_YEAR
from tradeflow.models import CanonicalRecord

CATEGORY_POLICY = "Policy"
CATEGORY_YOUTH_SME = "Youth & SME"
CATEGORY_MARKET = "Market"

PRIORITY_HIGH = "High"
PRIORITY_MEDIUM = "Medium"


@dataclass(frozen=True, slots=True)
class CommodityGrowth:
    name: str
    growth: float


@dataclass(frozen=True, slots=True)
class StrategyInsight:
    title: str
    description: str
    category: str
    priority: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
        }


def market_concentration(records: Iterable[CanonicalRecord]) -> float:
    """Share of total value held by the largest market, in %."""
    totals = group_sum(records, lambda r: r.country)
    grand_total = sum(totals.values())
    if not totals or grand_total == 0:
        return 0.0
    return max(totals.values()) / grand_total * 100


def fastest_growing_commodity(
    records: Iterable[CanonicalRecord],
    split_year: int = GROWTH_SPLIT_YEAR,
) -> CommodityGrowth | None:
    """Commodity with the largest early→late value growth.

    Early covers years <= split_year. A commodity with no early value
    counts as 0% growth. Ties keep first encounter.
    """
    periods: dict[str, list[float]] = {}
    for r in records:
        early_late = periods.setdefault(r.description, [0.0, 0.0])
        early_late[0 if r.year <= split_year else 1] += r.value_usd

    best: CommodityGrowth | None = None
    for name, (early, late) in periods.items():
        growth = (late - early) / early * 100 if early > 0 else 0.0
        if best is None or growth > best.growth:
            best = CommodityGrowth(name=name, growth=growth)
    return best


def strategy_insights(
    records: Iterable[CanonicalRecord],
    split_year: int = GROWTH_SPLIT_YEAR,
) -> list[StrategyInsight]:
    records = list(records)
    share = market_concentration(records)
    market_count = len({r.country for r in records})
    leader = fastest_growing_commodity(records, split_year)

    sector = leader.name if leader else "high-growth sectors"
    focus = leader.name if leader else "emerging sectors"
    focus_growth = f"{leader.growth:.1f}" if leader else "0.0"

    insights = [
        StrategyInsight(
            title="Diversify Export Markets",
            description=(
                f"Your top market represents {share:.1f}% of trade. Expand to "
                f"{market_count} countries to reduce dependency and increase resilience."
            ),
            category=CATEGORY_POLICY,
            priority=PRIORITY_HIGH if share > CONCENTRATION_ALERT_SHARE else PRIORITY_MEDIUM,
        ),
        StrategyInsight(
            title="Youth & SME Export Training",
            description=(
                f"Launch export readiness programs targeting {sector}. Provide mentorship, "
                "market access, and digital tools to engage young entrepreneurs."
            ),
            category=CATEGORY_YOUTH_SME,
            priority=PRIORITY_HIGH,
        ),
        StrategyInsight(
            title="Focus on High-Growth Commodities",
            description=(
                f"Prioritize {focus} showing {focus_growth}% growth. Invest in quality "
                "standards and certifications for premium markets."
            ),
            category=CATEGORY_MARKET,
            priority=PRIORITY_HIGH,
        ),
        StrategyInsight(
            title="SME Export Finance Access",
            description=(
                "Create export credit guarantee schemes for small businesses. Partner with "
                "financial institutions to offer low-interest loans for export-oriented SMEs."
            ),
            category=CATEGORY_YOUTH_SME,
            priority=PRIORITY_HIGH,
        ),
        StrategyInsight(
            title="Quality Certification Programs",
            description=(
                "Establish national certification programs to meet international standards. "
                "This will unlock premium markets and increase unit prices by 15-30%."
            ),
            category=CATEGORY_POLICY,
            priority=PRIORITY_MEDIUM,
        ),
        StrategyInsight(
            title="Digital Export Platform",
            description=(
                "Build a unified digital platform connecting exporters with global buyers. "
                "Include real-time market intelligence, trade documentation, and logistics support."
            ),
            category=CATEGORY_YOUTH_SME,
            priority=PRIORITY_HIGH,
        ),
    ]

    return sorted(insights, key=lambda i: i.priority != PRIORITY_HIGH)
