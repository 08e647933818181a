"""
tradeflow.opportunity — Export opportunity scoring.

Pure computation. No I/O. Deterministic for a given record order.

For each distinct (commodity code, description) pair:

    growth_rate = (last_value - first_value) / first_value * 100
    avg_price   = last_value / last_quantity          (0.0 if quantity is 0)
    top_market  = country with the highest total for the commodity code

where first/last are the commodity's own earliest and latest years.

Exclusions (not errors):
    - fewer than 2 distinct years (growth undefined)
    - first-year value of 0 (no baseline to grow from)

Potential tiers (frozen):
    High    growth > 50  AND last_value > 10,000
    Medium  growth > 20  OR  last_value > 50,000
    Low     otherwise

Ranking: tier score descending, then growth descending.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from tradeflow.aggregator import group_sum
from tradeflow.constants import (
    HIGH_GROWTH_THRESHOLD,
    HIGH_VALUE_THRESHOLD,
    MEDIUM_GROWTH_THRESHOLD,
    MEDIUM_VALUE_THRESHOLD,
    NO_TOP_MARKET,
    OPPORTUNITY_LIMIT,
    POTENTIAL_HIGH,
    POTENTIAL_LOW,
    POTENTIAL_MEDIUM,
    POTENTIAL_SCORE,
)
from tradeflow.models import CanonicalRecord, Opportunity

logger = logging.getLogger("tradeflow.opportunity")


@dataclass(slots=True)
class _YearStats:
    value: float = 0.0
    quantity: float = 0.0
    countries: set[str] = field(default_factory=set)


def classify_potential(growth_rate: float, last_value: float) -> str:
    """Map growth and latest-year value to a potential tier."""
    if growth_rate > HIGH_GROWTH_THRESHOLD and last_value > HIGH_VALUE_THRESHOLD:
        return POTENTIAL_HIGH
    if growth_rate > MEDIUM_GROWTH_THRESHOLD or last_value > MEDIUM_VALUE_THRESHOLD:
        return POTENTIAL_MEDIUM
    return POTENTIAL_LOW


def growth_rate(first_value: float, last_value: float) -> float | None:
    """Percentage change, or None when there is no baseline."""
    if first_value == 0:
        return None
    return (last_value - first_value) / first_value * 100


def _top_markets(records: list[CanonicalRecord]) -> dict[int, str]:
    """code → country with the highest total value. Ties keep first encounter."""
    totals = group_sum(records, lambda r: (r.code, r.country))
    best: dict[int, tuple[str, float]] = {}
    for (code, country), total in totals.items():
        current = best.get(code)
        if current is None or total > current[1]:
            best[code] = (country, total)
    return {code: country for code, (country, _) in best.items()}


def score_opportunities(
    records: Iterable[CanonicalRecord],
    limit: int = OPPORTUNITY_LIMIT,
) -> list[Opportunity]:
    """Score every commodity and return the top ``limit`` opportunities."""
    records = list(records)

    stats: dict[tuple[int, str], dict[int, _YearStats]] = {}
    for r in records:
        yearly = stats.setdefault((r.code, r.description), {})
        year_stats = yearly.get(r.year)
        if year_stats is None:
            year_stats = yearly[r.year] = _YearStats()
        year_stats.value += r.value_usd
        year_stats.quantity += r.quantity
        year_stats.countries.add(r.country)

    top_markets = _top_markets(records)
    opportunities: list[Opportunity] = []

    for (code, description), yearly in stats.items():
        if len(yearly) < 2:
            continue

        first = yearly[min(yearly)]
        last = yearly[max(yearly)]

        growth = growth_rate(first.value, last.value)
        if growth is None:
            logger.debug(
                "Skipping %s (%s): zero first-year value", description, code,
            )
            continue

        avg_price = last.value / last.quantity if last.quantity > 0 else 0.0

        opportunities.append(Opportunity(
            commodity=description,
            code=code,
            growth_rate=growth,
            current_value=last.value,
            top_market=top_markets.get(code, NO_TOP_MARKET),
            avg_price=avg_price,
            potential=classify_potential(growth, last.value),
            markets=len(last.countries),
        ))

    opportunities.sort(key=lambda o: (-POTENTIAL_SCORE[o.potential], -o.growth_rate))
    return opportunities[:limit]
