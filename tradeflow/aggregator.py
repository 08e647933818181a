"""
tradeflow.aggregator — Generic group-sum → rank → top-N.

One shape, reused for every breakdown:

    group_sum(records, key_fn, value_fn)   → {key: total} in first-encounter order
    rank_top_n(groups, n)                  → [AggregateRow] descending, stable

Ties on equal totals keep the order in which their keys were first seen
while scanning the input. The month series is the exception: it is
ordered chronologically and never truncated.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Mapping
from typing import TypeVar

from tradeflow.constants import DEFAULT_TOP_N, MONTH_INDEX
from tradeflow.models import AggregateRow, CanonicalRecord, MonthlyPoint, TradeSummary

K = TypeVar("K", bound=Hashable)


def trade_value(record: CanonicalRecord) -> float:
    return record.value_usd


def group_sum(
    records: Iterable[CanonicalRecord],
    key_fn: Callable[[CanonicalRecord], K],
    value_fn: Callable[[CanonicalRecord], float] = trade_value,
) -> dict[K, float]:
    """Sum value_fn per key_fn group. Dict order is first-encounter order."""
    totals: dict[K, float] = {}
    for record in records:
        key = key_fn(record)
        totals[key] = totals.get(key, 0.0) + value_fn(record)
    return totals


def rank_top_n(groups: Mapping[K, float], n: int) -> list[AggregateRow]:
    """Sort groups descending by total and keep the first n.

    Python's sort is stable, so equal totals stay in mapping order.
    """
    if n < 0:
        raise ValueError(f"n must be non-negative, got {n}")
    ranked = sorted(groups.items(), key=lambda item: -item[1])
    return [AggregateRow(group_key=key, value=total) for key, total in ranked[:n]]


def top_n(
    records: Iterable[CanonicalRecord],
    key_fn: Callable[[CanonicalRecord], K],
    n: int = DEFAULT_TOP_N,
    value_fn: Callable[[CanonicalRecord], float] = trade_value,
) -> list[AggregateRow]:
    return rank_top_n(group_sum(records, key_fn, value_fn), n)


# ---------------------------------------------------------------------------
# Breakdowns
# ---------------------------------------------------------------------------

def by_country(records: Iterable[CanonicalRecord], n: int = DEFAULT_TOP_N) -> list[AggregateRow]:
    return top_n(records, lambda r: r.country, n)


def by_commodity(records: Iterable[CanonicalRecord], n: int = DEFAULT_TOP_N) -> list[AggregateRow]:
    return top_n(records, lambda r: r.description, n)


def by_code(records: Iterable[CanonicalRecord], n: int = DEFAULT_TOP_N) -> list[AggregateRow]:
    return top_n(records, lambda r: r.code, n)


BREAKDOWNS: dict[str, Callable[[Iterable[CanonicalRecord], int], list[AggregateRow]]] = {
    "country": by_country,
    "commodity": by_commodity,
    "code": by_code,
}


# ---------------------------------------------------------------------------
# Time series
# ---------------------------------------------------------------------------

def _month_rank(month: str) -> int:
    # Unknown month names sort ahead of January.
    return MONTH_INDEX.get(month, -1)


def monthly_series(records: Iterable[CanonicalRecord]) -> list[MonthlyPoint]:
    """Full (year, month) series, year ascending then January…December."""
    totals = group_sum(records, lambda r: (r.year, r.month))
    ordered = sorted(totals.items(), key=lambda item: (item[0][0], _month_rank(item[0][1])))
    return [
        MonthlyPoint(year=year, month=month, value=total)
        for (year, month), total in ordered
    ]


def yearly_totals(records: Iterable[CanonicalRecord]) -> list[AggregateRow]:
    """Full yearly series in ascending year order."""
    totals = group_sum(records, lambda r: r.year)
    return [AggregateRow(group_key=year, value=totals[year]) for year in sorted(totals)]


# ---------------------------------------------------------------------------
# Summary cards
# ---------------------------------------------------------------------------

def summarize(records: Iterable[CanonicalRecord]) -> TradeSummary:
    """Headline totals. The average unit price of an empty set is 0.0."""
    records = list(records)
    count = len(records)
    total_value = sum(r.value_usd for r in records)
    avg_unit_price = sum(r.unit_price for r in records) / count if count else 0.0
    return TradeSummary(
        total_records=count,
        total_value=total_value,
        avg_unit_price=avg_unit_price,
        unique_countries=len({r.country for r in records}),
        unique_commodities=len({r.description for r in records}),
    )
