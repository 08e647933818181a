"""
tradeflow.models — Immutable value objects shared by the pipeline.

All objects are frozen dataclasses. They are created once by the stage
that derives them and never mutated afterwards. ``to_dict()`` returns
the JSON shape served by the API and embedded in narrative payloads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class CanonicalRecord:
    """Normalized trade row with resolved, defaulted fields.

    ``unit_price`` is ``value_usd / quantity`` when quantity is positive,
    otherwise exactly 0.0.
    """

    year: int
    month: str
    country: str
    code: int
    description: str
    quantity: float
    value_usd: float
    unit_price: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "year": self.year,
            "month": self.month,
            "country": self.country,
            "cmd_code": self.code,
            "commodity": self.description,
            "qty": self.quantity,
            "value_usd": self.value_usd,
            "unit_price": self.unit_price,
        }


@dataclass(frozen=True, slots=True)
class AggregateRow:
    """A grouping key paired with its summed trade value."""

    group_key: Any
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {"group_key": self.group_key, "value": self.value}


@dataclass(frozen=True, slots=True)
class MonthlyPoint:
    year: int
    month: str
    value: float

    @property
    def period(self) -> str:
        """Short axis label, e.g. ``"Jan 2020"``."""
        return f"{self.month[:3]} {self.year}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "year": self.year,
            "month": self.month,
            "period": self.period,
            "value": self.value,
        }


@dataclass(frozen=True, slots=True)
class TradeSummary:
    total_records: int
    total_value: float
    avg_unit_price: float
    unique_countries: int
    unique_commodities: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_records": self.total_records,
            "total_value": self.total_value,
            "avg_unit_price": self.avg_unit_price,
            "unique_countries": self.unique_countries,
            "unique_commodities": self.unique_commodities,
        }


@dataclass(frozen=True, slots=True)
class Opportunity:
    """Export opportunity derived for one (code, description) pair."""

    commodity: str
    code: int
    growth_rate: float
    current_value: float
    top_market: str
    avg_price: float
    potential: str
    markets: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "commodity": self.commodity,
            "cmd_code": self.code,
            "growth_rate": self.growth_rate,
            "current_value": self.current_value,
            "top_market": self.top_market,
            "avg_price": self.avg_price,
            "potential": self.potential,
            "markets": self.markets,
        }


@dataclass(frozen=True, slots=True)
class ForecastPoint:
    """Either a historical point (``actual`` set) or a projection
    (``forecast`` and both bounds set). Never both."""

    year: int
    actual: float | None = None
    forecast: float | None = None
    lower_bound: float | None = None
    upper_bound: float | None = None

    @property
    def is_projection(self) -> bool:
        return self.forecast is not None

    @property
    def headline(self) -> float:
        """The forecast for projections, the actual value otherwise."""
        if self.forecast is not None:
            return self.forecast
        return self.actual if self.actual is not None else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "year": self.year,
            "actual": self.actual,
            "forecast": self.forecast,
            "lower_bound": self.lower_bound,
            "upper_bound": self.upper_bound,
        }


@dataclass(frozen=True, slots=True)
class LinearFit:
    """Ordinary least squares line ``value = slope * year + intercept``."""

    slope: float
    intercept: float

    def predict(self, year: float) -> float:
        return self.slope * year + self.intercept


@dataclass(frozen=True, slots=True)
class ForecastResult:
    points: tuple[ForecastPoint, ...]
    fit: LinearFit | None
    projected_growth: float

    @property
    def historical(self) -> tuple[ForecastPoint, ...]:
        return tuple(p for p in self.points if not p.is_projection)

    @property
    def projections(self) -> tuple[ForecastPoint, ...]:
        return tuple(p for p in self.points if p.is_projection)

    def to_dict(self) -> dict[str, Any]:
        return {
            "points": [p.to_dict() for p in self.points],
            "slope": self.fit.slope if self.fit else None,
            "intercept": self.fit.intercept if self.fit else None,
            "projected_growth": self.projected_growth,
        }
