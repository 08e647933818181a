"""
tradeflow.forecast — Linear trend projection over yearly totals.

    slope     = (nΣxy − ΣxΣy) / (nΣx² − (Σx)²)
    intercept = (Σy − slope·Σx) / n
    forecast  = slope·year + intercept
    bounds    = forecast × (1 ∓ FORECAST_BAND)

The band is fixed, not derived from residual variance.

Degenerate inputs:
    - fewer than 2 yearly points or a zero denominator → no fit, the
      result carries the historical points only
    - projected growth is 0.0 when there is no baseline (fewer than 2
      points, or a first-year total of 0)
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from tradeflow.aggregator import yearly_totals
from tradeflow.constants import FORECAST_BAND, FORECAST_HORIZON
from tradeflow.models import CanonicalRecord, ForecastPoint, ForecastResult, LinearFit


def fit_linear(points: Sequence[tuple[float, float]]) -> LinearFit | None:
    """Ordinary least squares fit of (x, y) pairs. None if undefined."""
    n = len(points)
    if n < 2:
        return None

    sum_x = sum(x for x, _ in points)
    sum_y = sum(y for _, y in points)
    sum_xy = sum(x * y for x, y in points)
    sum_x2 = sum(x * x for x, _ in points)

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return None

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n
    return LinearFit(slope=slope, intercept=intercept)


def projected_growth(points: Sequence[ForecastPoint]) -> float:
    """Growth from the first actual to the last point's headline value, in %."""
    if len(points) < 2:
        return 0.0
    first = points[0].actual
    if not first:
        return 0.0
    return (points[-1].headline - first) / first * 100


def forecast_trend(
    records: Iterable[CanonicalRecord],
    horizon: int = FORECAST_HORIZON,
    band: float = FORECAST_BAND,
) -> ForecastResult:
    """Historical yearly totals followed by ``horizon`` projected years."""
    totals = yearly_totals(records)
    historical = [ForecastPoint(year=row.group_key, actual=row.value) for row in totals]

    fit = fit_linear([(row.group_key, row.value) for row in totals])
    projections: list[ForecastPoint] = []
    if fit is not None:
        last_year = max(row.group_key for row in totals)
        for year in range(last_year + 1, last_year + horizon + 1):
            value = fit.predict(year)
            projections.append(ForecastPoint(
                year=year,
                forecast=value,
                lower_bound=value * (1 - band),
                upper_bound=value * (1 + band),
            ))

    points = tuple(historical + projections)
    return ForecastResult(
        points=points,
        fit=fit,
        projected_growth=projected_growth(points),
    )
