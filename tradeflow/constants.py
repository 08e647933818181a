"""
tradeflow.constants — Single source of truth for pipeline constants.

Every module that needs these values MUST import from here.
Tier thresholds and the forecast band are fixed business rules, not
derived statistically. Changing them changes every downstream ranking.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Raw record field names
# ---------------------------------------------------------------------------

YEAR_FIELD: str = "Year"
MONTH_FIELD: str = "Month"
COUNTRY_FIELD: str = "Country"
DESCRIPTION_FIELD: str = "cmdDesc"
QUANTITY_FIELD: str = "qty"
VALUE_FIELD: str = "Value $"

CODE_FIELD_CANDIDATES: tuple[str, ...] = ("cmdCode", "cmdcode")
"""Commodity code field names, tried in order. Yearly source files are
not consistent about casing."""

# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------

MONTH_ORDER: tuple[str, ...] = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

MONTH_INDEX: dict[str, int] = {name: i for i, name in enumerate(MONTH_ORDER)}

# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

DEFAULT_TOP_N: int = 10
"""Breakdown truncation used by every chart call site."""

# ---------------------------------------------------------------------------
# Opportunity scoring
# ---------------------------------------------------------------------------

OPPORTUNITY_LIMIT: int = 6

HIGH_GROWTH_THRESHOLD: float = 50.0
HIGH_VALUE_THRESHOLD: float = 10_000.0
MEDIUM_GROWTH_THRESHOLD: float = 20.0
MEDIUM_VALUE_THRESHOLD: float = 50_000.0

POTENTIAL_HIGH: str = "High"
POTENTIAL_MEDIUM: str = "Medium"
POTENTIAL_LOW: str = "Low"

POTENTIAL_SCORE: dict[str, int] = {
    POTENTIAL_HIGH: 3,
    POTENTIAL_MEDIUM: 2,
    POTENTIAL_LOW: 1,
}

NO_TOP_MARKET: str = "N/A"

# ---------------------------------------------------------------------------
# Forecasting
# ---------------------------------------------------------------------------

FORECAST_HORIZON: int = 2
FORECAST_BAND: float = 0.15
"""Confidence band half-width as a fraction of the point forecast."""

# ---------------------------------------------------------------------------
# Strategy insights
# ---------------------------------------------------------------------------

GROWTH_SPLIT_YEAR: int = 2021
"""Years <= this value form the early period for fastest-growing detection."""

CONCENTRATION_ALERT_SHARE: float = 40.0

# ---------------------------------------------------------------------------
# Narrative payload caps
# ---------------------------------------------------------------------------

OPPORTUNITY_SAMPLE_SIZE: int = 50
DEMAND_SAMPLE_SIZE: int = 100
SME_SAMPLE_SIZE: int = 30

ROUND_PRECISION: int = 8
"""Decimal places used when floats enter hashing."""
