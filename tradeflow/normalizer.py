"""
tradeflow.normalizer — Raw trade rows to canonical records.

Tolerant by construction: a malformed row is never an error.
    - Commodity code is resolved from CODE_FIELD_CANDIDATES in order;
      the first truthy value wins, none → 0
    - Missing, falsy, non-numeric, NaN or Inf quantity/value → 0
    - Missing strings → ""
    - unit_price = value / quantity when quantity > 0, else 0.0
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

from tradeflow.constants import (
    CODE_FIELD_CANDIDATES,
    COUNTRY_FIELD,
    DESCRIPTION_FIELD,
    MONTH_FIELD,
    QUANTITY_FIELD,
    VALUE_FIELD,
    YEAR_FIELD,
)
from tradeflow.models import CanonicalRecord


def _first_truthy(raw: Mapping[str, Any], candidates: tuple[str, ...]) -> Any:
    for name in candidates:
        value = raw.get(name)
        if value:
            return value
    return None


def _coerce_number(value: Any) -> float:
    """Coerce to a finite float. Anything unusable becomes 0.0."""
    if not value:
        return 0.0
    try:
        fval = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(fval) or math.isinf(fval):
        return 0.0
    return fval


def _coerce_int(value: Any) -> int:
    return int(_coerce_number(value))


def unit_price(value_usd: float, quantity: float) -> float:
    """Value per unit. Zero or negative quantity gives 0.0, never NaN/Inf."""
    if quantity > 0:
        return value_usd / quantity
    return 0.0


def normalize_record(raw: Mapping[str, Any]) -> CanonicalRecord:
    """Convert one raw mapping into a CanonicalRecord."""
    value_usd = _coerce_number(raw.get(VALUE_FIELD))
    quantity = _coerce_number(raw.get(QUANTITY_FIELD))

    return CanonicalRecord(
        year=_coerce_int(raw.get(YEAR_FIELD)),
        month=str(raw.get(MONTH_FIELD) or ""),
        country=str(raw.get(COUNTRY_FIELD) or ""),
        code=_coerce_int(_first_truthy(raw, CODE_FIELD_CANDIDATES)),
        description=str(raw.get(DESCRIPTION_FIELD) or ""),
        quantity=quantity,
        value_usd=value_usd,
        unit_price=unit_price(value_usd, quantity),
    )


def normalize_records(raws: Iterable[Mapping[str, Any]]) -> list[CanonicalRecord]:
    """Normalize a sequence of raw rows, preserving length and order."""
    return [normalize_record(raw) for raw in raws]
