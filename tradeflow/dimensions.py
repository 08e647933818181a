"""
tradeflow.dimensions — Distinct, sorted option lists per filterable dimension.

Options are filter-independent: compute them once per dataset load.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from tradeflow.models import CanonicalRecord


@dataclass(frozen=True, slots=True)
class DimensionOptions:
    years: tuple[int, ...]
    countries: tuple[str, ...]
    commodities: tuple[str, ...]
    codes: tuple[int, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "years": list(self.years),
            "countries": list(self.countries),
            "commodities": list(self.commodities),
            "cmd_codes": list(self.codes),
        }


def unique_years(records: Iterable[CanonicalRecord]) -> list[int]:
    return sorted({r.year for r in records})


def unique_countries(records: Iterable[CanonicalRecord]) -> list[str]:
    return sorted({r.country for r in records})


def unique_commodities(records: Iterable[CanonicalRecord]) -> list[str]:
    return sorted({r.description for r in records})


def unique_codes(records: Iterable[CanonicalRecord]) -> list[int]:
    return sorted({r.code for r in records})


def extract_dimensions(records: Iterable[CanonicalRecord]) -> DimensionOptions:
    records = list(records)
    return DimensionOptions(
        years=tuple(unique_years(records)),
        countries=tuple(unique_countries(records)),
        commodities=tuple(unique_commodities(records)),
        codes=tuple(unique_codes(records)),
    )
