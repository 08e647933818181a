"""
tradeflow.filters — Multi-dimensional inclusion filter.

Semantics:
    - Empty set for a dimension → no restriction on that dimension
    - Within a dimension → OR (membership)
    - Across dimensions → AND

Pure and total. Membership tests are frozenset lookups, so the cost is
proportional to len(records) × number of active dimensions.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from tradeflow.models import CanonicalRecord

# FilterSpec field → CanonicalRecord attribute
_DIMENSION_ATTRS: tuple[tuple[str, str], ...] = (
    ("years", "year"),
    ("countries", "country"),
    ("commodities", "description"),
    ("codes", "code"),
)


@dataclass(frozen=True, slots=True)
class FilterSpec:
    """Immutable, hashable filter selection. Replace it, never mutate it."""

    years: frozenset[int] = field(default_factory=frozenset)
    countries: frozenset[str] = field(default_factory=frozenset)
    commodities: frozenset[str] = field(default_factory=frozenset)
    codes: frozenset[int] = field(default_factory=frozenset)

    @classmethod
    def from_lists(
        cls,
        years: Iterable[int] | None = None,
        countries: Iterable[str] | None = None,
        commodities: Iterable[str] | None = None,
        codes: Iterable[int] | None = None,
    ) -> FilterSpec:
        return cls(
            years=frozenset(years or ()),
            countries=frozenset(countries or ()),
            commodities=frozenset(commodities or ()),
            codes=frozenset(codes or ()),
        )

    @property
    def active_dimensions(self) -> list[tuple[str, frozenset[Any]]]:
        """(record attribute, allowed values) for every non-empty dimension."""
        active = []
        for spec_field, attr in _DIMENSION_ATTRS:
            allowed = getattr(self, spec_field)
            if allowed:
                active.append((attr, allowed))
        return active

    @property
    def is_empty(self) -> bool:
        return not self.active_dimensions

    def to_dict(self) -> dict[str, list[Any]]:
        return {
            "years": sorted(self.years),
            "countries": sorted(self.countries),
            "commodities": sorted(self.commodities),
            "cmd_codes": sorted(self.codes),
        }


def matches(record: CanonicalRecord, spec: FilterSpec) -> bool:
    """True iff the record passes every active dimension of the spec."""
    return all(getattr(record, attr) in allowed for attr, allowed in spec.active_dimensions)


def apply_filter(
    records: Iterable[CanonicalRecord],
    spec: FilterSpec,
) -> list[CanonicalRecord]:
    """Return the records passing the filter, in input order."""
    active = spec.active_dimensions
    if not active:
        return list(records)
    return [
        r for r in records
        if all(getattr(r, attr) in allowed for attr, allowed in active)
    ]
