"""
tradeflow.hashing — Deterministic fingerprints for datasets and filters.

The dataset version keys every memoized analysis: two loads of the same
records in the same order produce the same version. Hash inputs are
JSON-encoded field lists, one per line, newline-terminated, UTF-8.
JSON quoting keeps free-text fields from running into each other.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable

from tradeflow.constants import ROUND_PRECISION
from tradeflow.filters import FilterSpec
from tradeflow.models import CanonicalRecord


def canonical_float(value: float) -> str:
    """Fixed-point representation with exactly ROUND_PRECISION decimals.

    canonical_float(0.5)    → "0.50000000"
    canonical_float(1200.0) → "1200.00000000"
    """
    return f"{round(value, ROUND_PRECISION):.{ROUND_PRECISION}f}"


def _record_line(record: CanonicalRecord) -> str:
    return json.dumps([
        str(record.year),
        record.month,
        record.country,
        str(record.code),
        record.description,
        canonical_float(record.quantity),
        canonical_float(record.value_usd),
    ], ensure_ascii=False)


def compute_dataset_hash(records: Iterable[CanonicalRecord]) -> str:
    """SHA-256 over every record in load order.

    Order matters: it decides first-encounter tie-breaks downstream.
    """
    h = hashlib.sha256()
    count = 0
    for record in records:
        h.update((_record_line(record) + "\n").encode("utf-8"))
        count += 1
    h.update(f"count={count}\n".encode("utf-8"))
    return h.hexdigest()


def compute_filter_key(spec: FilterSpec) -> str:
    """Order-independent text key for a filter selection."""
    hash_input = json.dumps({
        "years": sorted(spec.years),
        "countries": sorted(spec.countries),
        "commodities": sorted(spec.commodities),
        "codes": sorted(spec.codes),
    }, ensure_ascii=False) + "\n"
    return hashlib.sha256(hash_input.encode("utf-8")).hexdigest()
