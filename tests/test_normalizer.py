"""
tests/test_normalizer.py — Raw row → CanonicalRecord normalization.

Covers:
    - Commodity code alias resolution (cmdCode → cmdcode → 0)
    - Default substitution for missing / falsy / non-numeric numerics
    - Unit price, including the zero-quantity sentinel
    - Length and order preservation

Requires: pytest
"""

from __future__ import annotations

import math

import pytest

from tradeflow.models import CanonicalRecord
from tradeflow.normalizer import normalize_record, normalize_records, unit_price


def _raw(**overrides) -> dict:
    row = {
        "Year": 2021,
        "Month": "March",
        "Country": "Kenya",
        "cmdCode": 901,
        "cmdDesc": "Coffee, not roasted",
        "qty": 20,
        "Value $": 3000,
    }
    row.update(overrides)
    return row


class TestCodeResolution:
    def test_primary_field(self):
        assert normalize_record(_raw(cmdCode=901)).code == 901

    def test_alias_used_when_primary_missing(self):
        row = _raw()
        del row["cmdCode"]
        row["cmdcode"] = 2609
        assert normalize_record(row).code == 2609

    def test_alias_used_when_primary_falsy(self):
        row = _raw(cmdCode=0, cmdcode=902)
        assert normalize_record(row).code == 902

    def test_primary_wins_over_alias(self):
        row = _raw(cmdCode=901, cmdcode=902)
        assert normalize_record(row).code == 901

    def test_both_absent_defaults_to_zero(self):
        row = _raw()
        del row["cmdCode"]
        assert normalize_record(row).code == 0

    def test_numeric_string_code(self):
        assert normalize_record(_raw(cmdCode="709")).code == 709


class TestDefaults:
    def test_missing_value_is_zero(self):
        row = _raw()
        del row["Value $"]
        rec = normalize_record(row)
        assert rec.value_usd == 0.0
        assert rec.unit_price == 0.0

    def test_missing_quantity_is_zero(self):
        row = _raw()
        del row["qty"]
        rec = normalize_record(row)
        assert rec.quantity == 0.0
        assert rec.unit_price == 0.0

    @pytest.mark.parametrize("bad", [None, "", "n/a", float("nan"), float("inf"), [1]])
    def test_unusable_numbers_are_zero(self, bad):
        rec = normalize_record(_raw(qty=bad, **{"Value $": bad}))
        assert rec.quantity == 0.0
        assert rec.value_usd == 0.0

    def test_missing_strings_are_empty(self):
        rec = normalize_record({"Year": 2020})
        assert rec.month == ""
        assert rec.country == ""
        assert rec.description == ""
        assert rec.code == 0

    def test_empty_row_never_raises(self):
        rec = normalize_record({})
        assert rec == CanonicalRecord(
            year=0, month="", country="", code=0, description="",
            quantity=0.0, value_usd=0.0, unit_price=0.0,
        )


class TestUnitPrice:
    def test_value_over_quantity(self):
        rec = normalize_record(_raw(qty=20, **{"Value $": 3000}))
        assert rec.unit_price == 150.0

    def test_zero_quantity_is_exactly_zero(self):
        rec = normalize_record(_raw(qty=0, **{"Value $": 3000}))
        assert rec.unit_price == 0.0
        assert not math.isnan(rec.unit_price)
        assert not math.isinf(rec.unit_price)

    def test_negative_quantity_is_zero(self):
        assert unit_price(100.0, -5.0) == 0.0


class TestNormalizeRecords:
    def test_preserves_length_and_order(self):
        rows = [_raw(Country=c) for c in ("Kenya", "Belgium", "Uganda")]
        records = normalize_records(rows)
        assert [r.country for r in records] == ["Kenya", "Belgium", "Uganda"]

    def test_records_are_frozen(self):
        rec = normalize_record(_raw())
        with pytest.raises(AttributeError):
            rec.value_usd = 1.0  # type: ignore[misc]

    def test_to_dict_shape(self):
        d = normalize_record(_raw()).to_dict()
        assert set(d) == {
            "year", "month", "country", "cmd_code", "commodity",
            "qty", "value_usd", "unit_price",
        }
