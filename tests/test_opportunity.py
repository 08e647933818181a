"""
tests/test_opportunity.py — Export opportunity scoring.

Covers:
    - Growth, current value, average price and tier for a two-year commodity
    - Exclusion of single-year and zero-baseline commodities
    - Tier boundaries
    - Ranking by tier then growth, and the result limit
    - Top market resolution across all filtered records

Requires: pytest
"""

from __future__ import annotations

import pytest

from tradeflow.models import CanonicalRecord
from tradeflow.opportunity import classify_potential, growth_rate, score_opportunities


def _rec(
    year: int,
    value: float,
    qty: float = 1.0,
    code: int = 901,
    desc: str = "Coffee",
    country: str = "Kenya",
) -> CanonicalRecord:
    return CanonicalRecord(
        year=year, month="January", country=country, code=code, description=desc,
        quantity=qty, value_usd=value, unit_price=value / qty if qty > 0 else 0.0,
    )


class TestSingleCommodity:
    def test_two_year_growth(self):
        records = [_rec(2020, 1000, qty=10), _rec(2022, 3000, qty=20)]
        [opp] = score_opportunities(records)
        assert opp.growth_rate == pytest.approx(200.0)
        assert opp.current_value == 3000
        assert opp.avg_price == pytest.approx(150.0)
        assert opp.potential == "Medium"
        assert opp.top_market == "Kenya"
        assert opp.markets == 1

    def test_uses_own_first_and_last_year(self):
        records = [
            _rec(2021, 100),
            _rec(2024, 50, code=2609, desc="Tin"),
            _rec(2020, 50, code=2609, desc="Tin"),
            _rec(2022, 150),
        ]
        by_code = {o.code: o for o in score_opportunities(records)}
        assert by_code[901].growth_rate == pytest.approx(50.0)
        assert by_code[2609].growth_rate == pytest.approx(0.0)

    def test_same_year_rows_are_summed(self):
        records = [_rec(2020, 100), _rec(2020, 100), _rec(2021, 300, qty=2), _rec(2021, 100, qty=2)]
        [opp] = score_opportunities(records)
        assert opp.growth_rate == pytest.approx(100.0)
        assert opp.avg_price == pytest.approx(100.0)

    def test_zero_last_quantity_gives_zero_price(self):
        records = [_rec(2020, 100), _rec(2021, 200, qty=0)]
        [opp] = score_opportunities(records)
        assert opp.avg_price == 0.0

    def test_declining_commodity_is_low(self):
        records = [_rec(2020, 1000), _rec(2021, 500)]
        [opp] = score_opportunities(records)
        assert opp.growth_rate == pytest.approx(-50.0)
        assert opp.potential == "Low"


class TestExclusions:
    def test_single_year_excluded(self):
        records = [_rec(2024, 4000, code=709, desc="Vegetables"), _rec(2024, 1000, code=709, desc="Vegetables")]
        assert score_opportunities(records) == []

    def test_zero_baseline_excluded(self):
        records = [_rec(2020, 0), _rec(2021, 5000)]
        assert score_opportunities(records) == []

    def test_empty(self):
        assert score_opportunities([]) == []

    def test_description_and_code_form_the_key(self):
        records = [_rec(2020, 100, desc="Coffee"), _rec(2021, 200, desc="Coffee, green")]
        assert score_opportunities(records) == []


class TestClassification:
    @pytest.mark.parametrize(
        "growth,last,expected",
        [
            (51, 10_001, "High"),
            (50, 10_001, "Medium"),
            (51, 10_000, "Medium"),
            (21, 100, "Medium"),
            (20, 50_001, "Medium"),
            (20, 50_000, "Low"),
            (-10, 1_000, "Low"),
        ],
    )
    def test_tier_boundaries(self, growth, last, expected):
        assert classify_potential(growth, last) == expected

    def test_growth_rate_none_without_baseline(self):
        assert growth_rate(0, 100) is None
        assert growth_rate(50, 100) == pytest.approx(100.0)


class TestRanking:
    def test_tier_before_growth(self):
        records = [
            # Low: -10%
            _rec(2020, 100, code=1, desc="A"), _rec(2021, 90, code=1, desc="A"),
            # Medium: 300% but small
            _rec(2020, 100, code=2, desc="B"), _rec(2021, 400, code=2, desc="B"),
            # High: 60% and large
            _rec(2020, 10_000, code=3, desc="C"), _rec(2021, 16_000, code=3, desc="C"),
        ]
        ranked = score_opportunities(records)
        assert [o.commodity for o in ranked] == ["C", "B", "A"]

    def test_growth_within_tier(self):
        records = [
            _rec(2020, 100, code=1, desc="A"), _rec(2021, 150, code=1, desc="A"),
            _rec(2020, 100, code=2, desc="B"), _rec(2021, 180, code=2, desc="B"),
        ]
        assert [o.commodity for o in score_opportunities(records)] == ["B", "A"]

    def test_limit(self):
        records = []
        for code in range(1, 10):
            records += [_rec(2020, 100, code=code, desc=f"C{code}"), _rec(2021, 100 + code, code=code, desc=f"C{code}")]
        assert len(score_opportunities(records)) == 6
        assert len(score_opportunities(records, limit=3)) == 3


class TestTopMarket:
    def test_highest_total_country_for_code(self):
        records = [
            _rec(2020, 100, country="Uganda"),
            _rec(2021, 100, country="Kenya"),
            _rec(2021, 150, country="Kenya"),
        ]
        [opp] = score_opportunities(records)
        assert opp.top_market == "Kenya"

    def test_tie_keeps_first_encounter(self):
        records = [_rec(2020, 100, country="Uganda"), _rec(2021, 100, country="Kenya")]
        [opp] = score_opportunities(records)
        assert opp.top_market == "Uganda"

    def test_markets_counts_last_year_countries(self):
        records = [
            _rec(2020, 100, country="Uganda"),
            _rec(2021, 100, country="Kenya"),
            _rec(2021, 100, country="Belgium"),
        ]
        [opp] = score_opportunities(records)
        assert opp.markets == 2
