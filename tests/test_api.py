"""
tests/test_api.py — HTTP contract of the trade analytics API.

Covers:
    - Metadata, liveness and readiness probes
    - Dimension options and every analysis endpoint over the packaged data
    - Tolerant request body (empty body, aliases, unknown fields, nulls)
    - Error contract: 400 INVALID_ANALYSIS_INPUT, 404, 503, 502
    - Analysis memoization visible through /ready cache stats
    - Narrative insight endpoints with an in-process fake HTTP session

All analysis tests run against the packaged 2020–2024 dataset.
"""

from __future__ import annotations

import dataclasses

import pytest
import requests
from fastapi.testclient import TestClient

from tradeflow import api
from tradeflow.narrative import GeminiClient, GroqClient, NarrativeService

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def client() -> TestClient:
    return TestClient(api.app)


@pytest.fixture(autouse=True)
def _fresh_state():
    api.limiter.reset()
    api.reset_state()
    yield
    api.reset_state()


class _FakeResponse:
    def __init__(self, payload):
        self._payload = payload
        self.status_code = 200
        self.reason = "OK"
        self.ok = True

    def json(self):
        return self._payload


class _FakeSession:
    def __init__(self, payload=None, exc=None):
        self.payload = payload
        self.exc = exc
        self.calls = 0

    def post(self, url, **kwargs):
        self.calls += 1
        if self.exc is not None:
            raise self.exc
        return _FakeResponse(self.payload)


# ---------------------------------------------------------------------------
# Metadata and probes
# ---------------------------------------------------------------------------

class TestProbes:
    def test_root(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        body = resp.json()
        assert body["name"] == "tradeflow"
        assert body["records"] == 21
        assert body["source_years"] == [2020, 2021, 2022, 2023, 2024]
        assert len(body["dataset_version"]) == 64

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.headers["Cache-Control"] == "no-store"

    def test_ready(self, client):
        resp = client.get("/ready")
        assert resp.status_code == 200
        body = resp.json()
        assert body["ready"] is True
        assert body["status"] == "healthy"
        assert body["record_count"] == 21
        assert set(body["cache"]) == {"max_slots", "slots_used", "hits", "misses"}

    def test_request_id_echoed(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert resp.headers["X-Request-ID"] == "abc123"

    def test_security_headers(self, client):
        resp = client.get("/dimensions")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert resp.headers["Cache-Control"].startswith("public")


class TestDataUnavailable:
    def test_missing_data_is_503(self, client, monkeypatch, tmp_path):
        monkeypatch.setattr(
            api, "settings", dataclasses.replace(api.settings, data_dir=tmp_path / "missing"),
        )
        assert client.post("/summary").status_code == 503
        assert client.get("/dimensions").status_code == 503

    def test_ready_reports_degraded(self, client, monkeypatch, tmp_path):
        monkeypatch.setattr(
            api, "settings", dataclasses.replace(api.settings, data_dir=tmp_path / "missing"),
        )
        body = client.get("/ready").json()
        assert body["ready"] is False
        assert body["status"] == "degraded"
        assert body["record_count"] == 0


# ---------------------------------------------------------------------------
# Dimensions
# ---------------------------------------------------------------------------

class TestDimensions:
    def test_options(self, client):
        body = client.get("/dimensions").json()
        assert body["years"] == [2020, 2021, 2022, 2023, 2024]
        assert body["countries"] == ["Belgium", "Kenya", "Uganda", "United States"]
        assert body["cmd_codes"] == [709, 901, 902, 2609]
        assert body["commodities"] == [
            "Coffee, not roasted", "Tea, black",
            "Tin ores and concentrates", "Vegetables, fresh",
        ]

    def test_etag_roundtrip(self, client):
        first = client.get("/dimensions")
        etag = first.headers["ETag"]
        second = client.get("/dimensions", headers={"If-None-Match": etag})
        assert second.status_code == 304


# ---------------------------------------------------------------------------
# Analysis endpoints
# ---------------------------------------------------------------------------

class TestSummary:
    def test_empty_body_means_no_filter(self, client):
        body = client.post("/summary").json()
        assert body["total_records"] == 21
        assert body["total_value"] == 504_000
        assert body["unique_countries"] == 4
        assert body["unique_commodities"] == 4

    def test_code_alias(self, client):
        body = client.post("/summary", json={"cmdCodes": [901]}).json()
        assert body["total_records"] == 9
        assert body["total_value"] == 140_000

    def test_snake_case_name_accepted(self, client):
        body = client.post("/summary", json={"cmd_codes": [901]}).json()
        assert body["total_records"] == 9

    def test_filters_combine(self, client):
        body = client.post("/summary", json={"countries": ["Kenya"], "years": [2024]}).json()
        assert body["total_records"] == 2
        assert body["total_value"] == 38_000

    def test_null_lists_and_unknown_fields(self, client):
        body = client.post("/summary", json={"years": None, "theme": "dark"}).json()
        assert body["total_records"] == 21

    def test_no_match_gives_zeroes(self, client):
        body = client.post("/summary", json={"countries": ["Atlantis"]}).json()
        assert body["total_records"] == 0
        assert body["avg_unit_price"] == 0.0

    def test_no_store_on_post(self, client):
        assert client.post("/summary").headers["Cache-Control"] == "no-store"


class TestBreakdown:
    def test_country_top_n(self, client):
        body = client.post("/breakdown/country", json={"topN": 2}).json()
        assert body["dimension"] == "country"
        assert body["top_n"] == 2
        assert body["rows"] == [
            {"group_key": "Belgium", "value": 230_000},
            {"group_key": "Kenya", "value": 137_000},
        ]

    def test_code(self, client):
        rows = client.post("/breakdown/code").json()["rows"]
        assert [r["group_key"] for r in rows] == [2609, 901, 902, 709]

    def test_commodity(self, client):
        rows = client.post("/breakdown/commodity", json={"top_n": 1}).json()["rows"]
        assert rows == [{"group_key": "Tin ores and concentrates", "value": 222_000}]

    def test_unknown_dimension(self, client):
        assert client.post("/breakdown/region").status_code == 404


class TestMonthly:
    def test_chronological_series(self, client):
        points = client.post("/timeseries/monthly").json()["points"]
        assert len(points) == 16
        assert points[0] == {"year": 2020, "month": "January", "period": "Jan 2020", "value": 20_000}
        feb_2022 = next(p for p in points if p["year"] == 2022 and p["month"] == "February")
        assert feb_2022["value"] == 50_000
        keys = [(p["year"], p["month"]) for p in points]
        assert keys[-1] == (2024, "December")


class TestOpportunities:
    def test_ranked(self, client):
        opps = client.post("/opportunities").json()["opportunities"]
        assert [(o["cmd_code"], o["potential"]) for o in opps] == [
            (901, "High"), (902, "High"), (2609, "Medium"),
        ]
        assert opps[2]["growth_rate"] == pytest.approx(30.0)
        assert opps[2]["top_market"] == "Belgium"

    def test_limit(self, client):
        opps = client.post("/opportunities", json={"limit": 1}).json()["opportunities"]
        assert len(opps) == 1

    def test_filtered_to_one_market(self, client):
        opps = client.post("/opportunities", json={"countries": ["Kenya"]}).json()["opportunities"]
        assert [o["cmd_code"] for o in opps] == [902]
        assert opps[0]["top_market"] == "Kenya"


class TestForecast:
    def test_projection(self, client):
        body = client.post("/forecast").json()
        points = body["points"]
        assert [p["year"] for p in points] == list(range(2020, 2027))
        assert body["slope"] == pytest.approx(13_300.0)
        assert points[5]["forecast"] == pytest.approx(140_700.0)
        assert points[6]["forecast"] == pytest.approx(154_000.0)
        assert points[5]["lower_bound"] == pytest.approx(140_700.0 * 0.85)
        assert body["projected_growth"] == pytest.approx((154_000 - 78_000) / 78_000 * 100)

    def test_single_year_has_no_projection(self, client):
        body = client.post("/forecast", json={"years": [2024]}).json()
        assert len(body["points"]) == 1
        assert body["slope"] is None
        assert body["projected_growth"] == 0.0


class TestStrategy:
    def test_cards(self, client):
        insights = client.post("/strategy").json()["insights"]
        assert len(insights) == 6
        assert insights[0]["priority"] == "High"
        diversify = next(i for i in insights if i["title"] == "Diversify Export Markets")
        assert diversify["priority"] == "High"
        focus = next(i for i in insights if i["title"] == "Focus on High-Growth Commodities")
        assert "Coffee, not roasted" in focus["description"]


class TestMemoization:
    def test_repeat_request_is_a_cache_hit(self, client):
        client.post("/summary", json={"countries": ["Kenya", "Uganda"]})
        before = client.get("/ready").json()["cache"]["hits"]
        client.post("/summary", json={"countries": ["Uganda", "Kenya"]})
        after = client.get("/ready").json()["cache"]["hits"]
        assert after > before


# ---------------------------------------------------------------------------
# Error contract
# ---------------------------------------------------------------------------

class TestInvalidInput:
    def test_malformed_json(self, client):
        resp = client.post(
            "/summary", content=b"{not json", headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "INVALID_ANALYSIS_INPUT"

    def test_non_object_body(self, client):
        resp = client.post("/summary", json=[2020])
        assert resp.status_code == 400
        assert resp.json()["details"] == {"type": "list"}

    def test_top_n_out_of_range(self, client):
        resp = client.post("/breakdown/country", json={"topN": 0})
        assert resp.status_code == 400
        assert resp.json()["details"]["field"] == "topN"

    def test_bad_year_type(self, client):
        resp = client.post("/summary", json={"years": ["twenty"]})
        assert resp.status_code == 400
        assert resp.json()["details"]["field"] == "years.0"

    def test_oversized_body(self, client):
        resp = client.post(
            "/summary",
            content=b"{}" + b" " * 70_000,
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 413


# ---------------------------------------------------------------------------
# Narrative insights
# ---------------------------------------------------------------------------

class TestInsights:
    def test_board_snapshot(self, client):
        body = client.get("/insights").json()
        assert set(body) == {"opportunities", "demand", "policy", "sme"}
        assert body["sme"]["status"] == "idle"

    def test_unknown_kind(self, client):
        assert client.post("/insights/weather").status_code == 404

    def test_not_configured_is_503(self, client):
        api._state["narrative"] = NarrativeService()
        resp = client.post("/insights/opportunities")
        assert resp.status_code == 503
        assert resp.json()["error"] == "NARRATIVE_SERVICE_DISABLED"

    def test_generate(self, client):
        session = _FakeSession({"candidates": [{"content": {"parts": [{"text": "Coffee to the US"}]}}]})
        api._state["narrative"] = NarrativeService(gemini=GeminiClient("k", session=session))

        resp = client.post("/insights/opportunities", json={"countries": ["United States"]})

        assert resp.status_code == 200
        assert resp.json()["status"] == "ready"
        assert resp.json()["text"] == "Coffee to the US"
        assert client.get("/insights").json()["opportunities"]["text"] == "Coffee to the US"

    def test_demand_via_groq(self, client):
        session = _FakeSession({"choices": [{"message": {"content": '{"predictions": []}'}}]})
        api._state["narrative"] = NarrativeService(groq=GroqClient("g", session=session))
        resp = client.post("/insights/demand")
        assert resp.status_code == 200
        assert session.calls == 1

    def test_upstream_failure_is_502(self, client):
        session = _FakeSession(exc=requests.Timeout())
        api._state["narrative"] = NarrativeService(groq=GroqClient("g", session=session))

        resp = client.post("/insights/sme")

        assert resp.status_code == 502
        assert resp.json()["error"] == "NARRATIVE_SERVICE_FAILED"
        assert client.get("/insights").json()["sme"]["status"] == "failed"


# ---------------------------------------------------------------------------
# Request logging
# ---------------------------------------------------------------------------

class TestMaskIp:
    @pytest.mark.parametrize(
        "ip,expected",
        [
            ("192.168.10.20", "192.168.*.*"),
            ("2001:db8:85a3:0:0:8a2e:370:7334", "2001:db8:85a3:0::*"),
            (None, "unknown"),
            ("testclient", "unknown"),
        ],
    )
    def test_masking(self, ip, expected):
        from tradeflow.security import _mask_ip
        assert _mask_ip(ip) == expected
