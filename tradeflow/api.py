#!/usr/bin/env python3
"""
tradeflow.api — Trade analytics API server.

Loads the yearly trade datasets once, then serves filtered aggregates,
opportunity scores, forecasts and narrative insights. Every analysis
endpoint takes the same tolerant filter body and is memoized on
(dataset version, filter).

Endpoints:
    GET  /                       → API metadata
    GET  /health                 → Liveness probe
    GET  /ready                  → Readiness probe
    GET  /dimensions             → Filter option lists
    POST /summary                → Summary cards
    POST /breakdown/{dimension}  → Top-N by country | commodity | code
    POST /timeseries/monthly     → Chronological month series
    POST /opportunities          → Ranked export opportunities
    POST /forecast               → Yearly totals + 2-year OLS projection
    POST /strategy               → Strategy insight cards
    GET  /insights               → Current narrative insight slots
    POST /insights/{kind}        → Generate one narrative insight

Error contract:
    400 → INVALID_ANALYSIS_INPUT (body is not JSON / fails validation)
    404 → unknown dimension or insight kind
    502 → NARRATIVE_SERVICE_FAILED
    503 → data not loaded / NARRATIVE_SERVICE_DISABLED
    500 → never leaks internals

Configuration: see tradeflow.config.

Production:
    gunicorn tradeflow.api:app -k uvicorn.workers.UvicornWorker -w 2

Requires: fastapi, uvicorn, gunicorn, slowapi
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError, field_validator
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.concurrency import run_in_threadpool
from starlette.middleware.gzip import GZipMiddleware

from tradeflow import __version__
from tradeflow.aggregator import BREAKDOWNS, monthly_series, summarize
from tradeflow.cache import AnalysisCache
from tradeflow.config import load_settings
from tradeflow.constants import DEFAULT_TOP_N, OPPORTUNITY_LIMIT
from tradeflow.filters import FilterSpec, apply_filter
from tradeflow.forecast import forecast_trend
from tradeflow.integrity import verify_manifest
from tradeflow.loader import DatasetLoadError, TradeDataset, load_trade_data
from tradeflow.models import CanonicalRecord
from tradeflow.narrative import (
    GeminiClient,
    GroqClient,
    InsightKind,
    NarrativeNotConfiguredError,
    NarrativeService,
    NarrativeServiceError,
)
from tradeflow.opportunity import score_opportunities
from tradeflow.security import (
    ETagMiddleware,
    RequestIdMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
)
from tradeflow.strategy import strategy_insights


# ---------------------------------------------------------------------------
# Settings and logging: structured JSON to stdout
# ---------------------------------------------------------------------------

settings = load_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.is_dev else logging.INFO,
    format="%(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger("tradeflow.api")


# ---------------------------------------------------------------------------
# Rate limiter
# ---------------------------------------------------------------------------

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["240/minute"],
    storage_uri=settings.redis_url or "memory://",
    strategy="fixed-window",
)


# ---------------------------------------------------------------------------
# Process state: dataset loaded once, analyses memoized
# ---------------------------------------------------------------------------

_state: dict[str, Any] = {}
_integrity: dict[str, Any] = {}
_analysis_cache = AnalysisCache(max_slots=settings.max_cached_analyses)


def _get_dataset() -> TradeDataset | None:
    """Cache-through loader. Returns None if the data cannot be loaded."""
    if "dataset" not in _state:
        try:
            _state["dataset"] = load_trade_data(settings.data_dir)
        except DatasetLoadError as exc:
            logger.error(json.dumps({
                "event": "dataset_load_failed",
                "error": str(exc),
            }))
            return None
    return _state["dataset"]


def _require_dataset() -> TradeDataset:
    dataset = _get_dataset()
    if dataset is None:
        raise HTTPException(status_code=503, detail="Trade data not loaded.")
    return dataset


def _get_narrative() -> NarrativeService:
    if "narrative" not in _state:
        gemini = groq = None
        if settings.gemini_api_key:
            gemini = GeminiClient(
                settings.gemini_api_key,
                model=settings.gemini_model,
                timeout=settings.ai_response_timeout,
            )
        if settings.groq_api_key:
            groq = GroqClient(
                settings.groq_api_key,
                model=settings.groq_model,
                timeout=settings.ai_response_timeout,
            )
        _state["narrative"] = NarrativeService(gemini=gemini, groq=groq)
    return _state["narrative"]


def reset_state() -> None:
    """Drop the loaded dataset, narrative service and memoized analyses. Used in testing."""
    _state.clear()
    _integrity.clear()
    _analysis_cache.invalidate()


# ---------------------------------------------------------------------------
# Request model: tolerant filter body shared by every analysis endpoint
# ---------------------------------------------------------------------------

class AnalysisRequest(BaseModel):
    """Filter selection plus per-endpoint knobs.

    - Empty lists mean "no restriction" on that dimension
    - Unknown top-level fields → silently ignored
    - cmdCodes / topN camelCase aliases accepted
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    years: list[int] = Field(default_factory=list)
    countries: list[str] = Field(default_factory=list)
    commodities: list[str] = Field(default_factory=list)
    cmd_codes: list[int] = Field(default_factory=list, alias="cmdCodes")
    top_n: int = Field(DEFAULT_TOP_N, ge=1, le=100, alias="topN")
    limit: int = Field(OPPORTUNITY_LIMIT, ge=1, le=50)
    context: str | None = Field(None, max_length=20_000)

    @field_validator("years", "countries", "commodities", "cmd_codes", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_spec(self) -> FilterSpec:
        return FilterSpec.from_lists(
            years=self.years,
            countries=self.countries,
            commodities=self.commodities,
            codes=self.cmd_codes,
        )


class InvalidAnalysisInput(Exception):
    def __init__(self, message: str, details: Any) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


async def _parse_analysis_request(request: Request) -> AnalysisRequest:
    body = await request.body()
    if not body.strip():
        return AnalysisRequest()

    try:
        raw = json.loads(body)
    except ValueError:
        raise InvalidAnalysisInput(
            "Request body is not valid JSON.",
            {"parse_error": "Could not decode JSON."},
        ) from None

    if not isinstance(raw, dict):
        raise InvalidAnalysisInput(
            "Request body must be a JSON object.",
            {"type": type(raw).__name__},
        )

    try:
        return AnalysisRequest.model_validate(raw)
    except ValidationError as exc:
        detail_items = [
            {
                "field": ".".join(str(p) for p in e.get("loc", [])),
                "message": e.get("msg", "Validation failed"),
            }
            for e in exc.errors()
        ]
        raise InvalidAnalysisInput(
            "Request validation failed.",
            detail_items[0] if len(detail_items) == 1 else detail_items,
        ) from None


def _filtered(dataset: TradeDataset, spec: FilterSpec) -> list[CanonicalRecord]:
    return _analysis_cache.get_or_compute(
        dataset.version, spec, "filtered",
        lambda: apply_filter(dataset.records, spec),
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup: verify the manifest and load the dataset.

    With REQUIRE_DATA=1, missing or corrupt data exits immediately.
    """
    logger.info(json.dumps({
        "event": "startup",
        "env": settings.env,
        "require_data": settings.require_data,
        "cors_origins": len(_CORS_ORIGINS),
        "docs_enabled": settings.enable_docs or settings.is_dev,
        "rate_limit_backend": "redis" if settings.redis_url else "memory",
        "narrative_services": {
            "gemini": bool(settings.gemini_api_key),
            "groq": bool(settings.groq_api_key),
        },
    }))

    if settings.data_dir.is_dir():
        result = verify_manifest(settings.data_dir)
        _integrity.update(result)
        if result["manifest_present"] and not result["verified"]:
            for err in result["errors"]:
                logger.error(json.dumps({"event": "manifest_error", "error": err}))
            if settings.require_data:
                logger.error(json.dumps({
                    "event": "startup_abort",
                    "reason": "Manifest integrity check failed",
                }))
                sys.exit(1)

    if _get_dataset() is None:
        if settings.require_data:
            logger.error(json.dumps({
                "event": "startup_abort",
                "reason": "REQUIRE_DATA=1 but trade data could not be loaded",
            }))
            sys.exit(1)
        logger.warning(json.dumps({
            "event": "startup_degraded",
            "reason": "Trade data directory not found or unreadable",
        }))

    yield

    logger.info(json.dumps({"event": "shutdown"}))


def _build_docs_kwargs() -> dict[str, Any]:
    if settings.env == "prod" and not settings.enable_docs:
        return {"docs_url": None, "redoc_url": None, "openapi_url": None}
    return {"docs_url": "/docs", "redoc_url": "/redoc"}


app = FastAPI(
    title="tradeflow API",
    description="Trade-flow aggregation, opportunity scoring and forecasting",
    version=__version__,
    lifespan=_lifespan,
    **_build_docs_kwargs(),
)

app.state.limiter = limiter


# ---------------------------------------------------------------------------
# CORS: explicit allow-list, extended by ALLOWED_ORIGINS
# ---------------------------------------------------------------------------

DEV_ORIGINS: list[str] = [
    "http://localhost:3000",
    "http://localhost:5173",
]

_CORS_ORIGINS: list[str] = list(DEV_ORIGINS)
for _o in settings.allowed_origins:
    if _o not in _CORS_ORIGINS:
        _CORS_ORIGINS.append(_o)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
    max_age=3600,
)

# Last registered = outermost.
# Execution order: GZip → RequestId → RequestSizeLimit → ETag → SecurityHeaders → CORS
app.add_middleware(SecurityHeadersMiddleware, enable_hsts=(settings.env == "prod"))
app.add_middleware(ETagMiddleware)
app.add_middleware(RequestSizeLimitMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=500)


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

@app.exception_handler(RateLimitExceeded)
async def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Try again later."},
        headers={"Retry-After": "60"},
    )


@app.exception_handler(InvalidAnalysisInput)
async def _invalid_input_handler(request: Request, exc: InvalidAnalysisInput) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "error": "INVALID_ANALYSIS_INPUT",
            "message": exc.message,
            "details": exc.details,
        },
    )


@app.exception_handler(NarrativeServiceError)
async def _narrative_handler(request: Request, exc: NarrativeServiceError) -> JSONResponse:
    if isinstance(exc, NarrativeNotConfiguredError):
        return JSONResponse(
            status_code=503,
            content={
                "error": "NARRATIVE_SERVICE_DISABLED",
                "message": f"Narrative service '{exc.service}' is not configured.",
            },
        )
    return JSONResponse(
        status_code=502,
        content={
            "error": "NARRATIVE_SERVICE_FAILED",
            "message": f"Narrative service '{exc.service}' failed. Try again later.",
        },
    )


@app.exception_handler(Exception)
async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")
    logger.error(json.dumps({
        "event": "unhandled_exception",
        "exception_type": type(exc).__name__,
        "request_id": request_id,
        "path": request.url.path,
    }))
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error."},
    )


# ---------------------------------------------------------------------------
# Metadata and probes
# ---------------------------------------------------------------------------

@app.get("/")
@limiter.limit("60/minute")
async def root(request: Request) -> dict:
    """API metadata."""
    dataset = _require_dataset()
    return {
        "name": "tradeflow",
        "version": __version__,
        "records": len(dataset),
        "source_years": list(dataset.source_years),
        "dataset_version": dataset.version,
    }


@app.get("/health", include_in_schema=False)
async def health(request: Request) -> JSONResponse:
    """Liveness probe. Always 200, no I/O."""
    return JSONResponse(status_code=200, content={"status": "ok", "version": __version__})


@app.get("/ready")
@limiter.limit("60/minute")
async def ready(request: Request) -> JSONResponse:
    """Readiness probe, always 200. Business readiness is the 'ready' field."""
    dataset = _get_dataset()
    data_present = dataset is not None
    integrity_ok = _integrity.get("verified", True) if _integrity.get("manifest_present") else True

    body = {
        "ready": data_present and integrity_ok,
        "status": "healthy" if data_present else "degraded",
        "version": __version__,
        "data_present": data_present,
        "record_count": len(dataset) if dataset is not None else 0,
        "integrity_verified": _integrity.get("verified") if _integrity.get("manifest_present") else None,
        "cache": _analysis_cache.stats,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    return JSONResponse(status_code=200, content=body)


@app.get("/dimensions")
@limiter.limit("120/minute")
async def dimensions(request: Request) -> Any:
    """Filter option lists. Fixed for the loaded dataset."""
    return _require_dataset().dimensions.to_dict()


# ---------------------------------------------------------------------------
# Analysis endpoints
# ---------------------------------------------------------------------------

@app.post("/summary")
@limiter.limit("120/minute")
async def summary(request: Request) -> Any:
    req = await _parse_analysis_request(request)
    dataset = _require_dataset()
    spec = req.to_spec()
    records = _filtered(dataset, spec)
    result = _analysis_cache.get_or_compute(
        dataset.version, spec, "summary", lambda: summarize(records),
    )
    return result.to_dict()


@app.post("/breakdown/{dimension}")
@limiter.limit("120/minute")
async def breakdown(dimension: str, request: Request) -> Any:
    """Top-N totals for one dimension, descending, ties in first-seen order."""
    breakdown_fn = BREAKDOWNS.get(dimension)
    if breakdown_fn is None:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown dimension '{dimension}'. Must be one of {sorted(BREAKDOWNS)}.",
        )
    req = await _parse_analysis_request(request)
    dataset = _require_dataset()
    spec = req.to_spec()
    records = _filtered(dataset, spec)
    rows = _analysis_cache.get_or_compute(
        dataset.version, spec, f"breakdown:{dimension}:{req.top_n}",
        lambda: breakdown_fn(records, req.top_n),
    )
    return {
        "dimension": dimension,
        "top_n": req.top_n,
        "rows": [row.to_dict() for row in rows],
    }


@app.post("/timeseries/monthly")
@limiter.limit("120/minute")
async def timeseries_monthly(request: Request) -> Any:
    req = await _parse_analysis_request(request)
    dataset = _require_dataset()
    spec = req.to_spec()
    records = _filtered(dataset, spec)
    points = _analysis_cache.get_or_compute(
        dataset.version, spec, "monthly", lambda: monthly_series(records),
    )
    return {"points": [p.to_dict() for p in points]}


@app.post("/opportunities")
@limiter.limit("120/minute")
async def opportunities(request: Request) -> Any:
    req = await _parse_analysis_request(request)
    dataset = _require_dataset()
    spec = req.to_spec()
    records = _filtered(dataset, spec)
    ranked = _analysis_cache.get_or_compute(
        dataset.version, spec, f"opportunities:{req.limit}",
        lambda: score_opportunities(records, req.limit),
    )
    return {"opportunities": [o.to_dict() for o in ranked]}


@app.post("/forecast")
@limiter.limit("120/minute")
async def forecast(request: Request) -> Any:
    req = await _parse_analysis_request(request)
    dataset = _require_dataset()
    spec = req.to_spec()
    records = _filtered(dataset, spec)
    result = _analysis_cache.get_or_compute(
        dataset.version, spec, "forecast", lambda: forecast_trend(records),
    )
    return result.to_dict()


@app.post("/strategy")
@limiter.limit("120/minute")
async def strategy(request: Request) -> Any:
    req = await _parse_analysis_request(request)
    dataset = _require_dataset()
    spec = req.to_spec()
    records = _filtered(dataset, spec)
    insights = _analysis_cache.get_or_compute(
        dataset.version, spec, "strategy", lambda: strategy_insights(records),
    )
    return {"insights": [i.to_dict() for i in insights]}


# ---------------------------------------------------------------------------
# Narrative insights: external services, not memoized
# ---------------------------------------------------------------------------

@app.get("/insights")
@limiter.limit("60/minute")
async def list_insights(request: Request) -> Any:
    return _get_narrative().board.snapshot()


@app.post("/insights/{kind}")
@limiter.limit("20/minute")
async def generate_insight(kind: str, request: Request) -> Any:
    try:
        insight_kind = InsightKind(kind)
    except ValueError:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown insight '{kind}'. Must be one of {[k.value for k in InsightKind]}.",
        ) from None

    req = await _parse_analysis_request(request)
    dataset = _require_dataset()
    records = _filtered(dataset, req.to_spec())

    # Outbound HTTP is blocking; keep it off the event loop.
    slot = await run_in_threadpool(
        _get_narrative().run, insight_kind, records, context=req.context,
    )

    logger.info(json.dumps({
        "event": "narrative_success",
        "request_id": getattr(request.state, "request_id", "unknown"),
        "kind": insight_kind.value,
        "records": len(records),
    }))
    return slot.to_dict()


# ---------------------------------------------------------------------------
# Entry point (development only)
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    print(f"tradeflow API {__version__} — serving from {settings.data_dir}")
    uvicorn.run(app, host="0.0.0.0", port=8000)  # noqa: S104
