"""
tradeflow.narrative — LLM-backed insight narratives.

Two external services generate free text from capped samples of the
filtered records:

    Gemini  generateContent     → opportunities, policy
    Groq    chat/completions    → demand (JSON), SME

The pipeline never depends on these calls. A failure raises
NarrativeServiceError for the caller to surface; results already
computed stay valid.

Insight results live in an InsightBoard: one slot per InsightKind, each
written only by the most recent request for that kind. A response for
a superseded request is discarded instead of overwriting newer state.

Requires: requests
"""

from __future__ import annotations

import json
import logging
import re
import threading
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import requests

from tradeflow.constants import DEMAND_SAMPLE_SIZE, OPPORTUNITY_SAMPLE_SIZE, SME_SAMPLE_SIZE
from tradeflow.models import CanonicalRecord

logger = logging.getLogger("tradeflow.narrative")

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
GROQ_BASE_URL = "https://api.groq.com/openai/v1/chat/completions"

TEMPERATURE = 0.7
MAX_OUTPUT_TOKENS = 2048


class NarrativeServiceError(Exception):
    """Raised when a narrative service call fails or is not configured."""

    def __init__(self, service: str, detail: str, status_code: int | None = None) -> None:
        self.service = service
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"{service}: {detail}")


class NarrativeNotConfiguredError(NarrativeServiceError):
    """Raised when a narrative service has no API key."""

    def __init__(self, service: str) -> None:
        super().__init__(service, "API key not configured")


def _post_json(
    session: Any,
    service: str,
    url: str,
    timeout: float,
    **kwargs: Any,
) -> dict[str, Any]:
    try:
        response = session.post(url, timeout=timeout, **kwargs)
    except requests.Timeout as exc:
        raise NarrativeServiceError(service, f"timed out after {timeout}s") from exc
    except requests.RequestException as exc:
        raise NarrativeServiceError(service, f"request failed ({type(exc).__name__})") from exc

    if not response.ok:
        raise NarrativeServiceError(
            service,
            f"API error: {response.status_code} {response.reason}",
            status_code=response.status_code,
        )

    try:
        return response.json()
    except ValueError as exc:
        raise NarrativeServiceError(service, "response body is not JSON") from exc


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------

class GeminiClient:
    service = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-pro",
        timeout: float = 30.0,
        session: Any = None,
    ) -> None:
        if not api_key:
            raise NarrativeNotConfiguredError(self.service)
        self._api_key = api_key
        self.model = model
        self.timeout = timeout
        self._session = session or requests.Session()

    def generate_content(self, prompt: str, system_instruction: str | None = None) -> str:
        contents = []
        if system_instruction:
            contents.append({"role": "user", "parts": [{"text": system_instruction}]})
        contents.append({"role": "user", "parts": [{"text": prompt}]})

        data = _post_json(
            self._session,
            self.service,
            f"{GEMINI_BASE_URL}/{self.model}:generateContent",
            self.timeout,
            params={"key": self._api_key},
            json={
                "contents": contents,
                "generationConfig": {
                    "temperature": TEMPERATURE,
                    "topK": 40,
                    "topP": 0.95,
                    "maxOutputTokens": MAX_OUTPUT_TOKENS,
                },
            },
        )

        try:
            return data["candidates"][0]["content"]["parts"][0]["text"] or ""
        except (KeyError, IndexError, TypeError):
            return ""


class GroqClient:
    service = "groq"

    def __init__(
        self,
        api_key: str,
        model: str = "llama-3.3-70b-versatile",
        timeout: float = 30.0,
        session: Any = None,
    ) -> None:
        if not api_key:
            raise NarrativeNotConfiguredError(self.service)
        self._api_key = api_key
        self.model = model
        self.timeout = timeout
        self._session = session or requests.Session()

    def chat(self, messages: Sequence[dict[str, str]], model: str | None = None) -> str:
        data = _post_json(
            self._session,
            self.service,
            GROQ_BASE_URL,
            self.timeout,
            headers={"Authorization": f"Bearer {self._api_key}"},
            json={
                "model": model or self.model,
                "messages": list(messages),
                "temperature": TEMPERATURE,
                "max_tokens": MAX_OUTPUT_TOKENS,
            },
        )

        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            return ""


# ---------------------------------------------------------------------------
# Payloads and prompts
# ---------------------------------------------------------------------------

def sample_payload(
    records: Iterable[CanonicalRecord],
    limit: int,
    fields: Sequence[str] | None = None,
) -> list[dict[str, Any]]:
    """First ``limit`` records as dicts, optionally projected onto ``fields``."""
    sample = []
    for i, record in enumerate(records):
        if i >= limit:
            break
        row = record.to_dict()
        if fields:
            row = {name: row[name] for name in fields}
        sample.append(row)
    return sample


def opportunities_prompt(data: str) -> str:
    return f"""Analyze this export trade data and identify the top 3 emerging export opportunities with highest growth potential:

{data}

Provide detailed analysis including:
1. Commodity name and why it's an opportunity
2. Target markets with highest demand
3. Growth trajectory and market size
4. Entry barriers and recommendations
5. Youth/SME participation opportunities

Format as JSON with clear structure."""


def policy_prompt(trade_analysis: str) -> str:
    return f"""Based on this trade analysis, generate strategic policy recommendations:

{trade_analysis}

Provide actionable recommendations for:
1. Export promotion strategies
2. Youth and SME engagement programs
3. Market diversification initiatives
4. Infrastructure and capacity building
5. Trade agreement priorities

Focus on practical, implementable policies."""


def demand_messages(data: str) -> list[dict[str, str]]:
    return [
        {
            "role": "system",
            "content": (
                "You are an expert in trade analytics and demand forecasting. "
                "Analyze data and provide accurate predictions with confidence intervals."
            ),
        },
        {
            "role": "user",
            "content": f"""Analyze this export data and predict market trends for the next 24 months:

{data}

Provide predictions in JSON format with:
- commodity: string
- currentValue: number
- predictedNextYear: number
- predictedYearAfter: number
- confidenceLevel: "high" | "medium" | "low"
- growthRate: number
- keyDrivers: string[]
- risks: string[]

Return top 5 commodities with highest growth potential.""",
        },
    ]


def sme_messages(data: str) -> list[dict[str, str]]:
    return [
        {
            "role": "system",
            "content": "You are an expert in SME development and export promotion.",
        },
        {
            "role": "user",
            "content": f"""Based on this trade data, identify specific opportunities for SMEs and youth entrepreneurs:

{data}

Provide:
1. Low-barrier entry commodities for SMEs
2. Required investment and training
3. Market access strategies
4. Success stories and case studies
5. Government support programs available""",
        },
    ]


_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

PARSE_FAILURE: dict[str, Any] = {"predictions": [], "error": "Failed to parse predictions"}


def parse_json_response(text: str) -> Any:
    """Best-effort JSON decode of model output, tolerating code fences."""
    candidate = text.strip()
    fenced = _FENCE_RE.match(candidate)
    if fenced:
        candidate = fenced.group(1)
    try:
        return json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        return dict(PARSE_FAILURE, predictions=[])


# ---------------------------------------------------------------------------
# Insight board: one slot per analysis, latest request wins
# ---------------------------------------------------------------------------

class InsightKind(str, Enum):
    OPPORTUNITIES = "opportunities"
    DEMAND = "demand"
    POLICY = "policy"
    SME = "sme"


STATUS_IDLE = "idle"
STATUS_PENDING = "pending"
STATUS_READY = "ready"
STATUS_FAILED = "failed"


@dataclass(frozen=True, slots=True)
class InsightSlot:
    kind: InsightKind
    status: str = STATUS_IDLE
    request_id: str | None = None
    text: str | None = None
    error: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "status": self.status,
            "request_id": self.request_id,
            "text": self.text,
            "error": self.error,
            "updated_at": self.updated_at,
        }


class InsightBoard:
    """Keyed insight slots with in-flight request tracking.

    begin() supersedes any pending request for the same kind. complete()
    and fail() only take effect for the slot's current request id.
    Slots are replaced whole, never edited in place.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._slots: dict[InsightKind, InsightSlot] = {
            kind: InsightSlot(kind=kind) for kind in InsightKind
        }

    def begin(self, kind: InsightKind) -> str:
        request_id = uuid.uuid4().hex[:16]
        with self._lock:
            previous = self._slots[kind]
            if previous.status == STATUS_PENDING:
                logger.info("Superseding %s request %s", kind.value, previous.request_id)
            self._slots[kind] = replace(
                previous, status=STATUS_PENDING, request_id=request_id,
                error=None, updated_at=_now(),
            )
        return request_id

    def complete(self, kind: InsightKind, request_id: str, text: str) -> bool:
        return self._settle(kind, request_id, STATUS_READY, text=text, error=None)

    def fail(self, kind: InsightKind, request_id: str, error: str) -> bool:
        return self._settle(kind, request_id, STATUS_FAILED, error=error)

    def _settle(self, kind: InsightKind, request_id: str, status: str, **changes: Any) -> bool:
        with self._lock:
            current = self._slots[kind]
            if current.request_id != request_id:
                logger.info("Discarding stale %s result for %s", kind.value, request_id)
                return False
            self._slots[kind] = replace(current, status=status, updated_at=_now(), **changes)
            return True

    def get(self, kind: InsightKind) -> InsightSlot:
        with self._lock:
            return self._slots[kind]

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {kind.value: slot.to_dict() for kind, slot in self._slots.items()}


def _now() -> str:
    return datetime.now(UTC).isoformat()


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class NarrativeService:
    """Runs one insight analysis per call and records it on the board."""

    def __init__(
        self,
        gemini: GeminiClient | None = None,
        groq: GroqClient | None = None,
        board: InsightBoard | None = None,
    ) -> None:
        self.gemini = gemini
        self.groq = groq
        self.board = board or InsightBoard()

    def _require_gemini(self) -> GeminiClient:
        if self.gemini is None:
            raise NarrativeNotConfiguredError(GeminiClient.service)
        return self.gemini

    def _require_groq(self) -> GroqClient:
        if self.groq is None:
            raise NarrativeNotConfiguredError(GroqClient.service)
        return self.groq

    def _generate(
        self,
        kind: InsightKind,
        records: Sequence[CanonicalRecord],
        context: str | None,
    ) -> str:
        if kind is InsightKind.OPPORTUNITIES:
            summary = sample_payload(
                records, OPPORTUNITY_SAMPLE_SIZE,
                fields=("year", "commodity", "value_usd", "country"),
            )
            return self._require_gemini().generate_content(
                opportunities_prompt(json.dumps(summary, indent=2))
            )

        if kind is InsightKind.DEMAND:
            data = json.dumps(sample_payload(records, DEMAND_SAMPLE_SIZE))
            raw = self._require_groq().chat(demand_messages(data))
            return json.dumps(parse_json_response(raw), indent=2)

        if kind is InsightKind.POLICY:
            analysis = (
                context
                or self.board.get(InsightKind.OPPORTUNITIES).text
                or "Export trade analysis"
            )
            return self._require_gemini().generate_content(policy_prompt(analysis))

        data = json.dumps(sample_payload(records, SME_SAMPLE_SIZE))
        return self._require_groq().chat(sme_messages(data))

    def run(
        self,
        kind: InsightKind,
        records: Sequence[CanonicalRecord],
        context: str | None = None,
    ) -> InsightSlot:
        """Generate one insight. Raises NarrativeServiceError on failure."""
        request_id = self.board.begin(kind)
        try:
            text = self._generate(kind, records, context)
        except NarrativeServiceError as exc:
            self.board.fail(kind, request_id, exc.detail)
            logger.warning(json.dumps({
                "event": "narrative_failed",
                "kind": kind.value,
                "service": exc.service,
                "request_id": request_id,
                "error": exc.detail,
            }))
            raise

        self.board.complete(kind, request_id, text)
        return self.board.get(kind)
