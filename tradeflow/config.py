"""
tradeflow.config — Environment-driven settings.

Environment variables:
    ENV                  — "dev" or "prod" (default: "prod")
    TRADE_DATA_DIR       — directory of <year>.json files (default: packaged data)
    ALLOWED_ORIGINS      — comma-separated extra CORS origins
    ENABLE_DOCS          — "1" to force-enable /docs in prod
    REQUIRE_DATA         — "1" to hard-fail startup if data missing or corrupt
    REDIS_URL            — optional Redis URL for distributed rate limiting
    MAX_CACHED_ANALYSES  — analysis cache slots (default: 16)
    GEMINI_API_KEY       — Gemini credential; narrative endpoints disabled if unset
    GROQ_API_KEY         — Groq credential; narrative endpoints disabled if unset
    GEMINI_MODEL         — default "gemini-pro"
    GROQ_MODEL           — default "llama-3.3-70b-versatile"
    AI_RESPONSE_TIMEOUT  — seconds, enforced on every narrative call (default: 30)

API keys are never hardcoded and never logged.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from tradeflow.cache import DEFAULT_MAX_SLOTS
from tradeflow.loader import DEFAULT_DATA_DIR


@dataclass(frozen=True, slots=True)
class Settings:
    env: str
    data_dir: Path
    allowed_origins: tuple[str, ...]
    enable_docs: bool
    require_data: bool
    redis_url: str | None
    max_cached_analyses: int
    gemini_api_key: str | None
    groq_api_key: str | None
    gemini_model: str
    groq_model: str
    ai_response_timeout: float

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"


def _flag(name: str) -> bool:
    return os.getenv(name, "").strip() == "1"


def _optional(name: str) -> str | None:
    return os.getenv(name, "").strip() or None


def load_settings() -> Settings:
    data_dir_raw = os.getenv("TRADE_DATA_DIR", "").strip()
    origins_raw = os.getenv("ALLOWED_ORIGINS", "").strip()

    try:
        max_cached = int(os.getenv("MAX_CACHED_ANALYSES", str(DEFAULT_MAX_SLOTS)))
    except ValueError:
        max_cached = DEFAULT_MAX_SLOTS

    try:
        timeout = float(os.getenv("AI_RESPONSE_TIMEOUT", "30"))
    except ValueError:
        timeout = 30.0

    return Settings(
        env=os.getenv("ENV", "prod").lower().strip(),
        data_dir=Path(data_dir_raw) if data_dir_raw else DEFAULT_DATA_DIR,
        allowed_origins=tuple(o.strip() for o in origins_raw.split(",") if o.strip()),
        enable_docs=_flag("ENABLE_DOCS"),
        require_data=_flag("REQUIRE_DATA"),
        redis_url=_optional("REDIS_URL"),
        max_cached_analyses=max(1, max_cached),
        gemini_api_key=_optional("GEMINI_API_KEY"),
        groq_api_key=_optional("GROQ_API_KEY"),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-pro").strip(),
        groq_model=os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile").strip(),
        ai_response_timeout=timeout if timeout > 0 else 30.0,
    )
