"""
tradeflow.loader — Load yearly trade datasets into one canonical dataset.

Design contract:
    - A data directory holds one ``<year>.json`` file per year, each a
      JSON array of raw trade rows. MANIFEST.json is ignored here.
    - Files are concatenated in ascending numeric year order BEFORE
      normalization. No de-duplication: overlapping files are summed
      downstream.
    - The resulting TradeDataset is immutable. Dimension options and
      the dataset version are computed once, at load.
    - Structural problems (bad JSON, non-array payload, non-year file
      name, missing directory) raise DatasetLoadError. Malformed rows
      are not structural problems; the normalizer recovers them.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tradeflow.dimensions import DimensionOptions, extract_dimensions
from tradeflow.hashing import compute_dataset_hash
from tradeflow.integrity import dataset_files
from tradeflow.models import CanonicalRecord
from tradeflow.normalizer import normalize_records

logger = logging.getLogger("tradeflow.loader")

DEFAULT_DATA_DIR: Path = Path(__file__).resolve().parent / "data"


class DatasetLoadError(Exception):
    """Raised when a yearly dataset cannot be read as a list of rows."""

    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"{path.name}: {detail}")


@dataclass(frozen=True, slots=True)
class TradeDataset:
    """Canonical records for the session, plus load-time derivations."""

    records: tuple[CanonicalRecord, ...]
    source_years: tuple[int, ...]
    version: str
    dimensions: DimensionOptions

    def __len__(self) -> int:
        return len(self.records)


def _file_year(path: Path) -> int:
    try:
        return int(path.stem)
    except ValueError:
        raise DatasetLoadError(path, "file name is not a year") from None


def _read_rows(path: Path) -> list[dict[str, Any]]:
    try:
        with open(path, encoding="utf-8") as fh:
            payload = json.load(fh)
    except json.JSONDecodeError as exc:
        raise DatasetLoadError(path, f"invalid JSON at line {exc.lineno}") from exc
    except OSError as exc:
        raise DatasetLoadError(path, f"unreadable ({type(exc).__name__})") from exc

    if not isinstance(payload, list):
        raise DatasetLoadError(path, f"expected a JSON array, got {type(payload).__name__}")
    return [row for row in payload if isinstance(row, dict)]


def build_dataset(raw_rows: list[dict[str, Any]], source_years: tuple[int, ...] = ()) -> TradeDataset:
    """Normalize already-merged raw rows into a TradeDataset."""
    records = tuple(normalize_records(raw_rows))
    return TradeDataset(
        records=records,
        source_years=source_years,
        version=compute_dataset_hash(records),
        dimensions=extract_dimensions(records),
    )


def load_trade_data(data_dir: Path | None = None) -> TradeDataset:
    """Load every yearly file under ``data_dir`` (default: packaged data)."""
    data_dir = data_dir or DEFAULT_DATA_DIR
    if not data_dir.is_dir():
        raise DatasetLoadError(data_dir, "data directory not found")

    yearly = sorted((_file_year(p), p) for p in dataset_files(data_dir))

    merged: list[dict[str, Any]] = []
    for year, path in yearly:
        rows = _read_rows(path)
        logger.debug("Loaded %d rows from %s", len(rows), path.name)
        merged.extend(rows)

    dataset = build_dataset(merged, tuple(year for year, _ in yearly))
    logger.info(json.dumps({
        "event": "dataset_loaded",
        "files": len(yearly),
        "records": len(dataset),
        "version": dataset.version[:16],
    }))
    return dataset
