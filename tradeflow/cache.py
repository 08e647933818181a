"""
tradeflow.cache — Thread-safe, bounded memo of analysis results.

Every pipeline operation is a pure function of (dataset, filter), so its
result can be reused until either changes.

Cache key design:
    Level 1: (dataset_version, filter_key)  → slot
    Level 2: artifact string                → computed result

    Artifact naming convention:
        "filtered"             → filtered record list
        "summary"              → TradeSummary
        "breakdown:country:10" → top-10 country rows
        "monthly"              → month series
        "opportunities:6"      → top-6 opportunities
        "forecast"             → ForecastResult

Bound applies at slot level; LRU eviction removes a whole slot.
The lock is held only around dict operations, never during compute.
Two threads may compute the same artifact concurrently; results are
deterministic, so the last writer wins harmlessly.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from tradeflow.filters import FilterSpec
from tradeflow.hashing import compute_filter_key

logger = logging.getLogger("tradeflow.cache")

DEFAULT_MAX_SLOTS: int = 16


class AnalysisCache:
    """LRU cache of analysis artifacts keyed by dataset version and filter.

    Usage::

        cache = AnalysisCache(max_slots=8)
        rows = cache.get_or_compute(
            dataset.version, spec, "breakdown:country:10",
            lambda: by_country(filtered, 10),
        )
    """

    def __init__(self, max_slots: int | None = None) -> None:
        self._max: int = max_slots if max_slots is not None else DEFAULT_MAX_SLOTS
        if self._max < 1:
            raise ValueError(f"max_slots must be >= 1, got {self._max}")
        self._lock: threading.Lock = threading.Lock()
        self._slots: OrderedDict[tuple[str, str], dict[str, Any]] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def get_or_compute(
        self,
        dataset_version: str,
        spec: FilterSpec,
        artifact: str,
        compute: Callable[[], Any],
    ) -> Any:
        if not dataset_version or not isinstance(dataset_version, str):
            raise ValueError(
                f"dataset_version must be a non-empty string, got {dataset_version!r}"
            )

        slot_key = (dataset_version, compute_filter_key(spec))

        with self._lock:
            slot = self._slots.get(slot_key)
            if slot is not None:
                self._slots.move_to_end(slot_key)
                if artifact in slot:
                    self._hits += 1
                    return slot[artifact]
            self._misses += 1

        result = compute()

        with self._lock:
            if slot_key not in self._slots:
                while len(self._slots) >= self._max:
                    evicted_key, evicted_slot = self._slots.popitem(last=False)
                    logger.info(
                        "Cache eviction: %s/%s (%d artifacts, max_slots=%d)",
                        evicted_key[0][:12], evicted_key[1][:12],
                        len(evicted_slot), self._max,
                    )
                    evicted_slot.clear()
                self._slots[slot_key] = {}

            self._slots.move_to_end(slot_key)
            self._slots[slot_key][artifact] = result

        return result

    def invalidate(self, dataset_version: str | None = None) -> int:
        """Drop slots for one dataset version, or everything. Returns slot count."""
        with self._lock:
            if dataset_version is None:
                count = len(self._slots)
                self._slots.clear()
                return count
            stale = [key for key in self._slots if key[0] == dataset_version]
            for key in stale:
                del self._slots[key]
            return len(stale)

    @property
    def slot_count(self) -> int:
        with self._lock:
            return len(self._slots)

    @property
    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "max_slots": self._max,
                "slots_used": len(self._slots),
                "hits": self._hits,
                "misses": self._misses,
            }
