"""
Per-request collaborator freshness.

Geocoding and place-search clients report how each lookup was served, keyed by a source
name such as `geocode:nominatim:paris,france`:
- `mode`: live / cache / stale / none (`none` = not found or failed)
- `as_of_unix` and `ttl_seconds` when the answer came from a cache envelope

Nothing is recorded outside `capture_ingestion_meta()`, so the engine and the CLI pay no
cost. The API attaches the capture to `ComparisonResult.meta["freshness"]`.
"""

from __future__ import annotations

import contextvars
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

DEGRADED_MODES = frozenset({"stale", "none"})


@dataclass
class IngestionMeta:
    sources: dict[str, dict[str, Any]] = field(default_factory=dict)

    def record(self, name: str, payload: dict[str, Any]) -> None:
        # Last report wins: a cache hit after a live fetch describes the current answer.
        if name:
            self.sources[name] = dict(payload)

    def mode_counts(self) -> dict[str, int]:
        return dict(Counter(str(p.get("mode", "unknown")) for p in self.sources.values()))

    @property
    def degraded(self) -> bool:
        """True when any lookup was served stale or not at all."""
        return any(p.get("mode") in DEGRADED_MODES for p in self.sources.values())

    def as_dict(self) -> dict[str, Any]:
        return {"modes": self.mode_counts(), "degraded": self.degraded, "sources": dict(self.sources)}


_current: contextvars.ContextVar[IngestionMeta | None] = contextvars.ContextVar("wherelse_ingestion_meta", default=None)


def record_ingestion_source(name: str, payload: dict[str, Any]) -> None:
    meta = _current.get()
    if meta is not None:
        meta.record(name, payload)


@contextmanager
def capture_ingestion_meta() -> Iterator[IngestionMeta]:
    meta = IngestionMeta()
    token = _current.set(meta)
    try:
        yield meta
    finally:
        _current.reset(token)
