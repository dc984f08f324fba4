from __future__ import annotations

import contextvars
import json
import time
from contextlib import contextmanager
from dataclasses import dataclass
from hashlib import sha256
from pathlib import Path
from typing import Any, Callable

"""
Small key/value caches used by the network collaborators.

Two backends share one interface (`get`, `get_stale`, `set`, `get_or_set`):
- `MemoryCache`: in-process dict, the default for geocoding lookups (fixed TTL).
- `FileCache`: JSON files under `.cache/wherelse/`, survives restarts (CLI use).

Both take a `clock` callable so tests can move time without sleeping. Caches are built
explicitly and injected into the geocoder/place source; there is no module-level cache.
"""

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry:
    """Cache envelope (same shape on disk and in memory)."""

    created_at_unix: int
    ttl_seconds: int
    value: Any


@dataclass
class CacheStats:
    """Per-request cache usage stats (best-effort)."""

    hits: int = 0
    misses: int = 0
    expired: int = 0
    sets: int = 0
    stale_reads: int = 0
    stale_fallbacks: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "hits": int(self.hits),
            "misses": int(self.misses),
            "expired": int(self.expired),
            "sets": int(self.sets),
            "stale_reads": int(self.stale_reads),
            "stale_fallbacks": int(self.stale_fallbacks),
        }


_cache_stats_var: contextvars.ContextVar[CacheStats | None] = contextvars.ContextVar(
    "wherelse_cache_stats", default=None
)


def _stats() -> CacheStats | None:
    return _cache_stats_var.get()


@contextmanager
def record_cache_stats() -> CacheStats:
    """Capture cache stats within the current context (thread/task-safe)."""

    stats = CacheStats()
    token = _cache_stats_var.set(stats)
    try:
        yield stats
    finally:
        _cache_stats_var.reset(token)


class _BaseCache:
    """Shared TTL / stale-if-error logic; subclasses only store and load envelopes."""

    def __init__(self, *, enabled: bool = True, default_ttl_seconds: int = 86400, clock: Clock | None = None):
        self._enabled = enabled
        self._default_ttl_seconds = default_ttl_seconds
        self._clock: Clock | None = clock

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _now(self) -> int:
        return int(self._clock() if self._clock is not None else time.time())

    def _load(self, namespace: str, key: str) -> CacheEntry | None:
        raise NotImplementedError

    def _store(self, namespace: str, key: str, entry: CacheEntry) -> None:
        raise NotImplementedError

    def get(self, namespace: str, key: str, ttl_seconds: int | None = None) -> Any | None:
        """Read a cached value if present and not expired; otherwise return None."""
        if not self._enabled:
            return None

        entry = self._load(namespace, key)
        st = _stats()
        if entry is None:
            if st:
                st.misses += 1
            return None

        effective_ttl = ttl_seconds if ttl_seconds is not None else entry.ttl_seconds
        if self._now() - entry.created_at_unix > effective_ttl:
            if st:
                st.misses += 1
                st.expired += 1
            return None

        if st:
            st.hits += 1
        return entry.value

    def get_stale(self, namespace: str, key: str) -> Any | None:
        """Read a cached value even if expired; otherwise return None."""
        if not self._enabled:
            return None
        entry = self._load(namespace, key)
        if entry is None or entry.value is None:
            return None
        st = _stats()
        if st:
            st.stale_reads += 1
        return entry.value

    def get_entry_meta(self, namespace: str, key: str) -> dict[str, int] | None:
        """Return cache envelope metadata (created_at_unix, ttl_seconds) if present."""
        if not self._enabled:
            return None
        entry = self._load(namespace, key)
        if entry is None:
            return None
        return {"created_at_unix": entry.created_at_unix, "ttl_seconds": entry.ttl_seconds}

    def set(self, namespace: str, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        if not self._enabled:
            return None
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl_seconds
        self._store(namespace, key, CacheEntry(created_at_unix=self._now(), ttl_seconds=int(ttl), value=value))
        st = _stats()
        if st:
            st.sets += 1

    def get_or_set(
        self,
        namespace: str,
        key: str,
        builder: Callable[[], Any],
        ttl_seconds: int | None = None,
        *,
        stale_if_error: bool = False,
        stale_predicate: Callable[[Exception], bool] | None = None,
    ) -> Any:
        """Return cached value, or compute/store it via `builder`.

        If `stale_if_error` is enabled and `builder()` raises, an expired value is
        returned instead when one exists and `stale_predicate(exc)` allows it.
        A `None` result from `builder` is returned but not stored.
        """
        cached = self.get(namespace, key, ttl_seconds=ttl_seconds)
        if cached is not None:
            return cached
        try:
            value = builder()
        except Exception as exc:
            if stale_if_error and (stale_predicate(exc) if stale_predicate else True):
                stale = self.get_stale(namespace, key)
                if stale is not None:
                    st = _stats()
                    if st:
                        st.stale_fallbacks += 1
                    return stale
            raise
        if value is not None:
            self.set(namespace, key, value, ttl_seconds=ttl_seconds)
        return value


class MemoryCache(_BaseCache):
    """An in-process cache keyed by (namespace, key)."""

    def __init__(self, *, enabled: bool = True, default_ttl_seconds: int = 86400, clock: Clock | None = None):
        super().__init__(enabled=enabled, default_ttl_seconds=default_ttl_seconds, clock=clock)
        self._entries: dict[tuple[str, str], CacheEntry] = {}

    def _load(self, namespace: str, key: str) -> CacheEntry | None:
        return self._entries.get((namespace, key))

    def _store(self, namespace: str, key: str, entry: CacheEntry) -> None:
        self._entries[(namespace, key)] = entry

    def clear(self) -> None:
        self._entries.clear()


class FileCache(_BaseCache):
    """A filesystem-backed cache keyed by (namespace, key)."""

    def __init__(
        self,
        base_dir: Path,
        enabled: bool = True,
        default_ttl_seconds: int = 86400,
        *,
        clock: Clock | None = None,
    ):
        super().__init__(enabled=enabled, default_ttl_seconds=default_ttl_seconds, clock=clock)
        self._base_dir = base_dir

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _key_path(self, namespace: str, key: str) -> Path:
        """Return the file path for a cache entry (hash-based)."""
        digest = sha256(f"{namespace}:{key}".encode("utf-8")).hexdigest()
        return self._base_dir / namespace / f"{digest}.json"

    def _load(self, namespace: str, key: str) -> CacheEntry | None:
        path = self._key_path(namespace, key)
        if not path.exists():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return CacheEntry(
                created_at_unix=int(raw["created_at_unix"]),
                ttl_seconds=int(raw["ttl_seconds"]),
                value=raw["value"],
            )
        except (OSError, ValueError, KeyError, TypeError):
            return None

    def _store(self, namespace: str, key: str, entry: CacheEntry) -> None:
        """Write via a temporary file + atomic replace to avoid partial cache files."""
        path = self._key_path(namespace, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "created_at_unix": entry.created_at_unix,
            "ttl_seconds": entry.ttl_seconds,
            "value": entry.value,
        }
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)
