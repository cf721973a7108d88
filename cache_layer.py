"""
In-process TTL cache for CMS reads.

Course lists, taxonomy terms and module lists change rarely compared to how
often trainees browse them, so delivery-API responses are kept for a short
TTL per worker. Progress and training-plan data are never cached: they live
in MongoDB and must always be read fresh.
"""
from __future__ import annotations

import hashlib
import json
import os
import threading
from collections import Counter
from typing import Any, Callable

from cachetools import TTLCache


def _digest(params: dict[str, Any]) -> str:
    try:
        blob = json.dumps(params or {}, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError):
        blob = str(params)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()[:16]


def cms_key(content_type: str, params: dict[str, Any] | None = None) -> str:
    """``CMS:<CONTENT_TYPE>:<digest>``; the same read always maps to the same key."""
    return f"CMS:{str(content_type or '').strip().upper()}:{_digest(params or {})}"


class CmsReadCache:
    """TTL cache keyed by CMS read, with hit/miss counters per content type."""

    def __init__(self, ttl: int | None = None, max_items: int | None = None):
        if ttl is None:
            ttl = int(os.getenv("CACHE_TTL_SECONDS", "60") or "60")
        if max_items is None:
            max_items = int(os.getenv("CACHE_MAX_ITEMS", "2000") or "2000")
        self._entries = TTLCache(maxsize=max(10, min(100_000, max_items)), ttl=max(1, min(3600, ttl)))
        self._lock = threading.RLock()
        self._hits: Counter[str] = Counter()
        self._misses: Counter[str] = Counter()

    def fetch(self, content_type: str, params: dict[str, Any], loader: Callable[[], Any]) -> Any:
        key = cms_key(content_type, params)
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self._hits[content_type] += 1
                return cached
            self._misses[content_type] += 1

        # Loaded outside the lock; two concurrent misses may both hit the CMS.
        value = loader()
        if value is None:
            return None
        with self._lock:
            return self._entries.setdefault(key, value)

    def drop(self, content_type: str) -> int:
        """Forget every cached read of one content type."""
        prefix = cms_key(content_type).rsplit(":", 1)[0] + ":"
        with self._lock:
            stale = [k for k in list(self._entries.keys()) if k.startswith(prefix)]
            for k in stale:
                self._entries.pop(k, None)
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits.clear()
            self._misses.clear()

    def stats(self) -> dict[str, Any]:
        with self._lock:
            hits = sum(self._hits.values())
            misses = sum(self._misses.values())
            total = hits + misses
            return {
                "size": len(self._entries),
                "maxsize": self._entries.maxsize,
                "hits": hits,
                "misses": misses,
                "hit_rate": round(hits / total * 100, 2) if total else 0.0,
                "by_content_type": {
                    ct: {"hits": self._hits[ct], "misses": self._misses[ct]}
                    for ct in sorted(set(self._hits) | set(self._misses))
                },
            }


_cache = CmsReadCache()


def cms_cached(content_type: str, params: dict[str, Any], factory: Callable[[], Any]) -> Any:
    """Return the cached CMS read, loading it with ``factory`` on a miss. ``None`` is not cached."""
    return _cache.fetch(content_type, params, factory)


def cache_clear() -> None:
    _cache.clear()


def cache_stats() -> dict[str, Any]:
    return _cache.stats()
