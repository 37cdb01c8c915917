"""TTL-indexed store of finished research, bounded by entry count.

Repeated identical requests are served from here instead of re-running the
pipeline. Entries expire per category TTL; when the store grows past
`max_entries` the least recently accessed entries are dropped.
"""
from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any, Literal

import logfire
from pydantic import ValidationError as PydanticValidationError

from .errors import CacheError
from .fingerprint import short_hash
from .models import (
    CacheConfig,
    CacheEntry,
    CacheInfo,
    CachedResearch,
    CacheStats,
    CacheType,
)
from .storage import KeyValueStore

STORE_KEY = "cacheStore"

_BASE_COST_USD: dict[str, float] = {
    "company-research": 0.5,
    "market-research": 0.3,
    "bulk-company-research": 2.0,
    "free-form-research": 0.2,
}
_BASE_TOKENS: dict[str, int] = {
    "company-research": 50_000,
    "market-research": 30_000,
    "bulk-company-research": 200_000,
    "free-form-research": 20_000,
}
_DEPTH_MULTIPLIERS = {"fast": 0.3, "medium": 1.0, "deep": 2.5}
_PROVIDER_MULTIPLIERS = {
    "openai": 1.0,
    "anthropic": 1.5,
    "google": 0.6,
    "deepseek": 0.1,
    "xai": 1.2,
    "mistral": 0.8,
    "together": 0.5,
    "groq": 0.3,
    "ollama": 0.0,
    "openrouter": 1.0,
}


def estimate_cost_savings(provider: str, cache_type: CacheType, depth: str | None = None) -> float:
    cost = _BASE_COST_USD.get(cache_type, 0.2)
    if depth in _DEPTH_MULTIPLIERS:
        cost *= _DEPTH_MULTIPLIERS[depth]
    return cost * _PROVIDER_MULTIPLIERS.get(provider.lower(), 1.0)


def estimate_token_savings(cache_type: CacheType, depth: str | None = None) -> int:
    tokens = _BASE_TOKENS.get(cache_type, 20_000)
    if depth in _DEPTH_MULTIPLIERS:
        tokens *= _DEPTH_MULTIPLIERS[depth]
    return round(tokens)


def freshness(entry: CacheEntry, now: float) -> Literal["green", "yellow", "red"]:
    """How far through its TTL an entry is."""
    lifetime = entry.expires_at - entry.created_at
    age = (now - entry.created_at) / lifetime if lifetime > 0 else 1.0
    if age < 0.5:
        return "green"
    if age < 0.8:
        return "yellow"
    return "red"


class ResultCache:
    """In-process result cache, optionally snapshotted to a KeyValueStore.

    Every mutation is a single update of `_entries`; the snapshot is written
    afterwards, so a failing store (CacheError) never loses the in-memory
    state.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        store: KeyValueStore | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or CacheConfig()
        self.store = store
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self.stats = CacheStats(last_updated=clock())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def keys(self) -> list[str]:
        return list(self._entries)

    # Persistence

    def load(self) -> int:
        """Restore entries and stats from the store. Returns expired entries swept."""
        if self.store is None:
            return 0
        snapshot = self.store.get(STORE_KEY)
        if not snapshot:
            return 0
        try:
            entries = [CacheEntry.model_validate(e) for e in snapshot.get("entries", [])]
            stats = CacheStats.model_validate(snapshot.get("stats", {}))
        except PydanticValidationError as e:
            raise CacheError(f"Corrupt cache snapshot: {e}") from e
        self._entries = {e.key: e for e in entries}
        self.stats = stats
        removed = 0
        if self.config.auto_cleanup:
            removed = self.cleanup()
            if removed:
                logfire.info('Cleaned up {removed} expired cache entries', removed=removed)
        return removed

    def save(self) -> None:
        if self.store is None:
            return
        self.store.set(
            STORE_KEY,
            {
                "entries": [e.model_dump(mode="json") for e in self._entries.values()],
                "stats": self.stats.model_dump(mode="json"),
                "config": self.config.model_dump(mode="json"),
            },
        )

    # Entry operations

    def get(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.is_expired(entry):
            self.remove(key)
            return None
        return entry

    def set(
        self,
        key: str,
        type: CacheType,
        data: CachedResearch,
        *,
        request_params: dict[str, Any] | None = None,
        ttl: float | None = None,
    ) -> str:
        """Upsert an entry and return its id.

        An explicit `ttl` (seconds) replaces the category default.
        """
        now = self._clock()
        ttl = ttl if ttl is not None else self.ttl_for(type)
        entry = CacheEntry(
            id=short_hash(key),
            key=key,
            type=type,
            data=data,
            request_params=request_params or {},
            created_at=now,
            expires_at=now + ttl,
            ttl=ttl,
            hit_count=0,
            last_accessed_at=now,
        )
        self._entries.pop(key, None)
        self._entries[key] = entry
        self._touch_stats(now)

        if len(self._entries) > self.config.max_entries:
            self.prune()
        else:
            self.save()
        return entry.id

    def remove(self, key: str) -> bool:
        if self._entries.pop(key, None) is None:
            return False
        self._touch_stats(self._clock())
        self.save()
        return True

    def clear(self, type: CacheType | None = None) -> None:
        if type is None:
            self._entries = {}
        else:
            self._entries = {k: e for k, e in self._entries.items() if e.type != type}
        self._touch_stats(self._clock())
        self.save()

    def cleanup(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        kept = {k: e for k, e in self._entries.items() if not now > e.expires_at}
        removed = len(self._entries) - len(kept)
        if removed:
            self._entries = kept
            self._touch_stats(now)
            self.save()
        return removed

    def prune(self) -> int:
        """Drop least recently accessed entries until at capacity."""
        excess = len(self._entries) - self.config.max_entries
        if excess <= 0:
            return 0
        # sorted() is stable, so ties keep insertion order and the newest survive
        by_access = sorted(self._entries.values(), key=lambda e: e.last_accessed_at)
        kept = by_access[excess:]
        self._entries = {e.key: e for e in kept}
        self._touch_stats(self._clock())
        self.save()
        return excess

    # Analytics

    def record_hit(self, key: str, *, cost_savings: float = 0.0, token_savings: int = 0) -> None:
        now = self._clock()
        entry = self._entries.get(key)
        if entry is not None:
            self._entries[key] = entry.model_copy(
                update={"hit_count": entry.hit_count + 1, "last_accessed_at": now}
            )
        self.stats = self.stats.model_copy(
            update={
                "total_hits": self.stats.total_hits + 1,
                "estimated_cost_savings": self.stats.estimated_cost_savings + cost_savings,
                "estimated_token_savings": self.stats.estimated_token_savings + token_savings,
                "last_updated": now,
            }
        )
        self.save()

    def record_miss(self) -> None:
        self.stats = self.stats.model_copy(
            update={"total_misses": self.stats.total_misses + 1, "last_updated": self._clock()}
        )
        self.save()

    def update_stats(self, **partial: Any) -> None:
        self.stats = self.stats.model_copy(update={**partial, "last_updated": self._clock()})
        self.save()

    def reset_stats(self) -> None:
        self.stats = CacheStats(total_entries=len(self._entries), last_updated=self._clock())
        self.save()

    # Configuration

    def update_config(self, **partial: Any) -> None:
        """Validated partial update; a partial `ttl` map only overrides the categories it names."""
        values = self.config.model_dump()
        if "ttl" in partial:
            partial = {**partial, "ttl": {**values["ttl"], **partial["ttl"]}}
        self.config = CacheConfig.model_validate({**values, **partial})
        if len(self._entries) > self.config.max_entries:
            self.prune()
        else:
            self.save()

    def ttl_for(self, type: CacheType) -> float:
        return self.config.ttl[type]

    # Utilities

    def is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() > entry.expires_at

    def valid_entries(self) -> list[CacheEntry]:
        return [e for e in self._entries.values() if not self.is_expired(e)]

    def info(self) -> CacheInfo:
        valid = len(self.valid_entries())
        requests = self.stats.total_hits + self.stats.total_misses
        return CacheInfo(
            total_size=len(self._entries),
            valid_entries=valid,
            expired_entries=len(self._entries) - valid,
            hit_rate=self.stats.total_hits / requests if requests else 0.0,
        )

    def _touch_stats(self, now: float) -> None:
        self.stats = self.stats.model_copy(update={"total_entries": len(self._entries), "last_updated": now})
