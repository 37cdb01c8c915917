import pytest
from pydantic import ValidationError as PydanticValidationError

from company_research.cache import (
    STORE_KEY,
    ResultCache,
    estimate_cost_savings,
    estimate_token_savings,
    freshness,
)
from company_research.errors import CacheError
from company_research.models import CacheConfig, CachedResearch, ResearchReport
from company_research.storage import MemoryStore

HOUR = 60 * 60


def _data(title: str = "Acme - Quick Analysis") -> CachedResearch:
    return CachedResearch(report=ResearchReport(title=title, content="Acme builds rockets."))


class BrokenStore:
    def get(self, key):
        return None

    def set(self, key, value):
        raise CacheError("disk full")

    def remove(self, key):
        raise CacheError("disk full")


def test_get_returns_entry_within_ttl(clock):
    cache = ResultCache(clock=clock)
    cache.set("company:acme", "company-research", _data())
    clock.advance(24 * HOUR - 1)
    entry = cache.get("company:acme")
    assert entry is not None
    assert entry.data.report.title == "Acme - Quick Analysis"


def test_get_drops_expired_entry(clock):
    cache = ResultCache(clock=clock)
    cache.set("market:x", "market-research", _data())
    clock.advance(12 * HOUR + 1)
    assert cache.get("market:x") is None
    assert len(cache) == 0


def test_explicit_ttl_replaces_category_default(clock):
    cache = ResultCache(clock=clock)
    cache.set("company:acme", "company-research", _data(), ttl=10)
    clock.advance(11)
    assert "company:acme" not in cache


def test_set_upserts_without_duplicating(clock):
    cache = ResultCache(clock=clock)
    cache.set("k", "company-research", _data("old"))
    cache.set("k", "company-research", _data("new"))
    assert len(cache) == 1
    assert cache.get("k").data.report.title == "new"


def test_prune_keeps_most_recently_accessed(clock):
    cache = ResultCache(CacheConfig(max_entries=3), clock=clock)
    for key in ("a", "b", "c"):
        cache.set(key, "company-research", _data())
        clock.advance(1)
    cache.record_hit("a")
    clock.advance(1)
    cache.set("d", "company-research", _data())
    assert sorted(cache.keys()) == ["a", "c", "d"]


def test_prune_with_equal_timestamps_keeps_newest(clock):
    cache = ResultCache(CacheConfig(max_entries=2), clock=clock)
    for key in ("a", "b", "c"):
        cache.set(key, "company-research", _data())
    assert cache.keys() == ["b", "c"]


def test_cleanup_is_idempotent(clock):
    cache = ResultCache(clock=clock)
    cache.set("short", "free-form-research", _data())
    cache.set("long", "company-research", _data())
    clock.advance(7 * HOUR)
    assert cache.cleanup() == 1
    assert cache.cleanup() == 0
    assert cache.keys() == ["long"]


def test_clear_by_type(clock):
    cache = ResultCache(clock=clock)
    cache.set("a", "company-research", _data())
    cache.set("b", "market-research", _data())
    cache.clear("market-research")
    assert cache.keys() == ["a"]
    cache.clear()
    assert len(cache) == 0


def test_remove(clock):
    cache = ResultCache(clock=clock)
    cache.set("a", "company-research", _data())
    assert cache.remove("a")
    assert not cache.remove("a")


def test_hits_and_misses_feed_stats(clock):
    cache = ResultCache(clock=clock)
    cache.set("a", "company-research", _data())
    cache.record_hit("a", cost_savings=0.5, token_savings=1000)
    cache.record_miss()
    assert cache.stats.total_hits == 1
    assert cache.stats.total_misses == 1
    assert cache.stats.estimated_cost_savings == pytest.approx(0.5)
    assert cache.get("a").hit_count == 1
    assert cache.info().hit_rate == pytest.approx(0.5)


def test_info_counts_expired_entries(clock):
    cache = ResultCache(clock=clock)
    cache.set("a", "free-form-research", _data())
    cache.set("b", "company-research", _data())
    clock.advance(7 * HOUR)
    info = cache.info()
    assert (info.total_size, info.valid_entries, info.expired_entries) == (2, 1, 1)


def test_reset_stats(clock):
    cache = ResultCache(clock=clock)
    cache.set("a", "company-research", _data())
    cache.record_miss()
    cache.reset_stats()
    assert cache.stats.total_misses == 0
    assert cache.stats.total_entries == 1


def test_update_config_prunes_when_shrinking(clock):
    cache = ResultCache(clock=clock)
    for key in ("a", "b", "c"):
        cache.set(key, "company-research", _data())
        clock.advance(1)
    cache.update_config(max_entries=1)
    assert cache.keys() == ["c"]


def test_update_config_rejects_invalid_values(clock):
    cache = ResultCache(clock=clock)
    cache.set("a", "company-research", _data())
    with pytest.raises(PydanticValidationError):
        cache.update_config(max_entries=0)
    assert cache.config.max_entries == 500
    assert cache.keys() == ["a"]


def test_update_config_merges_partial_ttl(clock):
    cache = ResultCache(clock=clock)
    cache.update_config(ttl={"company-research": HOUR})
    assert cache.ttl_for("company-research") == HOUR
    assert cache.ttl_for("market-research") == 12 * HOUR


def test_snapshot_round_trips_through_store(clock):
    store = MemoryStore()
    cache = ResultCache(store=store, clock=clock)
    cache.set("a", "company-research", _data(), request_params={"depth": "fast"})
    cache.record_miss()

    restored = ResultCache(store=store, clock=clock)
    assert restored.load() == 0
    assert restored.get("a").request_params == {"depth": "fast"}
    assert restored.stats.total_misses == 1


def test_load_sweeps_expired_entries(clock):
    store = MemoryStore()
    cache = ResultCache(store=store, clock=clock)
    cache.set("a", "free-form-research", _data())
    cache.set("b", "company-research", _data())
    clock.advance(7 * HOUR)

    restored = ResultCache(store=store, clock=clock)
    assert restored.load() == 1
    assert restored.keys() == ["b"]


def test_load_rejects_corrupt_snapshot(clock):
    store = MemoryStore()
    store.set(STORE_KEY, {"entries": [{"key": "missing fields"}]})
    with pytest.raises(CacheError):
        ResultCache(store=store, clock=clock).load()


def test_failing_store_keeps_in_memory_state(clock):
    cache = ResultCache(store=BrokenStore(), clock=clock)
    with pytest.raises(CacheError):
        cache.set("a", "company-research", _data())
    assert "a" in cache.keys()


def test_freshness(clock):
    cache = ResultCache(clock=clock)
    cache.set("a", "company-research", _data(), ttl=100)
    entry = cache.get("a")
    assert freshness(entry, clock.now + 10) == "green"
    assert freshness(entry, clock.now + 60) == "yellow"
    assert freshness(entry, clock.now + 90) == "red"


def test_savings_estimates():
    assert estimate_cost_savings("anthropic", "company-research", "deep") == pytest.approx(0.5 * 2.5 * 1.5)
    assert estimate_cost_savings("unknown", "market-research") == pytest.approx(0.3)
    assert estimate_token_savings("company-research", "fast") == 15_000
