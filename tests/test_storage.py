import pytest

from company_research.errors import CacheError
from company_research.storage import JsonFileStore, MemoryStore


def test_memory_store_round_trip():
    store = MemoryStore()
    store.set("k", {"a": [1, 2]})
    assert store.get("k") == {"a": [1, 2]}
    store.remove("k")
    assert store.get("k") is None


def test_memory_store_rejects_unserializable_values():
    with pytest.raises(CacheError):
        MemoryStore().set("k", object())


def test_json_file_store_round_trip(tmp_path):
    store = JsonFileStore(tmp_path / "cache")
    assert store.get("cacheStore") is None
    store.set("cacheStore", {"entries": [], "stats": {"total_hits": 3}})
    assert JsonFileStore(tmp_path / "cache").get("cacheStore")["stats"]["total_hits"] == 3
    store.remove("cacheStore")
    assert store.get("cacheStore") is None


def test_json_file_store_sanitizes_keys(tmp_path):
    store = JsonFileStore(tmp_path)
    store.set("../escape:key", 1)
    assert [p.name for p in tmp_path.iterdir()] == [".._escape_key.json"]


def test_json_file_store_raises_cache_error_on_corrupt_file(tmp_path):
    (tmp_path / "cacheStore.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(CacheError):
        JsonFileStore(tmp_path).get("cacheStore")
