import json

import pytest

from nutelladb.cache import (
    CACHE_FILE,
    MAX_CACHE_SIZE,
    Cache,
    CacheError,
    add_collection_to_disk,
    create_cache,
    delete_from_saved_cache,
    find_in_saved_cache,
    insert_in_saved_cache,
    update_saved_cache,
)


def test_insert_then_find_returns_value():
    cache = Cache()
    cache.insert("users", "alice", "v1")
    assert cache.find("users", "alice") == "v1"


def test_find_missing_key_raises():
    cache = Cache()
    cache.insert("users", "alice", "v1")
    with pytest.raises(CacheError):
        cache.find("users", "bob")
    with pytest.raises(CacheError):
        cache.find("other", "alice")


def test_update_existing_and_missing():
    cache = Cache()
    cache.insert("users", "alice", "v1")
    cache.update("users", "alice", "v2")
    assert cache.find("users", "alice") == "v2"
    with pytest.raises(CacheError):
        cache.update("users", "bob", "v3")
    assert cache.keys("users") == ["alice"]


def test_delete_removes_key_and_empty_collection():
    cache = Cache()
    cache.insert("users", "alice", "v1")
    cache.insert("users", "bob", "v2")
    cache.delete("users", "alice")
    assert cache.keys("users") == ["bob"]
    cache.delete("users", "bob")
    assert cache.collections() == []


def test_delete_errors():
    cache = Cache()
    with pytest.raises(CacheError):
        cache.delete("users", "alice")
    cache.insert("users", "alice", "v1")
    with pytest.raises(CacheError):
        cache.delete("users", "bob")
    assert cache.find("users", "alice") == "v1"


def test_lru_eviction_respects_recent_use():
    cache = Cache(max_size=2)
    cache.insert("c", "a", "1")
    cache.insert("c", "b", "2")
    cache.find("c", "a")
    cache.insert("c", "x", "3")
    assert sorted(cache.keys("c")) == ["a", "x"]
    assert cache.size() == cache.max_size


def test_eviction_drops_empty_collection():
    cache = Cache(max_size=1)
    cache.insert("first", "k1", "v1")
    cache.insert("second", "k2", "v2")
    assert cache.collections() == ["second"]


def test_set_max_size_evicts_oldest():
    cache = Cache()
    for key in ["a", "b", "c"]:
        cache.insert("c", key, key)
    cache.set_max_size(1)
    assert cache.keys("c") == ["c"]
    assert cache.size() == cache.max_size


def test_clear_empties_cache():
    cache = Cache()
    cache.insert("c", "a", "1")
    cache.clear()
    assert cache.size() == 0
    assert cache.collections() == []


def test_save_load_round_trip(tmp_path):
    cache = Cache(max_size=7)
    cache.insert("users", "alice", "v1")
    cache.insert("items", "pen", "blue")
    cache.save(tmp_path)
    loaded = Cache.load(tmp_path)
    assert loaded.max_size == 7
    assert loaded.find("users", "alice") == "v1"
    assert loaded.find("items", "pen") == "blue"
    assert sorted(loaded.collections()) == ["items", "users"]


def test_saved_file_format(tmp_path):
    cache = Cache(max_size=4)
    cache.insert("users", "alice", "v1")
    cache.save(tmp_path)
    data = json.loads((tmp_path / CACHE_FILE).read_text())
    assert data == {"max_size": 4, "cache_data": {"users": {"alice": "v1"}}}


def test_load_missing_file_raises(tmp_path):
    with pytest.raises(CacheError):
        Cache.load(tmp_path)


def test_create_cache_writes_collections(tmp_path):
    create_cache(tmp_path, ["one", "two"])
    loaded = Cache.load(tmp_path)
    assert sorted(loaded.collections()) == ["one", "two"]
    assert loaded.max_size == MAX_CACHE_SIZE


def test_add_collection_duplicate_raises(tmp_path):
    cache = Cache()
    cache.add_collection(tmp_path, "users")
    with pytest.raises(CacheError):
        cache.add_collection(tmp_path, "users")
    assert Cache.load(tmp_path).collections() == ["users"]


def test_saved_cache_helpers(tmp_path):
    create_cache(tmp_path, [])
    add_collection_to_disk(tmp_path, "users")
    insert_in_saved_cache(tmp_path, "users", "alice", "v1")
    assert find_in_saved_cache(tmp_path, "users", "alice") == "v1"
    update_saved_cache(tmp_path, "users", "alice", "v2")
    assert find_in_saved_cache(tmp_path, "users", "alice") == "v2"
    delete_from_saved_cache(tmp_path, "users", "alice")
    with pytest.raises(CacheError):
        find_in_saved_cache(tmp_path, "users", "alice")


def test_add_collection_to_disk_duplicate_raises(tmp_path):
    create_cache(tmp_path, ["users"])
    with pytest.raises(CacheError):
        add_collection_to_disk(tmp_path, "users")