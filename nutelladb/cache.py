"""An LRU cache of string values grouped by collection, persisted as JSON."""

from __future__ import annotations

import json
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

log = logging.getLogger(__name__)

MAX_CACHE_SIZE = 10
PERSIST_TO_DISK = True
CACHE_FILE = "cache.json"


class CacheError(Exception):
    """Raised when a cache lookup fails or the cache file cannot be used."""


@dataclass
class CacheItem:
    """One cached value and where it belongs."""

    collection: str
    key: str
    value: str


class Cache:
    """Least-recently-used cache shared by all collections of a database."""

    def __init__(self, max_size: int = MAX_CACHE_SIZE) -> None:
        self.max_size = max_size
        self._collections: dict[str, dict[str, CacheItem]] = {}
        # Most recently used entries sit at the end.
        self._lru: OrderedDict[tuple[str, str], CacheItem] = OrderedDict()
        self._lock = threading.RLock()

    # ----------------------------------------------------------- persistence

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "max_size": self.max_size,
                "cache_data": {
                    name: {key: item.value for key, item in items.items()}
                    for name, items in self._collections.items()
                },
            }

    def save(self, basepath: str | Path) -> None:
        """Write the cache to ``cache.json`` inside ``basepath``."""
        data = self.to_dict()
        try:
            (Path(basepath) / CACHE_FILE).write_text(json.dumps(data, separators=(",", ":")))
        except OSError as exc:
            raise CacheError(f"failed to write cache file: {exc}") from exc

    @classmethod
    def load(cls, basepath: str | Path) -> Cache:
        """Read the cache saved in ``basepath``."""
        try:
            text = (Path(basepath) / CACHE_FILE).read_text()
        except OSError as exc:
            raise CacheError(f"failed to read cache file: {exc}") from exc
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CacheError(f"failed to parse cache file: {exc}") from exc
        if not isinstance(data, dict):
            raise CacheError("failed to parse cache file: not an object")

        cache = cls(int(data.get("max_size") or 0))
        cache_data = data.get("cache_data") or {}
        if not isinstance(cache_data, dict):
            raise CacheError("failed to parse cache file: bad cache_data")
        for collection, items in cache_data.items():
            if not isinstance(items, dict):
                raise CacheError(f"failed to parse cache file: bad collection {collection!r}")
            entries = cache._collections.setdefault(collection, {})
            for key, value in items.items():
                item = CacheItem(collection, key, value)
                entries[key] = item
                cache._lru[(collection, key)] = item
        return cache

    def add_collection(self, basepath: str | Path, collection_name: str) -> None:
        """Register an empty collection and persist the cache."""
        with self._lock:
            if collection_name in self._collections:
                raise CacheError(f"collection '{collection_name}' already exists")
            self._collections[collection_name] = {}
        if PERSIST_TO_DISK:
            self.save(basepath)

    # ------------------------------------------------------------ internals

    def _get(self, collection: str, key: str) -> CacheItem | None:
        with self._lock:
            item = self._collections.get(collection, {}).get(key)
            if item is not None:
                self._lru.move_to_end((collection, key))
            return item

    def _set(self, collection: str, key: str, value: str) -> None:
        with self._lock:
            entries = self._collections.setdefault(collection, {})
            item = entries.get(key)
            if item is not None:
                self._lru.move_to_end((collection, key))
                item.value = value
                return

            item = CacheItem(collection, key, value)
            entries[key] = item
            self._lru[(collection, key)] = item
            if self.size() > self.max_size:
                self._evict_lru()

    def _evict_lru(self) -> None:
        if not self._lru:
            return
        (collection, key), _ = self._lru.popitem(last=False)
        entries = self._collections.get(collection)
        if entries is None:
            return
        entries.pop(key, None)
        if not entries:
            del self._collections[collection]

    # ------------------------------------------------------------ operations

    def find(self, collection: str, key: str) -> str:
        """Return the cached value, marking it as recently used."""
        item = self._get(collection, key)
        if item is None:
            raise CacheError(f"failed to find key '{key}' in collection '{collection}'")
        return item.value

    def insert(self, collection: str, key: str, value: str) -> None:
        """Cache ``value``, evicting the least recently used entry when full."""
        self._set(collection, key, value)

    def update(self, collection: str, key: str, value: str) -> None:
        """Replace the value of a key that is already cached."""
        if self._get(collection, key) is None:
            raise CacheError(f"key '{key}' not found in collection '{collection}'")
        self._set(collection, key, value)

    def delete(self, collection: str, key: str) -> None:
        """Drop a cached key; a collection left empty is dropped too."""
        with self._lock:
            entries = self._collections.get(collection)
            if entries is None:
                raise CacheError(f"failed to find collection '{collection}'")
            if key not in entries:
                raise CacheError(f"key '{key}' not found in collection '{collection}'")
            del entries[key]
            self._lru.pop((collection, key), None)
            if not entries:
                del self._collections[collection]

    def size(self) -> int:
        with self._lock:
            return sum(len(entries) for entries in self._collections.values())

    def set_max_size(self, max_size: int) -> None:
        """Change the capacity, evicting old entries that no longer fit."""
        with self._lock:
            self.max_size = max_size
            excess = self.size() - max_size
            for _ in range(max(excess, 0)):
                self._evict_lru()

    def clear(self) -> None:
        with self._lock:
            self._collections = {}
            self._lru = OrderedDict()

    def keys(self, collection: str) -> list[str]:
        with self._lock:
            return list(self._collections.get(collection, {}))

    def collections(self) -> list[str]:
        with self._lock:
            return list(self._collections)


def create_cache(basepath: str | Path, collections: Iterable[str]) -> Cache:
    """Start a cache holding the given empty collections, saving it if persistent."""
    names = list(collections)
    log.debug("creating cache with collections %s", names)
    cache = Cache(MAX_CACHE_SIZE)
    for name in names:
        cache._collections.setdefault(name, {})
    if PERSIST_TO_DISK:
        cache.save(basepath)
    return cache


def add_collection_to_disk(basepath: str | Path, collection_name: str) -> None:
    cache = Cache.load(basepath)
    cache.add_collection(basepath, collection_name)
    cache.save(basepath)


def find_in_saved_cache(basepath: str | Path, collection: str, key: str) -> str:
    return Cache.load(basepath).find(collection, key)


def insert_in_saved_cache(basepath: str | Path, collection: str, key: str, value: str) -> None:
    cache = Cache.load(basepath)
    cache.insert(collection, key, value)
    cache.save(basepath)


def update_saved_cache(basepath: str | Path, collection: str, key: str, value: str) -> None:
    cache = Cache.load(basepath)
    cache.update(collection, key, value)
    cache.save(basepath)


def delete_from_saved_cache(basepath: str | Path, collection: str, key: str) -> None:
    cache = Cache.load(basepath)
    cache.delete(collection, key)
    cache.save(basepath)