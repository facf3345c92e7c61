"""
Tiered read-through cache.

Lookups go memory -> durable store. QUOTE resources use the key-value store,
SERIES resources (key "TICKER:interval") use the time-series store. A durable
hit is promoted into memory for its remaining TTL.

Every public operation is non-throwing: durable tiers report failures as
StorageError, which is logged and degrades to a miss or a no-op. Callers
fetch upstream on a miss and call set().
"""
import asyncio
import time
from enum import Enum
from typing import Any, Callable, Optional

from common.errors import StorageError
from common.logger import get_logger
from common.models import CacheEntry
from storage.kv_store import KeyValueStore
from storage.timeseries import TimeSeriesStore

logger = get_logger("cache")


class ResourceKind(str, Enum):
    QUOTE = "quote"
    SERIES = "series"


class MemoryStore:
    """Process-local volatile tier."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._entries: dict[str, CacheEntry] = {}
        self._clock = clock

    def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    def set(self, key: str, value: Any, ttl: float, timestamp: Optional[float] = None) -> None:
        ts = self._clock() if timestamp is None else timestamp
        self._entries[key] = CacheEntry(data=value, timestamp=ts, ttl=ttl)

    def remove(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def cleanup(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


def _memory_key(key: str, kind: ResourceKind) -> str:
    return f"{kind.value}|{key}"


class TieredCache:
    def __init__(
        self,
        memory: MemoryStore,
        kv: Optional[KeyValueStore] = None,
        series: Optional[TimeSeriesStore] = None,
    ):
        self.memory = memory
        self.kv = kv
        self.series = series

    def _durable(self, kind: ResourceKind):
        return self.series if kind == ResourceKind.SERIES else self.kv

    async def get(self, key: str, kind: ResourceKind = ResourceKind.QUOTE) -> Any:
        """Return the cached value or None on a miss."""
        mkey = _memory_key(key, kind)
        entry = self.memory.get(mkey)
        if entry is not None:
            return entry.data

        store = self._durable(kind)
        if store is None:
            return None
        try:
            entry = await asyncio.to_thread(store.get, key)
        except StorageError as e:
            logger.warning(f"Durable {kind.value} read failed for '{key}': {e}")
            return None
        if entry is None:
            return None

        # promote with the remaining TTL
        self.memory.set(mkey, entry.data, entry.ttl, timestamp=entry.timestamp)
        logger.debug(f"Promoted '{key}' from durable {kind.value} tier")
        return entry.data

    async def set(self, key: str, value: Any, ttl: float, kind: ResourceKind = ResourceKind.QUOTE) -> None:
        self.memory.set(_memory_key(key, kind), value, ttl)
        store = self._durable(kind)
        if store is None:
            return
        try:
            await asyncio.to_thread(store.set, key, value, ttl)
        except StorageError as e:
            logger.warning(f"Durable {kind.value} write failed for '{key}': {e}")

    async def remove(self, key: str, kind: ResourceKind = ResourceKind.QUOTE) -> None:
        self.memory.remove(_memory_key(key, kind))
        store = self._durable(kind)
        if store is None:
            return
        try:
            await asyncio.to_thread(store.remove, key)
        except StorageError as e:
            logger.warning(f"Durable {kind.value} remove failed for '{key}': {e}")

    async def clear(self) -> None:
        self.memory.clear()
        for store in (self.kv, self.series):
            if store is None:
                continue
            try:
                await asyncio.to_thread(store.clear)
            except StorageError as e:
                logger.warning(f"Durable clear failed: {e}")

    async def sweep(self) -> dict[str, int]:
        """Purge expired entries from every tier."""
        removed = {"memory": self.memory.cleanup(), "kv": 0, "series": 0}
        for name, store in (("kv", self.kv), ("series", self.series)):
            if store is None:
                continue
            try:
                removed[name] = await asyncio.to_thread(store.cleanup)
            except StorageError as e:
                logger.warning(f"Sweep of {name} tier failed: {e}")
        logger.info(f"Cache sweep: {removed}")
        return removed

    async def stats(self) -> dict:
        result: dict[str, Any] = {"memory": {"entries": len(self.memory)}}
        for name, store in (("kv", self.kv), ("series", self.series)):
            if store is None:
                continue
            try:
                result[name] = await asyncio.to_thread(store.stats)
            except StorageError as e:
                logger.warning(f"Stats for {name} tier failed: {e}")
                result[name] = None
        return result
