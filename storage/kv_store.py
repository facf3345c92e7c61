"""Durable key-value cache tier with TTL metadata and bounded size."""
import json
import time
from typing import Any, Callable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.engine import Engine

from common.logger import get_logger
from common.models import CacheEntry
from config.settings import KV_MAX_BYTES, KV_MAX_ENTRIES
from storage.database import make_session_factory, storage_guard
from storage.models import KvCacheDB

logger = get_logger("kv_store")


class KeyValueStore:
    """Synchronous; failures surface as StorageError, which TieredCache absorbs."""

    def __init__(
        self,
        engine: Engine,
        max_entries: int = KV_MAX_ENTRIES,
        max_bytes: int = KV_MAX_BYTES,
        clock: Callable[[], float] = time.time,
    ):
        self._sessions = make_session_factory(engine)
        self.max_entries = max_entries
        self.max_bytes = max_bytes
        self._clock = clock

    @storage_guard
    def get(self, key: str) -> Optional[CacheEntry]:
        with self._sessions() as session:
            row = session.get(KvCacheDB, key)
            if row is None:
                return None
            try:
                data = json.loads(row.payload)
            except ValueError:
                logger.warning(f"Corrupt payload for '{key}', dropping entry")
                session.delete(row)
                session.commit()
                return None
            entry = CacheEntry(data=data, timestamp=row.timestamp, ttl=row.ttl)
            if entry.is_expired(self._clock()):
                session.delete(row)
                session.commit()
                return None
            return entry

    @storage_guard
    def set(self, key: str, value: Any, ttl: float) -> None:
        payload = json.dumps(value)
        size = len(payload.encode("utf-8"))
        if size > self.max_bytes:
            logger.warning(f"Value for '{key}' is {size} bytes, larger than the store; not persisted")
            return
        with self._sessions() as session:
            row = session.get(KvCacheDB, key)
            if row is None:
                row = KvCacheDB(key=key)
                session.add(row)
            row.payload = payload
            row.timestamp = self._clock()
            row.ttl = ttl
            row.size = size
            session.flush()
            self._evict_overflow(session)
            session.commit()

    def _evict_overflow(self, session) -> None:
        """Drop oldest entries until both bounds hold."""
        count, total = session.execute(
            select(func.count(KvCacheDB.key), func.coalesce(func.sum(KvCacheDB.size), 0))
        ).one()
        if count <= self.max_entries and total <= self.max_bytes:
            return
        evicted = 0
        for key, size in session.execute(
            select(KvCacheDB.key, KvCacheDB.size).order_by(KvCacheDB.timestamp.asc())
        ).all():
            if count <= self.max_entries and total <= self.max_bytes:
                break
            session.execute(delete(KvCacheDB).where(KvCacheDB.key == key))
            count -= 1
            total -= size
            evicted += 1
        logger.info(f"KV store over capacity, evicted {evicted} oldest entries")

    @storage_guard
    def remove(self, key: str) -> None:
        with self._sessions() as session:
            session.execute(delete(KvCacheDB).where(KvCacheDB.key == key))
            session.commit()

    @storage_guard
    def clear(self) -> None:
        with self._sessions() as session:
            session.execute(delete(KvCacheDB))
            session.commit()

    @storage_guard
    def cleanup(self) -> int:
        """Delete every TTL-expired entry; returns the number removed."""
        now = self._clock()
        with self._sessions() as session:
            result = session.execute(
                delete(KvCacheDB).where(KvCacheDB.timestamp + KvCacheDB.ttl < now)
            )
            session.commit()
            return result.rowcount or 0

    @storage_guard
    def stats(self) -> dict:
        with self._sessions() as session:
            count, total = session.execute(
                select(func.count(KvCacheDB.key), func.coalesce(func.sum(KvCacheDB.size), 0))
            ).one()
        return {"entries": count, "bytes": int(total)}
