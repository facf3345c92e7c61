"""Durable structured tier for per-(ticker, interval) series payloads."""
import json
import time
from typing import Any, Callable, Optional

from sqlalchemy import delete, distinct, func, select
from sqlalchemy.engine import Engine

from common.logger import get_logger
from common.models import CacheEntry
from storage.database import make_session_factory, storage_guard
from storage.models import TimeSeriesCacheDB

logger = get_logger("timeseries")


def series_id(ticker: str, interval: str) -> str:
    return f"{ticker}:{interval}"


def split_series_id(key: str) -> tuple[str, str]:
    ticker, _, interval = key.rpartition(":")
    if not ticker:
        return key, ""
    return ticker, interval


class TimeSeriesStore:
    def __init__(self, engine: Engine, clock: Callable[[], float] = time.time):
        self._sessions = make_session_factory(engine)
        self._clock = clock

    @storage_guard
    def get(self, key: str) -> Optional[CacheEntry]:
        with self._sessions() as session:
            row = session.get(TimeSeriesCacheDB, key)
            if row is None:
                return None
            try:
                data = json.loads(row.data)
            except ValueError:
                logger.warning(f"Corrupt series '{key}', dropping entry")
                session.delete(row)
                session.commit()
                return None
            entry = CacheEntry(data=data, timestamp=row.timestamp, ttl=row.ttl)
            # expired rows are left for cleanup()
            if entry.is_expired(self._clock()):
                return None
            return entry

    @storage_guard
    def set(self, key: str, value: Any, ttl: float) -> None:
        ticker, interval = split_series_id(key)
        with self._sessions() as session:
            row = session.get(TimeSeriesCacheDB, key)
            if row is None:
                row = TimeSeriesCacheDB(id=key, ticker=ticker, interval=interval)
                session.add(row)
            row.data = json.dumps(value)
            row.timestamp = self._clock()
            row.ttl = ttl
            session.commit()

    @storage_guard
    def remove(self, key: str) -> None:
        with self._sessions() as session:
            session.execute(delete(TimeSeriesCacheDB).where(TimeSeriesCacheDB.id == key))
            session.commit()

    @storage_guard
    def clear(self) -> None:
        with self._sessions() as session:
            session.execute(delete(TimeSeriesCacheDB))
            session.commit()

    @storage_guard
    def tickers(self) -> list[str]:
        with self._sessions() as session:
            rows = session.execute(
                select(distinct(TimeSeriesCacheDB.ticker)).order_by(TimeSeriesCacheDB.ticker)
            ).scalars().all()
        return list(rows)

    @storage_guard
    def cleanup(self) -> int:
        """Bulk-delete every TTL-expired series; returns the number removed."""
        now = self._clock()
        with self._sessions() as session:
            result = session.execute(
                delete(TimeSeriesCacheDB).where(TimeSeriesCacheDB.timestamp + TimeSeriesCacheDB.ttl < now)
            )
            session.commit()
        removed = result.rowcount or 0
        if removed:
            logger.info(f"Swept {removed} expired series")
        return removed

    @storage_guard
    def stats(self) -> dict:
        with self._sessions() as session:
            count = session.execute(select(func.count(TimeSeriesCacheDB.id))).scalar_one()
            oldest = session.execute(select(func.min(TimeSeriesCacheDB.timestamp))).scalar_one()
        return {"entries": count, "tickers": len(self.tickers()), "oldest": oldest}
