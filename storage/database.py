"""Engine and session factory for the durable cache tiers.

The cache database defaults to a SQLite file under DATA_DIR (see CACHE_DB_URL).
Stores are synchronous; async callers run them through asyncio.to_thread.
"""
import functools
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from common.errors import StorageError
from common.logger import get_logger
from config.settings import CACHE_DB_URL
from storage.models import Base

logger = get_logger("database")


def create_cache_engine(url: str = CACHE_DB_URL) -> Engine:
    """Build an engine and ensure the cache tables exist (idempotent)."""
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        db_path = url.split("///", 1)[-1] if "///" in url else ""
        if db_path in ("", ":memory:"):
            # single shared connection, worker threads would otherwise each see an empty db
            kwargs["poolclass"] = StaticPool
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(url, echo=False, pool_pre_ping=True, **kwargs)
    Base.metadata.create_all(engine)
    logger.info("[DB] Cache backend: %s", url.split("@")[-1])
    return engine


def make_session_factory(engine: Engine) -> "sessionmaker[Session]":
    return sessionmaker(engine, expire_on_commit=False)


def storage_guard(fn):
    """Re-raise driver, filesystem and serialisation failures as StorageError."""
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (SQLAlchemyError, OSError, TypeError, ValueError) as e:
            raise StorageError(f"{fn.__qualname__} failed: {e}") from e
    return wrapper
