"""SQLAlchemy ORM models for the durable cache tiers."""
from sqlalchemy import Column, Float, Index, Integer, String, TEXT
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class KvCacheDB(Base):
    """Durable key-value tier: small JSON payloads keyed by cache key."""
    __tablename__ = "kv_cache"

    key = Column(String(200), primary_key=True)
    payload = Column(TEXT, nullable=False)
    timestamp = Column(Float, nullable=False)
    ttl = Column(Float, nullable=False)
    size = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_kv_timestamp", "timestamp"),
    )


class TimeSeriesCacheDB(Base):
    """Durable structured tier: one row per (ticker, interval) series."""
    __tablename__ = "timeseries_cache"

    id = Column(String(80), primary_key=True)  # "TICKER:interval"
    ticker = Column(String(40), nullable=False, index=True)
    interval = Column(String(20), nullable=False)
    data = Column(TEXT, nullable=False)
    timestamp = Column(Float, nullable=False, index=True)
    ttl = Column(Float, nullable=False)
