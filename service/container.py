"""Composition root: builds every collaborator once and wires them together."""
from pathlib import Path
from typing import Optional

import requests

from common.logger import get_logger
from config.settings import (
    AAII_SENTIMENT_PATH, CACHE_DB_URL, FRED_API_KEY, GLOBAL_PMI_PATH, HISTORY_PATH, RATE_LIMITS,
)
from ingest.breadth import BreadthIngestor
from ingest.fred import CreditIngestor
from ingest.global_markets import GlobalIngestor
from ingest.http import RetryingFetcher, make_session
from ingest.rate_limiter import RateLimiter
from ingest.sentiment import SentimentIngestor
from ingest.volatility import VolatilityIngestor
from ingest.yahoo_finance import DirectionIngestor, YahooChartClient
from scoring.engine import ScoringEngine
from service.compass import CompassService
from storage.cache import MemoryStore, TieredCache
from storage.database import create_cache_engine
from storage.history import ScoreHistoryStore
from storage.kv_store import KeyValueStore
from storage.timeseries import TimeSeriesStore

logger = get_logger("container")


def build_service(
    cache_db_url: str = CACHE_DB_URL,
    history_path: Path = HISTORY_PATH,
    fred_api_key: str = FRED_API_KEY,
    session: Optional[requests.Session] = None,
) -> CompassService:
    engine = ScoringEngine()  # fails fast on bad weights

    db = create_cache_engine(cache_db_url)
    cache = TieredCache(MemoryStore(), kv=KeyValueStore(db), series=TimeSeriesStore(db))
    fetcher = RetryingFetcher(session or make_session())
    limiters = {name: RateLimiter(name, max_calls) for name, max_calls in RATE_LIMITS.items()}

    chart = YahooChartClient(fetcher, limiters["yahoo"], cache)
    ingestors = [
        DirectionIngestor(chart),
        BreadthIngestor(chart),
        VolatilityIngestor(chart),
        CreditIngestor(fetcher, limiters["fred"], cache, api_key=fred_api_key),
        SentimentIngestor(fetcher, limiters["cnn"], cache, aaii_path=AAII_SENTIMENT_PATH),
        GlobalIngestor(chart, pmi_path=GLOBAL_PMI_PATH),
    ]
    if not fred_api_key:
        logger.warning("FRED_API_KEY not set: credit signals will use fallback values")

    return CompassService(
        ingestors=ingestors,
        engine=engine,
        history=ScoreHistoryStore(history_path),
        cache=cache,
        limiters=list(limiters.values()),
        chart=chart,
    )
