"""Sentiment pillar ingestor: AAII survey (static file) and CNN Fear & Greed."""
from pathlib import Path

from pydantic import BaseModel

from common.models import RawSignalValue
from config.settings import AAII_SENTIMENT_PATH, CACHE_TTL_SECONDS, CNN_FEAR_GREED_URL
from ingest.base import BaseIngestor, SignalFetch
from ingest.http import RetryingFetcher
from ingest.rate_limiter import RateLimiter
from ingest.static_data import load_static
from storage.cache import TieredCache


class AaiiSurvey(BaseModel):
    bullish: float
    bearish: float
    bullishChange: float = 0.0
    bearishChange: float = 0.0


class _FearGreed(BaseModel):
    score: float
    previous_close: float


class FearGreedResponse(BaseModel):
    fear_and_greed: _FearGreed


class SentimentIngestor(BaseIngestor):
    provider = "cnn"

    def __init__(
        self,
        fetcher: RetryingFetcher,
        limiter: RateLimiter,
        cache: TieredCache,
        aaii_path: Path = AAII_SENTIMENT_PATH,
        ttl: float = CACHE_TTL_SECONDS["sentiment"],
    ):
        super().__init__(fetcher, limiter, cache, ttl)
        self.aaii_path = Path(aaii_path)

    def signal_fetchers(self) -> dict[str, SignalFetch]:
        return {
            "aaii_bulls": self._bulls,
            "aaii_bears": self._bears,
            "fear_greed": self._fear_greed,
        }

    async def _bulls(self) -> RawSignalValue:
        survey = await load_static(self.aaii_path, AaiiSurvey)
        return RawSignalValue(key="aaii_bulls", value=survey.bullish, delta=survey.bullishChange)

    async def _bears(self) -> RawSignalValue:
        survey = await load_static(self.aaii_path, AaiiSurvey)
        return RawSignalValue(key="aaii_bears", value=survey.bearish, delta=survey.bearishChange)

    async def _fear_greed(self) -> RawSignalValue:
        resp = await self._fetch("cnn:fear_greed", CNN_FEAR_GREED_URL, FearGreedResponse)
        fg = resp.fear_and_greed
        return RawSignalValue(key="fear_greed", value=fg.score, delta=fg.score - fg.previous_close)
