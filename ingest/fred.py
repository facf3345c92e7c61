"""FRED (St. Louis Fed) ingestor for the credit pillar."""
import math
from typing import Optional

from pydantic import BaseModel, Field

from common.errors import ErrorKind, ProviderError
from common.models import RawSignalValue
from config.settings import CACHE_TTL_SECONDS, FRED_API_KEY
from ingest.base import BaseIngestor, SignalFetch
from ingest.http import RetryingFetcher
from ingest.rate_limiter import RateLimiter
from storage.cache import TieredCache

FRED_URL = "https://api.stlouisfed.org/fred/series/observations"

TREASURY_10Y = "DGS10"
TREASURY_2Y = "DGS2"
HY_OAS = "BAMLH0A0HYM2"
BBB_OAS = "BAMLC0A4CBBB"


class _Observation(BaseModel):
    date: str
    value: str  # numbers arrive as strings, "." marks a missing day


class FredResponse(BaseModel):
    observations: list[_Observation] = Field(min_length=1)


def _parse(value: str) -> Optional[float]:
    if value == ".":
        return None
    try:
        parsed = float(value)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


class CreditIngestor(BaseIngestor):
    provider = "fred"

    def __init__(
        self,
        fetcher: RetryingFetcher,
        limiter: RateLimiter,
        cache: TieredCache,
        api_key: str = FRED_API_KEY,
        ttl: float = CACHE_TTL_SECONDS["credit"],
    ):
        super().__init__(fetcher, limiter, cache, ttl)
        self.api_key = api_key

    def signal_fetchers(self) -> dict[str, SignalFetch]:
        return {
            "yield_curve": self._yield_curve,
            "hy_spread":   lambda: self._spread("hy_spread", HY_OAS),
            "ig_spread":   lambda: self._spread("ig_spread", BBB_OAS),
        }

    async def latest(self, series_id: str) -> tuple[float, Optional[float]]:
        """Latest valid observation and the one before it (None if absent)."""
        if not self.api_key:
            raise ProviderError(ErrorKind.AUTH, "FRED_API_KEY not configured", provider=self.provider)
        params = {
            "series_id": series_id,
            "api_key": self.api_key,
            "file_type": "json",
            "sort_order": "desc",
            "limit": 10,
        }
        resp = await self._fetch(f"fred:{series_id}", FRED_URL, FredResponse, params=params)
        values = [v for v in (_parse(o.value) for o in resp.observations) if v is not None]
        if not values:
            raise ProviderError(ErrorKind.DATA_FORMAT, f"no valid observations for {series_id}",
                                provider=self.provider)
        return values[0], values[1] if len(values) > 1 else None

    async def _yield_curve(self) -> RawSignalValue:
        ten, ten_prev = await self.latest(TREASURY_10Y)
        two, two_prev = await self.latest(TREASURY_2Y)
        spread = ten - two
        delta = None
        if ten_prev is not None and two_prev is not None:
            delta = spread - (ten_prev - two_prev)
        return RawSignalValue(key="yield_curve", value=spread, delta=delta)

    async def _spread(self, key: str, series_id: str) -> RawSignalValue:
        value, prev = await self.latest(series_id)
        return RawSignalValue(key=key, value=value, delta=None if prev is None else value - prev)
