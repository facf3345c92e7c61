"""Yahoo Finance chart API client and the direction-pillar ingestor."""
import asyncio
from typing import Optional
from urllib.parse import quote

import pandas as pd
from pydantic import BaseModel, Field, ValidationError

from common.concurrency import gather_settled
from common.errors import ErrorKind, ProviderError
from common.logger import get_logger
from common.models import InstrumentQuote, RawSignalValue
from config.settings import CACHE_TTL_SECONDS
from ingest.base import BaseIngestor, SignalFetch, decode
from ingest.http import RetryingFetcher
from ingest.rate_limiter import RateLimiter
from storage.cache import ResourceKind, TieredCache
from storage.timeseries import series_id

YAHOO_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{ticker}"
CHART_PARAMS = {"interval": "1d", "range": "1y"}


# ── Payload models ───────────────────────────────────────────────────────────

class _Meta(BaseModel):
    regularMarketPrice: float
    chartPreviousClose: Optional[float] = None


class _Quote(BaseModel):
    close: list[Optional[float]] = []


class _Indicators(BaseModel):
    quote: list[_Quote] = Field(min_length=1)


class _Result(BaseModel):
    meta: _Meta
    indicators: _Indicators


class _Chart(BaseModel):
    result: list[_Result] = Field(min_length=1)


class ChartResponse(BaseModel):
    chart: _Chart


class ChartSeries(BaseModel):
    """Latest price plus the non-null daily closes of one ticker."""
    ticker: str
    price: float
    closes: list[float]

    def sma(self, period: int) -> float:
        """Simple moving average; falls back to the last close on short series."""
        if len(self.closes) < period:
            return self.closes[-1] if self.closes else self.price
        return float(pd.Series(self.closes).tail(period).mean())

    def percent_vs_sma(self, period: int) -> float:
        ma = self.sma(period)
        if ma == 0:
            raise ProviderError(ErrorKind.DATA_FORMAT, f"zero moving average for {self.ticker}",
                                provider="yahoo")
        return (self.price - ma) / ma * 100

    def daily_change(self) -> float:
        """Percent change between the last two closes."""
        if len(self.closes) < 2 or self.closes[-2] == 0:
            return 0.0
        return (self.closes[-1] - self.closes[-2]) / self.closes[-2] * 100


# ── Client ───────────────────────────────────────────────────────────────────

class YahooChartClient:
    """Shared series source for every Yahoo-backed adapter.

    Concurrent requests for the same ticker share one upstream fetch.
    """
    provider = "yahoo"
    interval = CHART_PARAMS["interval"]

    def __init__(self, fetcher: RetryingFetcher, limiter: RateLimiter, cache: TieredCache):
        self.fetcher = fetcher
        self.limiter = limiter
        self.cache = cache
        self.logger = get_logger("YahooChartClient")
        self._inflight: dict[str, asyncio.Task] = {}

    async def series(self, ticker: str, ttl: float = CACHE_TTL_SECONDS["series"]) -> ChartSeries:
        key = series_id(ticker, self.interval)
        cached = await self.cache.get(key, ResourceKind.SERIES)
        if cached is not None:
            try:
                return ChartSeries.model_validate(cached)
            except ValidationError:
                self.logger.warning(f"Cached series '{key}' no longer decodes, refetching")

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._download(ticker, key, ttl))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        return await asyncio.shield(task)

    async def _download(self, ticker: str, key: str, ttl: float) -> ChartSeries:
        url = YAHOO_CHART_URL.format(ticker=quote(ticker))
        payload = await self.limiter.execute(
            lambda: self.fetcher.get_json(url, params=CHART_PARAMS, provider=self.provider)
        )
        result = decode(ChartResponse, payload, self.provider).chart.result[0]
        closes = [c for c in result.indicators.quote[0].close if c is not None]
        series = ChartSeries(ticker=ticker, price=result.meta.regularMarketPrice, closes=closes)
        self.logger.info(f"Got {len(closes)} closes for {ticker}")
        await self.cache.set(key, series.model_dump(), ttl, ResourceKind.SERIES)
        return series

    async def quotes(self, tickers: list[str]) -> dict[str, InstrumentQuote]:
        """Current price and daily % change; tickers that fail are omitted."""
        outcomes = await gather_settled(self.series(t, ttl=CACHE_TTL_SECONDS["direction"]) for t in tickers)
        result = {}
        for ticker, outcome in zip(tickers, outcomes):
            if not outcome.ok:
                self.logger.warning(f"Quote for {ticker} unavailable: {outcome.error}")
                continue
            s = outcome.value
            result[ticker] = InstrumentQuote(ticker=ticker, current_price=s.price, change_percent=s.daily_change())
        return result


class YahooChartIngestor(BaseIngestor):
    """Base for adapters whose signals derive from Yahoo chart series."""
    provider = "yahoo"

    def __init__(self, chart: YahooChartClient, ttl: float):
        super().__init__(chart.fetcher, chart.limiter, chart.cache, ttl)
        self.chart = chart

    async def series(self, ticker: str) -> ChartSeries:
        return await self.chart.series(ticker, ttl=self.ttl)


# ── Direction pillar ─────────────────────────────────────────────────────────

class DirectionIngestor(YahooChartIngestor):
    """SPY / QQQ / IWM percent vs their 200-day SMA."""
    TICKERS = {
        "spy_vs_200ma": "SPY",
        "qqq_vs_200ma": "QQQ",
        "iwm_vs_200ma": "IWM",
    }

    def __init__(self, chart: YahooChartClient, ttl: float = CACHE_TTL_SECONDS["direction"]):
        super().__init__(chart, ttl)

    def signal_fetchers(self) -> dict[str, SignalFetch]:
        return {key: (lambda k=key, t=ticker: self._vs_200ma(k, t)) for key, ticker in self.TICKERS.items()}

    async def _vs_200ma(self, key: str, ticker: str) -> RawSignalValue:
        s = await self.series(ticker)
        return RawSignalValue(key=key, value=s.percent_vs_sma(200), delta=s.daily_change())
