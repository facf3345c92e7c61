"""
Breadth pillar ingestor.

All three signals are single-proxy approximations, reproduced as published:
  advance_decline  - share of ~3000 NYSE stocks advancing, estimated from the
                     daily change of the ^NYAD line
  new_highs_lows   - 4% of advancers vs 3% of decliners
  pct_above_200ma  - 30 + 11 per index ETF (SPY, QQQ, IWM, DIA) above its 200-day SMA
"""
import math

import numpy as np
import pandas as pd

from common.concurrency import gather_settled
from common.errors import ErrorKind, ProviderError
from common.models import RawSignalValue
from config.settings import CACHE_TTL_SECONDS
from ingest.base import SignalFetch
from ingest.yahoo_finance import YahooChartClient, YahooChartIngestor

NYSE_STOCKS = 3000
AD_PROXY = "^NYAD"
MA_PROXIES = ["SPY", "QQQ", "IWM", "DIA"]
BASE_PERCENT = 30
PER_PROXY_PERCENT = 11


def estimate_advancers(ad_change: float, total: int = NYSE_STOCKS) -> tuple[int, int]:
    ratio = 0.5 + float(np.clip(ad_change / 2000, -0.25, 0.25))
    advancers = int(math.floor(total * ratio + 0.5))
    return advancers, total - advancers


def highs_lows_ratio(highs: int, lows: int) -> float:
    if lows == 0:
        return math.inf if highs > 0 else 1.0
    return highs / lows


class BreadthIngestor(YahooChartIngestor):
    def __init__(self, chart: YahooChartClient, ttl: float = CACHE_TTL_SECONDS["breadth"]):
        super().__init__(chart, ttl)

    def signal_fetchers(self) -> dict[str, SignalFetch]:
        return {
            "advance_decline": self._advance_decline,
            "new_highs_lows":  self._new_highs_lows,
            "pct_above_200ma": self._pct_above_200ma,
        }

    async def _advancers_decliners(self) -> tuple[int, int]:
        s = await self.series(AD_PROXY)
        if len(s.closes) < 2:
            raise ProviderError(ErrorKind.DATA_FORMAT, "not enough ^NYAD history", provider=self.provider)
        return estimate_advancers(s.price - s.closes[-2])

    async def _advance_decline(self) -> RawSignalValue:
        adv, dec = await self._advancers_decliners()
        return RawSignalValue(key="advance_decline", value=adv / (adv + dec))

    async def _new_highs_lows(self) -> RawSignalValue:
        adv, dec = await self._advancers_decliners()
        highs = int(math.floor(adv * 0.04 + 0.5))
        lows = int(math.floor(dec * 0.03 + 0.5))
        return RawSignalValue(key="new_highs_lows", value=highs_lows_ratio(highs, lows))

    async def _pct_above_200ma(self) -> RawSignalValue:
        outcomes = await gather_settled(self.series(t) for t in MA_PROXIES)
        above = 0
        resolved = 0
        for ticker, outcome in zip(MA_PROXIES, outcomes):
            if not outcome.ok:
                self.logger.warning(f"200MA proxy {ticker} skipped: {outcome.error}")
                continue
            resolved += 1
            s = outcome.value
            ma200 = pd.Series(s.closes).tail(200).sum() / 200
            if s.price > ma200:
                above += 1
        if resolved == 0:
            raise ProviderError(ErrorKind.NETWORK, "no 200MA proxy resolved", provider=self.provider)
        return RawSignalValue(key="pct_above_200ma", value=float(BASE_PERCENT + PER_PROXY_PERCENT * above))
