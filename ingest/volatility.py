"""Volatility pillar ingestor: VIX level, equity put/call ratio, VIX term structure."""
from common.models import RawSignalValue
from config.settings import CACHE_TTL_SECONDS
from ingest.base import SignalFetch
from ingest.yahoo_finance import YahooChartClient, YahooChartIngestor


class VolatilityIngestor(YahooChartIngestor):
    def __init__(self, chart: YahooChartClient, ttl: float = CACHE_TTL_SECONDS["volatility"]):
        super().__init__(chart, ttl)

    def signal_fetchers(self) -> dict[str, SignalFetch]:
        return {
            "vix":                self._vix,
            "put_call":           self._put_call,
            "vix_term_structure": self._term_structure,
        }

    async def _vix(self) -> RawSignalValue:
        s = await self.series("^VIX")
        return RawSignalValue(key="vix", value=s.price, delta=s.daily_change())

    async def _put_call(self) -> RawSignalValue:
        s = await self.series("^PCCE")
        return RawSignalValue(key="put_call", value=s.price, delta=s.daily_change())

    async def _term_structure(self) -> RawSignalValue:
        # contango (VIX3M above spot VIX) is the calm regime
        vix = await self.series("^VIX")
        vix3m = await self.series("^VIX3M")
        return RawSignalValue(key="vix_term_structure", value=vix3m.price > vix.price)
