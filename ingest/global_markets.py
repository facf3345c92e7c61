"""Global pillar ingestor: ACWI vs 50-day SMA, VSTOXX, global manufacturing PMI."""
from pathlib import Path

from pydantic import BaseModel

from common.models import RawSignalValue
from config.settings import CACHE_TTL_SECONDS, GLOBAL_PMI_PATH
from ingest.base import SignalFetch
from ingest.static_data import load_static
from ingest.yahoo_finance import YahooChartClient, YahooChartIngestor


class GlobalPmi(BaseModel):
    value: float
    change: float = 0.0


class GlobalIngestor(YahooChartIngestor):
    def __init__(
        self,
        chart: YahooChartClient,
        pmi_path: Path = GLOBAL_PMI_PATH,
        ttl: float = CACHE_TTL_SECONDS["global"],
    ):
        super().__init__(chart, ttl)
        self.pmi_path = Path(pmi_path)

    def signal_fetchers(self) -> dict[str, SignalFetch]:
        return {
            "acwi_vs_50ma": self._acwi,
            "vstoxx":       self._vstoxx,
            "global_pmi":   self._pmi,
        }

    async def _acwi(self) -> RawSignalValue:
        s = await self.series("ACWI")
        return RawSignalValue(key="acwi_vs_50ma", value=s.percent_vs_sma(50), delta=s.daily_change())

    async def _vstoxx(self) -> RawSignalValue:
        s = await self.series("^VSTOXX")
        return RawSignalValue(key="vstoxx", value=s.price, delta=s.daily_change())

    async def _pmi(self) -> RawSignalValue:
        pmi = await load_static(self.pmi_path, GlobalPmi)
        return RawSignalValue(key="global_pmi", value=pmi.value, delta=pmi.change)
