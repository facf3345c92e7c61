"""
Refresh orchestration.

One refresh cycle:
  1. all adapters fetch concurrently (all-settle join)
  2. the engine scores whatever resolved, fallbacks fill the rest
  3. the result is committed and today's history entry upserted

Cycles may overlap. The most recently started cycle wins: a cycle whose
number is not newer than the last committed one is discarded. History writes
are serialised, and a cycle overtaken before its write does not save.
"""
import asyncio
import itertools
from datetime import datetime, timezone
from typing import Optional, Sequence

from common.concurrency import gather_settled
from common.logger import get_logger, new_cycle_id
from common.models import (
    CompositeResult, DataStatus, FormulaExplanation, HealthScoreResult, RateLimiterStatus, RawSignalValue,
    ScoreEntry,
)
from config.settings import PERCENTILE_WINDOW_DAYS
from ingest.base import BaseIngestor
from ingest.rate_limiter import RateLimiter
from ingest.yahoo_finance import YahooChartClient
from scoring.engine import ScoringEngine
from scoring.formulas import all_formulas, describe_signal, get_formula
from scoring.health import REQUIRED, calculate_health_score
from storage.cache import TieredCache
from storage.history import ScoreHistoryStore

logger = get_logger("compass")

# Yahoo symbols behind the lightweight index inputs
HEALTH_TICKERS = {"SPY": "SPY", "QQQ": "QQQ", "IWM": "IWM", "VIX": "^VIX"}


class CompassService:
    def __init__(
        self,
        ingestors: Sequence[BaseIngestor],
        engine: ScoringEngine,
        history: ScoreHistoryStore,
        cache: TieredCache,
        limiters: Sequence[RateLimiter] = (),
        chart: Optional[YahooChartClient] = None,
    ):
        self.ingestors = list(ingestors)
        self.engine = engine
        self.history = history
        self.cache = cache
        self.limiters = list(limiters)
        self.chart = chart
        self._cycles = itertools.count(1)
        self._committed_cycle = 0
        self._latest: Optional[CompositeResult] = None
        self._save_lock = asyncio.Lock()

    async def collect(self) -> dict[str, RawSignalValue]:
        """Raw snapshot from every adapter; a failed adapter contributes nothing."""
        outcomes = await gather_settled(i.fetch_signals() for i in self.ingestors)
        snapshot: dict[str, RawSignalValue] = {}
        for ingestor, outcome in zip(self.ingestors, outcomes):
            if outcome.ok:
                snapshot.update(outcome.value)
            else:
                logger.warning(f"{ingestor.__class__.__name__} failed: {outcome.error}")
        return snapshot

    async def refresh(self) -> Optional[CompositeResult]:
        """Run one cycle. Returns the committed result, or None if superseded."""
        cycle = next(self._cycles)
        cycle_id = new_cycle_id()
        logger.info(f"Refresh cycle #{cycle} started")

        snapshot = await self.collect()
        result = self.engine.compute(snapshot, cycle_id=cycle_id)

        if cycle <= self._committed_cycle:
            logger.info(f"Cycle #{cycle} superseded by #{self._committed_cycle}, discarding")
            return None
        self._committed_cycle = cycle
        self._latest = result

        logger.info(f"Cycle #{cycle} committed: composite {result.score} ({len(snapshot)}/18 live signals)")

        async with self._save_lock:
            if cycle != self._committed_cycle:
                logger.info(f"Cycle #{cycle} superseded by #{self._committed_cycle} before saving history")
                return result
            await asyncio.to_thread(self.history.save, result.score, result.pillar_scores)
        return result

    # ── Readers ──────────────────────────────────────────────────────────────

    def get_composite(self) -> Optional[CompositeResult]:
        return self._latest

    async def get_history_percentile(self, score: float) -> Optional[int]:
        return await asyncio.to_thread(self.history.percentile, score)

    async def get_history_length(self) -> int:
        return await asyncio.to_thread(self.history.history_length)

    async def get_history(self) -> list[ScoreEntry]:
        return await asyncio.to_thread(self.history.history)

    async def get_recent_scores(self, days: int = PERCENTILE_WINDOW_DAYS) -> list[int]:
        """Recent composites, oldest first."""
        return await asyncio.to_thread(self.history.last_scores, days)

    async def get_health_index(self) -> HealthScoreResult:
        if self.chart is None:
            return calculate_health_score({})
        quotes = await self.chart.quotes([HEALTH_TICKERS[t] for t in REQUIRED])
        by_name = {name: quotes[symbol] for name, symbol in HEALTH_TICKERS.items() if symbol in quotes}
        return calculate_health_score(by_name)

    def get_formulas(self) -> dict[str, FormulaExplanation]:
        return all_formulas()

    def get_formula(self, key: str) -> Optional[FormulaExplanation]:
        return get_formula(key)

    def explain_signal(self, key: str) -> Optional[str]:
        """Breakdown of the latest scored value of one signal, if any."""
        if self._latest is None:
            return None
        for pillar in self._latest.pillars.values():
            for signal in pillar.signals:
                if signal.key == key:
                    return describe_signal(signal)
        return None

    def data_status(self, now: Optional[datetime] = None) -> DataStatus:
        if self._latest is None:
            return DataStatus(is_complete=False)
        now = now or datetime.now(timezone.utc)
        return DataStatus(
            is_complete=not self._latest.is_incomplete,
            missing_signals=self._latest.missing_signals,
            last_updated=self._latest.computed_at,
            stale_seconds=(now - self._latest.computed_at).total_seconds(),
        )

    def limiter_status(self) -> list[RateLimiterStatus]:
        return [limiter.status() for limiter in self.limiters]

    async def sweep_cache(self) -> dict[str, int]:
        return await self.cache.sweep()
