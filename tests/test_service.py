"""Tests for refresh orchestration."""
import asyncio
import threading
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from common.errors import ErrorKind, ProviderError
from common.models import HealthStatus, InstrumentQuote, RawSignalValue
from scoring.engine import ScoringEngine
from scoring.health import NEUTRAL_RESULT, calculate_health_score
from scoring.signals import SIGNALS
from service.compass import CompassService
from service.container import build_service
from storage.cache import MemoryStore, TieredCache
from storage.history import ScoreHistoryStore


def fake_ingestor(signals=None, error=None):
    ingestor = MagicMock()
    if error is not None:
        ingestor.fetch_signals = AsyncMock(side_effect=error)
    else:
        ingestor.fetch_signals = AsyncMock(return_value=signals or {})
    return ingestor


def snapshot(*keys, value=1.0):
    return {k: RawSignalValue(key=k, value=value) for k in keys}


class GatedIngestor:
    """Each call blocks until its gate is released.

    ``signals`` is either one snapshot for every call or a list, one per call.
    """

    def __init__(self, signals):
        self.signals = signals
        self.gates: list[asyncio.Event] = []

    async def fetch_signals(self):
        call = len(self.gates)
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        if isinstance(self.signals, list):
            return self.signals[call]
        return self.signals


async def wait_for(predicate):
    while not predicate():
        await asyncio.sleep(0.01)


class TestCompassService:
    def setup_method(self):
        self.history = MagicMock()
        self.history.percentile.return_value = 40
        self.history.history_length.return_value = 35
        self.cache = TieredCache(MemoryStore())

    def make_service(self, ingestors, **kwargs):
        return CompassService(ingestors, ScoringEngine(), self.history, self.cache, **kwargs)

    @pytest.mark.asyncio
    async def test_failed_ingestor_does_not_block_others(self):
        service = self.make_service([
            fake_ingestor(snapshot("vix", value=14.0)),
            fake_ingestor(error=ProviderError(ErrorKind.NETWORK, "down")),
            fake_ingestor(snapshot("hy_spread", value=3.2)),
        ])
        collected = await service.collect()
        assert set(collected) == {"vix", "hy_spread"}

    @pytest.mark.asyncio
    async def test_refresh_commits_and_saves_history(self):
        service = self.make_service([fake_ingestor(snapshot("vix", value=14.0))])
        assert service.get_composite() is None

        result = await service.refresh()
        assert result is not None
        assert service.get_composite() is result
        assert "vix" not in result.missing_signals
        assert len(result.missing_signals) == len(SIGNALS) - 1
        assert result.is_incomplete
        assert result.cycle_id
        self.history.save.assert_called_once_with(result.score, result.pillar_scores)

    @pytest.mark.asyncio
    async def test_all_adapters_failing_still_scores(self):
        service = self.make_service([fake_ingestor(error=RuntimeError("boom"))])
        result = await service.refresh()
        assert len(result.missing_signals) == len(SIGNALS)
        assert all(s.is_fallback for p in result.pillars.values() for s in p.signals)

    @pytest.mark.asyncio
    async def test_most_recently_started_cycle_wins(self):
        gated = GatedIngestor(snapshot("vix", value=14.0))
        service = self.make_service([gated])

        first = asyncio.create_task(service.refresh())
        second = asyncio.create_task(service.refresh())
        while len(gated.gates) < 2:
            await asyncio.sleep(0)

        gated.gates[1].set()
        newer = await second
        gated.gates[0].set()
        older = await first

        assert newer is not None
        assert older is None
        assert service.get_composite() is newer
        assert self.history.save.call_count == 1

    @pytest.mark.asyncio
    async def test_cycle_overtaken_while_waiting_to_save_skips_history(self):
        first_save = threading.Event()

        def slow_save(score, pillars):
            if not first_save.is_set():
                first_save.set()
                time.sleep(0.2)

        self.history.save.side_effect = slow_save
        gated = GatedIngestor([snapshot("vix", value=v) for v in (10.0, 20.0, 40.0)])
        service = self.make_service([gated])

        tasks = [asyncio.create_task(service.refresh()) for _ in range(3)]
        await wait_for(lambda: len(gated.gates) == 3)
        gated.gates[0].set()
        await wait_for(first_save.is_set)
        gated.gates[1].set()
        await asyncio.sleep(0.05)
        gated.gates[2].set()
        results = await asyncio.gather(*tasks)

        saved = [c.args[0] for c in self.history.save.call_args_list]
        assert saved == [results[0].score, results[2].score]
        assert service.get_composite() is results[2]

    @pytest.mark.asyncio
    async def test_recent_scores(self):
        self.history.last_scores.return_value = [55, 60, 63]
        service = self.make_service([])
        assert await service.get_recent_scores(3) == [55, 60, 63]
        self.history.last_scores.assert_called_once_with(3)

    @pytest.mark.asyncio
    async def test_history_readers(self):
        service = self.make_service([])
        assert await service.get_history_percentile(62) == 40
        assert await service.get_history_length() == 35
        self.history.percentile.assert_called_once_with(62)

    def test_data_status_before_first_cycle(self):
        status = self.make_service([]).data_status()
        assert not status.is_complete
        assert status.last_updated is None

    @pytest.mark.asyncio
    async def test_data_status_after_cycle(self):
        service = self.make_service([fake_ingestor(snapshot(*(s.key for s in SIGNALS[:-2]), value=1.0))])
        result = await service.refresh()
        status = service.data_status(now=result.computed_at + timedelta(seconds=45))
        assert status.stale_seconds == 45
        assert status.missing_signals == result.missing_signals
        assert {"vstoxx", "global_pmi"} <= set(status.missing_signals)
        assert status.last_updated == result.computed_at
        assert status.is_complete == (not result.is_incomplete)

    @pytest.mark.asyncio
    async def test_health_index_from_chart_quotes(self):
        quotes = {
            "SPY": InstrumentQuote(ticker="SPY", current_price=500, change_percent=1.0),
            "QQQ": InstrumentQuote(ticker="QQQ", current_price=400, change_percent=1.5),
            "IWM": InstrumentQuote(ticker="IWM", current_price=200, change_percent=2.0),
            "^VIX": InstrumentQuote(ticker="^VIX", current_price=14.0, change_percent=-3.0),
        }
        chart = MagicMock()
        chart.quotes = AsyncMock(return_value=quotes)
        service = self.make_service([], chart=chart)

        result = await service.get_health_index()
        chart.quotes.assert_awaited_once_with(["SPY", "QQQ", "IWM", "^VIX"])
        expected = calculate_health_score({"VIX": quotes["^VIX"], "SPY": quotes["SPY"],
                                           "QQQ": quotes["QQQ"], "IWM": quotes["IWM"]})
        assert result == expected
        assert result.status in (HealthStatus.HEALTHY, HealthStatus.VERY_HEALTHY)

    @pytest.mark.asyncio
    async def test_health_index_neutral_when_quote_missing(self):
        chart = MagicMock()
        chart.quotes = AsyncMock(return_value={
            "SPY": InstrumentQuote(ticker="SPY", current_price=500, change_percent=1.0),
        })
        result = await self.make_service([], chart=chart).get_health_index()
        assert result == NEUTRAL_RESULT

    @pytest.mark.asyncio
    async def test_sweep_cache(self):
        service = self.make_service([])
        assert await service.sweep_cache() == {"memory": 0, "kv": 0, "series": 0}


class TestRealHistoryIntegration:
    @pytest.mark.asyncio
    async def test_refresh_writes_history_file(self, tmp_path):
        history = ScoreHistoryStore(tmp_path / "history.csv", today=lambda: "2026-03-04")
        service = CompassService([fake_ingestor(snapshot("vix", value=14.0))], ScoringEngine(),
                                 history, TieredCache(MemoryStore()))
        result = await service.refresh()
        entries = await service.get_history()
        assert len(entries) == 1
        assert entries[0].date == "2026-03-04"
        assert entries[0].composite == result.score
        assert entries[0].pillars == result.pillar_scores

    @pytest.mark.asyncio
    async def test_slow_older_write_does_not_overwrite_newer_cycle(self, tmp_path):
        history = ScoreHistoryStore(tmp_path / "history.csv", today=lambda: "2026-03-04")
        original = history._write
        write_started = threading.Event()

        def slow_first_write(df):
            if not write_started.is_set():
                write_started.set()
                time.sleep(0.3)
            original(df)

        gated = GatedIngestor([snapshot("vix", value=10.0), snapshot("vix", value=40.0)])
        service = CompassService([gated], ScoringEngine(), history, TieredCache(MemoryStore()))
        with patch.object(history, "_write", side_effect=slow_first_write):
            first = asyncio.create_task(service.refresh())
            second = asyncio.create_task(service.refresh())
            await wait_for(lambda: len(gated.gates) == 2)
            gated.gates[0].set()
            await wait_for(write_started.is_set)
            gated.gates[1].set()
            older, newer = await asyncio.gather(first, second)

        assert older.score != newer.score
        assert service.get_composite() is newer
        entries = await service.get_history()
        assert [e.composite for e in entries] == [newer.score]


class TestContainer:
    def test_build_service_wires_everything(self, tmp_path):
        service = build_service(
            cache_db_url=f"sqlite:///{tmp_path / 'cache.db'}",
            history_path=tmp_path / "history.csv",
            fred_api_key="",
            session=MagicMock(),
        )
        assert len(service.ingestors) == 6
        assert service.chart is not None
        assert [s.provider for s in service.limiter_status()] == ["yahoo", "fred", "cnn"]
        assert (tmp_path / "cache.db").exists()
        assert service.data_status(now=datetime.now(timezone.utc)).is_complete is False
