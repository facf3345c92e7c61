"""Tests for provider adapters (network mocked)."""
import asyncio
import json
import math
from unittest.mock import AsyncMock, MagicMock

import pytest

from common.errors import ErrorKind, ProviderError
from ingest.breadth import BreadthIngestor, estimate_advancers, highs_lows_ratio
from ingest.fred import CreditIngestor
from ingest.global_markets import GlobalIngestor
from ingest.rate_limiter import RateLimiter
from ingest.sentiment import SentimentIngestor
from ingest.volatility import VolatilityIngestor
from ingest.yahoo_finance import ChartSeries, DirectionIngestor, YahooChartClient
from storage.cache import MemoryStore, ResourceKind, TieredCache


def chart(price, closes):
    return {"chart": {"result": [{
        "meta": {"regularMarketPrice": price, "chartPreviousClose": closes[0] if closes else None},
        "indicators": {"quote": [{"close": closes}]},
    }]}}


def flat(price, level=100.0, n=200):
    """Chart with n closes at ``level`` then the last price appended."""
    return chart(price, [level] * (n - 1) + [price])


def make_fetcher(routes: dict):
    """get_json mock routing by URL suffix (Yahoo) or series_id (FRED)."""
    fetcher = MagicMock()

    def route(url, params=None, provider="http"):
        key = (params or {}).get("series_id") or url.rsplit("/", 1)[-1]
        if key not in routes:
            raise ProviderError(ErrorKind.NETWORK, f"unreachable {key}", provider=provider)
        payload = routes[key]
        if isinstance(payload, Exception):
            raise payload
        return payload

    fetcher.get_json = AsyncMock(side_effect=route)
    return fetcher


def calls_for(fetcher, suffix):
    return sum(1 for c in fetcher.get_json.call_args_list if c.args[0].endswith(suffix))


class YahooSetup:
    def make_chart(self, routes):
        self.fetcher = make_fetcher(routes)
        self.cache = TieredCache(MemoryStore())
        self.limiter = RateLimiter("yahoo", max_calls=100)
        return YahooChartClient(self.fetcher, self.limiter, self.cache)


class TestChartSeries:
    def test_sma_and_percent(self):
        s = ChartSeries(ticker="SPY", price=110.0, closes=[100.0] * 200)
        assert s.sma(200) == 100.0
        assert s.percent_vs_sma(200) == pytest.approx(10.0)

    def test_short_series_uses_last_close(self):
        s = ChartSeries(ticker="X", price=12.0, closes=[10.0, 11.0])
        assert s.sma(50) == 11.0

    def test_daily_change(self):
        s = ChartSeries(ticker="X", price=0, closes=[100.0, 102.0])
        assert s.daily_change() == pytest.approx(2.0)
        assert ChartSeries(ticker="X", price=0, closes=[1.0]).daily_change() == 0.0

    def test_zero_average_is_data_format_error(self):
        s = ChartSeries(ticker="X", price=1.0, closes=[0.0] * 200)
        with pytest.raises(ProviderError) as exc:
            s.percent_vs_sma(200)
        assert exc.value.kind == ErrorKind.DATA_FORMAT


class TestYahooChartClient(YahooSetup):
    @pytest.mark.asyncio
    async def test_nulls_filtered_and_cached(self):
        client = self.make_chart({"SPY": chart(105.0, [100.0, None, 101.0, None, 104.0])})
        s = await client.series("SPY")
        assert s.closes == [100.0, 101.0, 104.0]
        assert await self.cache.get("SPY:1d", ResourceKind.SERIES) is not None
        await client.series("SPY")
        assert self.fetcher.get_json.await_count == 1

    @pytest.mark.asyncio
    async def test_caret_tickers_are_url_encoded(self):
        client = self.make_chart({"%5EVIX": flat(18.0)})
        s = await client.series("^VIX")
        assert s.price == 18.0

    @pytest.mark.asyncio
    async def test_malformed_payload_fails_closed(self):
        client = self.make_chart({"SPY": {"chart": {"result": []}}})
        with pytest.raises(ProviderError) as exc:
            await client.series("SPY")
        assert exc.value.kind == ErrorKind.DATA_FORMAT
        assert await self.cache.get("SPY:1d", ResourceKind.SERIES) is None

    @pytest.mark.asyncio
    async def test_corrupt_cached_series_is_refetched(self):
        client = self.make_chart({"SPY": chart(105.0, [100.0, 104.0])})
        await self.cache.set("SPY:1d", {"ticker": "SPY", "closes": "oops"}, 3600, ResourceKind.SERIES)

        s = await client.series("SPY")
        assert s.price == 105.0
        assert self.fetcher.get_json.await_count == 1
        assert await self.cache.get("SPY:1d", ResourceKind.SERIES) == s.model_dump()

    @pytest.mark.asyncio
    async def test_quotes_omit_failures(self):
        client = self.make_chart({"SPY": chart(101.0, [100.0, 101.0])})
        quotes = await client.quotes(["SPY", "QQQ"])
        assert list(quotes) == ["SPY"]
        assert quotes["SPY"].change_percent == pytest.approx(1.0)
        assert quotes["SPY"].current_price == 101.0


class TestDirectionIngestor(YahooSetup):
    @pytest.mark.asyncio
    async def test_percent_vs_200ma(self):
        client = self.make_chart({
            "SPY": flat(110.0, level=100.0, n=300),
            "QQQ": flat(95.0, level=100.0, n=300),
            "IWM": flat(100.0, level=100.0, n=300),
        })
        signals = await DirectionIngestor(client).fetch_signals()
        assert set(signals) == {"spy_vs_200ma", "qqq_vs_200ma", "iwm_vs_200ma"}
        # the last close is the current price, so the 200-day mean shifts slightly
        assert signals["spy_vs_200ma"].value == pytest.approx((110 - (199 * 100 + 110) / 200) / ((199 * 100 + 110) / 200) * 100)
        assert signals["qqq_vs_200ma"].value < 0
        assert signals["spy_vs_200ma"].delta == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_one_failed_ticker_does_not_hide_others(self):
        client = self.make_chart({"SPY": flat(110.0), "IWM": flat(90.0)})
        signals = await DirectionIngestor(client).fetch_signals()
        assert set(signals) == {"spy_vs_200ma", "iwm_vs_200ma"}

    @pytest.mark.asyncio
    async def test_shared_tickers_fetched_once(self):
        routes = {t: flat(110.0) for t in ["SPY", "QQQ", "IWM", "DIA"]}
        routes["%5ENYAD"] = chart(1000.0, [900.0, 1000.0])
        client = self.make_chart(routes)
        await asyncio.gather(DirectionIngestor(client).fetch_signals(),
                             BreadthIngestor(client).fetch_signals())
        assert calls_for(self.fetcher, "SPY") == 1
        assert calls_for(self.fetcher, "%5ENYAD") == 1


class TestBreadthIngestor(YahooSetup):
    def test_advancer_estimate(self):
        assert estimate_advancers(0) == (1500, 1500)
        assert estimate_advancers(1000) == (2250, 750)       # clamped at +0.25
        assert estimate_advancers(-5000) == (750, 2250)
        assert estimate_advancers(200) == (1800, 1200)

    def test_highs_lows_zero_denominator(self):
        assert highs_lows_ratio(5, 0) == math.inf
        assert highs_lows_ratio(0, 0) == 1.0
        assert highs_lows_ratio(90, 45) == 2.0

    @pytest.mark.asyncio
    async def test_signals(self):
        client = self.make_chart({
            "%5ENYAD": chart(1400.0, [0.0, 400.0, 1400.0]),
            "SPY": flat(110.0), "QQQ": flat(110.0), "IWM": flat(90.0),
            "DIA": ProviderError(ErrorKind.RATE_LIMIT, "429"),
        })
        signals = await BreadthIngestor(client).fetch_signals()
        assert signals["advance_decline"].value == pytest.approx(0.75)
        assert signals["new_highs_lows"].value == pytest.approx(90 / 23)   # round(2250*.04) / round(750*.03)
        assert signals["pct_above_200ma"].value == 52.0                      # 30 + 2 * 11

    @pytest.mark.asyncio
    async def test_all_proxies_failing_is_missing(self):
        client = self.make_chart({"%5ENYAD": chart(1000.0, [1000.0, 1000.0])})
        signals = await BreadthIngestor(client).fetch_signals()
        assert "pct_above_200ma" not in signals
        assert signals["advance_decline"].value == pytest.approx(0.5)


class TestVolatilityIngestor(YahooSetup):
    @pytest.mark.asyncio
    async def test_contango_and_levels(self):
        client = self.make_chart({
            "%5EVIX": chart(15.0, [14.0, 15.0]),
            "%5EVIX3M": chart(17.0, [17.0, 17.0]),
            "%5EPCCE": chart(0.95, [0.9, 0.95]),
        })
        signals = await VolatilityIngestor(client).fetch_signals()
        assert signals["vix"].value == 15.0
        assert signals["put_call"].value == 0.95
        assert signals["vix_term_structure"].value is True

    @pytest.mark.asyncio
    async def test_backwardation(self):
        client = self.make_chart({
            "%5EVIX": chart(30.0, [30.0]),
            "%5EVIX3M": chart(25.0, [25.0]),
        })
        signals = await VolatilityIngestor(client).fetch_signals()
        assert signals["vix_term_structure"].value is False
        assert "put_call" not in signals


def fred(*values):
    return {"observations": [{"date": f"2026-03-0{i + 1}", "value": v} for i, v in enumerate(values)]}


class TestCreditIngestor:
    def make(self, routes, api_key="key"):
        self.fetcher = make_fetcher(routes)
        cache = TieredCache(MemoryStore())
        return CreditIngestor(self.fetcher, RateLimiter("fred", 100), cache, api_key=api_key)

    @pytest.mark.asyncio
    async def test_spreads_skip_missing_observations(self):
        ing = self.make({
            "DGS10": fred(".", "4.50", "4.40"),
            "DGS2": fred("4.10", "4.05"),
            "BAMLH0A0HYM2": fred("3.20", "3.30"),
            "BAMLC0A4CBBB": fred("1.10"),
        })
        signals = await ing.fetch_signals()
        assert signals["yield_curve"].value == pytest.approx(0.40)
        assert signals["yield_curve"].delta == pytest.approx(0.05)
        assert signals["hy_spread"].value == pytest.approx(3.20)
        assert signals["hy_spread"].delta == pytest.approx(-0.10)
        assert signals["ig_spread"].delta is None

    @pytest.mark.asyncio
    async def test_missing_api_key_is_auth_error(self):
        ing = self.make({}, api_key="")
        with pytest.raises(ProviderError) as exc:
            await ing.latest("DGS10")
        assert exc.value.kind == ErrorKind.AUTH
        assert await ing.fetch_signals() == {}
        self.fetcher.get_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_valid_observation(self):
        ing = self.make({"BAMLH0A0HYM2": fred(".", ".")})
        with pytest.raises(ProviderError) as exc:
            await ing.latest("BAMLH0A0HYM2")
        assert exc.value.kind == ErrorKind.DATA_FORMAT


class TestSentimentIngestor:
    def make(self, tmp_path, routes, survey=None):
        path = tmp_path / "aaii-sentiment.json"
        if survey is not None:
            path.write_text(json.dumps(survey))
        self.fetcher = make_fetcher(routes)
        return SentimentIngestor(self.fetcher, RateLimiter("cnn", 10), TieredCache(MemoryStore()), aaii_path=path)

    @pytest.mark.asyncio
    async def test_all_signals(self, tmp_path):
        ing = self.make(
            tmp_path,
            {"graphdata": {"fear_and_greed": {"score": 38.4, "previous_close": 41.0, "rating": "fear"}}},
            survey={"bullish": 32.5, "bearish": 41.0, "bullishChange": -2.0},
        )
        signals = await ing.fetch_signals()
        assert signals["aaii_bulls"].value == 32.5
        assert signals["aaii_bulls"].delta == -2.0
        assert signals["aaii_bears"].delta == 0.0
        assert signals["fear_greed"].value == 38.4
        assert signals["fear_greed"].delta == pytest.approx(-2.6)

    @pytest.mark.asyncio
    async def test_missing_static_file(self, tmp_path):
        ing = self.make(tmp_path, {"graphdata": {"fear_and_greed": {"score": 50, "previous_close": 50}}})
        signals = await ing.fetch_signals()
        assert set(signals) == {"fear_greed"}

    @pytest.mark.asyncio
    async def test_malformed_cnn_payload(self, tmp_path):
        ing = self.make(tmp_path, {"graphdata": {"unexpected": True}}, survey={"bullish": 30, "bearish": 30})
        signals = await ing.fetch_signals()
        assert set(signals) == {"aaii_bulls", "aaii_bears"}


class TestGlobalIngestor(YahooSetup):
    @pytest.mark.asyncio
    async def test_signals(self, tmp_path):
        pmi = tmp_path / "global-pmi.json"
        pmi.write_text(json.dumps({"value": 50.8, "change": 0.3}))
        client = self.make_chart({
            "ACWI": flat(102.0, level=100.0, n=60),
            "%5EVSTOXX": chart(17.5, [18.0, 17.5]),
        })
        signals = await GlobalIngestor(client, pmi_path=pmi).fetch_signals()
        assert signals["acwi_vs_50ma"].value > 0
        assert signals["vstoxx"].value == 17.5
        assert signals["global_pmi"].value == 50.8
        assert signals["global_pmi"].delta == 0.3

    @pytest.mark.asyncio
    async def test_bad_pmi_file(self, tmp_path):
        pmi = tmp_path / "global-pmi.json"
        pmi.write_text("{broken")
        client = self.make_chart({"ACWI": flat(100.0), "%5EVSTOXX": flat(20.0)})
        signals = await GlobalIngestor(client, pmi_path=pmi).fetch_signals()
        assert "global_pmi" not in signals
        assert len(signals) == 2
