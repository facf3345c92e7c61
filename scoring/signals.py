"""Registry of the 18 signals, their pillar, rule, display format and fallback."""
from dataclasses import dataclass
from typing import Callable

from common.models import RawValue
from scoring import rules
from scoring.rules import BaseRule

PILLARS = ["direction", "breadth", "volatility", "credit", "sentiment", "global"]


def _signed_pct(v: float) -> str:
    return f"{'+' if v >= 0 else ''}{v:.1f}%"


def _signed_pct2(v: float) -> str:
    return f"{'+' if v >= 0 else ''}{v:.2f}%"


def _ratio(v: float) -> str:
    return "no new lows" if v == float("inf") else f"{v:.2f}x"


@dataclass(frozen=True)
class SignalDefinition:
    key: str
    name: str
    ticker: str
    pillar: str
    rule: BaseRule
    threshold: str
    display: Callable[[RawValue], str]
    formula: str = ""
    rationale: str = ""
    unit: str = ""


SIGNALS: list[SignalDefinition] = [
    # direction
    SignalDefinition("spy_vs_200ma", "S&P 500 vs 200MA", "SPY", "direction",
                     rules.PRICE_VS_MA, "> 0% = above trend", _signed_pct,
                     formula="Stepped by % distance from the 200-day moving average",
                     rationale="Price above its 200-day average marks a long-term uptrend. The most significant trend indicator.",
                     unit="%"),
    SignalDefinition("qqq_vs_200ma", "Nasdaq vs 200MA", "QQQ", "direction",
                     rules.PRICE_VS_MA, "> 0% = above trend", _signed_pct,
                     formula="Stepped by % distance from the 200-day moving average",
                     rationale="The tech-heavy Nasdaq reads growth and risk appetite, and often leads the broader market.",
                     unit="%"),
    SignalDefinition("iwm_vs_200ma", "Russell 2000 vs 200MA", "IWM", "direction",
                     rules.PRICE_VS_MA, "> 0% = above trend", _signed_pct,
                     formula="Stepped by % distance from the 200-day moving average",
                     rationale="Small caps track risk appetite and domestic economic health.",
                     unit="%"),
    # breadth
    SignalDefinition("advance_decline", "Advance/Decline", "NYSE", "breadth",
                     rules.ADVANCE_DECLINE, "> 50% advancing = healthy", lambda v: f"{v * 100:.0f}% advancing",
                     formula="Stepped by advancers / (advancers + decliners)",
                     rationale="A high share of advancing stocks means broad participation, not just a few leaders."),
    SignalDefinition("pct_above_200ma", "% Above 200-Day MA", "SPX", "breadth",
                     rules.PCT_ABOVE_200MA, "> 60% = strong breadth", lambda v: f"{v:.0f}%",
                     formula="Stepped by the share of stocks above their 200-day average",
                     rationale="Measures broad market health. Above 60% indicates strong participation.",
                     unit="%"),
    SignalDefinition("new_highs_lows", "New Highs vs Lows", "NYSE", "breadth",
                     rules.NEW_HIGHS_LOWS, "Highs > Lows = bullish", _ratio,
                     formula="Stepped by new highs / new lows",
                     rationale="More new highs than new lows indicates healthy momentum and leadership.",
                     unit="x"),
    # volatility
    SignalDefinition("vix", "VIX", "VIX", "volatility",
                     rules.VIX, "< 20 = calm markets", lambda v: f"{v:.2f}",
                     formula="Inverse: lower VIX scores higher",
                     rationale="Lower volatility indicates healthier conditions. VIX below 20 is considered calm."),
    SignalDefinition("put_call", "Put/Call Ratio", "CBOE", "volatility",
                     rules.PUT_CALL, "0.7-1.0 = balanced", lambda v: f"{v:.2f}",
                     formula="Contrarian: a higher ratio scores higher",
                     rationale="More puts than calls signals fear, which is contrarian bullish."),
    SignalDefinition("vix_term_structure", "VIX Term Structure", "VIX", "volatility",
                     rules.TERM_STRUCTURE, "Contango = normal", lambda v: "Contango" if v else "Backwardation",
                     formula="Binary: contango 70, backwardation 30",
                     rationale="Contango (3-month VIX above spot) is the normal structure. Backwardation signals immediate fear."),
    # credit
    SignalDefinition("yield_curve", "Yield Curve (10Y-2Y)", "FRED", "credit",
                     rules.YIELD_CURVE, "Positive = no recession signal", _signed_pct2,
                     formula="Stepped by the 10Y-2Y spread in percentage points",
                     rationale="A positive spread reflects healthy growth expectations. Inversion has historically preceded recessions.",
                     unit="%"),
    SignalDefinition("hy_spread", "High Yield Spread", "HYG", "credit",
                     rules.HY_SPREAD, "< 4% = healthy", lambda v: f"{v:.2f}%",
                     formula="Inverse: tighter spread scores higher",
                     rationale="Tight spreads mean investors are comfortable taking credit risk. Widening spreads signal stress.",
                     unit="%"),
    SignalDefinition("ig_spread", "IG Spread", "LQD", "credit",
                     rules.IG_SPREAD, "< 1.5% = normal", lambda v: f"{v:.2f}%",
                     formula="Inverse: tighter spread scores higher",
                     rationale="Investment-grade spreads widen during credit stress. Below 1.5% is healthy.",
                     unit="%"),
    # sentiment
    SignalDefinition("aaii_bulls", "AAII Bulls", "AAII", "sentiment",
                     rules.AAII_BULLS, "< 40% = room to run", lambda v: f"{v:.1f}%",
                     formula="Contrarian: fewer bulls scores higher",
                     rationale="Low bullishness is contrarian bullish. The historical average is about 38%.",
                     unit="%"),
    SignalDefinition("aaii_bears", "AAII Bears", "AAII", "sentiment",
                     rules.AAII_BEARS, "> 30% = healthy fear", lambda v: f"{v:.1f}%",
                     formula="Contrarian: more bears scores higher",
                     rationale="High bearishness is contrarian bullish. The historical average is about 30%.",
                     unit="%"),
    SignalDefinition("fear_greed", "Fear & Greed", "CNN", "sentiment",
                     rules.FEAR_GREED, "< 50 = opportunity", lambda v: f"{v:.0f}",
                     formula="Contrarian: a lower index scores higher",
                     rationale="Extreme fear is contrarian bullish. The index ranges 0-100."),
    # global
    SignalDefinition("acwi_vs_50ma", "MSCI World", "ACWI", "global",
                     rules.PRICE_VS_MA, "> 0% = above trend", _signed_pct,
                     formula="Stepped by % distance from the 50-day moving average",
                     rationale="Global equity trend shows risk appetite beyond US markets.",
                     unit="%"),
    SignalDefinition("vstoxx", "VSTOXX", "VSTOXX", "global",
                     rules.VSTOXX, "< 20 = calm Europe", lambda v: f"{v:.2f}",
                     formula="Inverse: lower VSTOXX scores higher",
                     rationale="European volatility gauge. A low reading indicates calm global markets."),
    SignalDefinition("global_pmi", "Global PMI", "PMI", "global",
                     rules.GLOBAL_PMI, "> 50 = expansion", lambda v: f"{v:.1f}",
                     formula="Stepped by PMI level",
                     rationale="PMI above 50 indicates expansion. A leading indicator for global growth."),
]

SIGNALS_BY_KEY = {s.key: s for s in SIGNALS}

# Neutral defaults substituted for any missing or invalid raw value
SIGNAL_FALLBACKS: dict[str, RawValue] = {
    "spy_vs_200ma":       0.0,
    "qqq_vs_200ma":       0.0,
    "iwm_vs_200ma":       0.0,
    "advance_decline":    0.6,    # 1800 / 1200
    "pct_above_200ma":    60.0,
    "new_highs_lows":     2.5,    # 75 / 30
    "vix":                18.0,
    "put_call":           0.85,
    "vix_term_structure": True,
    "yield_curve":        0.35,
    "hy_spread":          3.5,
    "ig_spread":          1.2,
    "aaii_bulls":         35.0,
    "aaii_bears":         30.0,
    "fear_greed":         50.0,
    "acwi_vs_50ma":       1.0,
    "vstoxx":             17.0,
    "global_pmi":         52.0,
}
