"""
Lightweight market health index from four instruments.

  Market direction  40% - avg SPY/QQQ daily change, -2.5%..+2.5% -> 0..100
  Risk appetite     30% - IWM minus SPY daily change, -1.5%..+1.5% -> 0..100
  Volatility        30% - VIX level 10..35, inverted

Any instrument missing -> neutral 50 across the board.
"""
from typing import Mapping

import numpy as np

from common.models import HealthComponents, HealthScoreResult, HealthStatus, InstrumentQuote
from scoring.engine import classify_status, round_half_up

WEIGHTS = {
    "market_direction": 0.40,
    "risk_appetite":    0.30,
    "volatility":       0.30,
}

MARKET_RANGE = (-2.5, 2.5)
RELATIVE_RANGE = (-1.5, 1.5)
VIX_RANGE = (10.0, 35.0)

REQUIRED = ["SPY", "QQQ", "IWM", "VIX"]

NEUTRAL_RESULT = HealthScoreResult(
    score=50,
    status=HealthStatus.NEUTRAL,
    description="Insufficient data available",
    components=HealthComponents(market_direction=50, risk_appetite=50, volatility=50),
)


def normalize(value: float, bounds: tuple[float, float], invert: bool = False) -> float:
    lo, hi = bounds
    clamped = float(np.clip(value, lo, hi))
    scaled = (clamped - lo) / (hi - lo) * 100
    return 100 - scaled if invert else scaled


def describe(score: int, market: float, risk: float, vix: float) -> str:
    drivers = [("rising markets", market), ("risk-on sentiment", risk), ("low volatility", vix)]
    strongest = drivers[0]
    for driver in drivers[1:]:
        if abs(driver[1] - 50) > abs(strongest[1] - 50):
            strongest = driver
    name = strongest[0]

    if score >= 75:
        return f"Strong conditions led by {name}"
    if score >= 60:
        return f"Healthy conditions with {name}"
    if score >= 40:
        return "Mixed signals across markets"
    if score >= 25:
        return f"Elevated stress from declining {name}"
    return "High volatility with broad weakness"


def calculate_health_score(quotes: Mapping[str, InstrumentQuote]) -> HealthScoreResult:
    spy = quotes.get("SPY")
    qqq = quotes.get("QQQ")
    iwm = quotes.get("IWM")
    vix = quotes.get("VIX") or quotes.get("^VIX")
    if spy is None or qqq is None or iwm is None or vix is None:
        return NEUTRAL_RESULT.model_copy(deep=True)

    market = normalize((spy.change_percent + qqq.change_percent) / 2, MARKET_RANGE)
    risk = normalize(iwm.change_percent - spy.change_percent, RELATIVE_RANGE)
    vol = normalize(vix.current_price, VIX_RANGE, invert=True)

    score = round_half_up(
        market * WEIGHTS["market_direction"]
        + risk * WEIGHTS["risk_appetite"]
        + vol * WEIGHTS["volatility"]
    )
    return HealthScoreResult(
        score=score,
        status=classify_status(score),
        description=describe(score, market, risk, vol),
        components=HealthComponents(
            market_direction=round_half_up(market),
            risk_appetite=round_half_up(risk),
            volatility=round_half_up(vol),
        ),
    )
