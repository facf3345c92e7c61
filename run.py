"""
Market Compass — Entry point
Runs one refresh cycle and prints the pillar breakdown.
Run: python run.py
"""
import asyncio
import warnings

warnings.filterwarnings("ignore")

from common.logger import get_logger
from common.market_hours import get_market_status
from config.settings import PILLAR_WEIGHTS
from service.container import build_service

logger = get_logger("run")

STATUS_EMOJI = {
    "very_healthy":   "🟢🟢",
    "healthy":        "🟢",
    "neutral":        "🟡",
    "unhealthy":      "🔴",
    "very_unhealthy": "🔴🔴",
}


async def main():
    service = build_service()
    result = await service.refresh()
    if result is None:
        print("No result: refresh cycle was superseded")
        return
    percentile = await service.get_history_percentile(result.score)
    days = await service.get_history_length()

    print("\n" + "="*78)
    print(f"  🧭  MARKET COMPASS  —  market {get_market_status()}")
    print("="*78)
    print(f"{'Pillar':<12} {'Signal':<24} {'Value':>14} {'Score':>6}")
    print("-"*78)
    for key, pillar in result.pillars.items():
        print(f"{key.upper():<12} {'':<24} {'':>14} {pillar.score:>6}  (weight {pillar.weight:.0%})")
        for s in pillar.signals:
            flag = " *" if s.is_fallback else ""
            print(f"{'':<12} {s.name:<24} {s.display_value:>14} {s.score:>6}{flag}")
    print("="*78)
    emoji = STATUS_EMOJI.get(result.status.value, "⚪")
    print(f"  COMPOSITE: {result.score}  {emoji} {result.status.value.replace('_', ' ')}")
    print(f"  Agreement: {result.agreement.interpretation}")
    if percentile is None:
        print(f"  Percentile: n/a ({days}/30 days of history)")
    else:
        print(f"  Percentile: {percentile} (last 30 days)")
    if result.missing_signals:
        print(f"  * fallback values for: {', '.join(result.missing_signals)}"
              + ("  [INCOMPLETE]" if result.is_incomplete else ""))
    print("\n  Weights: " + " | ".join(f"{k}: {v:.0%}" for k, v in PILLAR_WEIGHTS.items()))
    print("="*78 + "\n")


if __name__ == "__main__":
    asyncio.run(main())
