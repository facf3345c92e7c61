#!/usr/bin/env python3
"""
Standalone scheduler — one refresh cycle plus a cache sweep.
Run: python scheduler.py
Or add to cron: */5 * * * * cd /path/to/market-compass && ./venv/bin/python scheduler.py
"""
import asyncio
from datetime import datetime, timezone

from common.logger import get_logger
from common.market_hours import get_market_status
from service.container import build_service

logger = get_logger("scheduler")


async def main():
    logger.info(f"🚀 Refresh started at {datetime.now(timezone.utc).isoformat()} "
                f"(market {get_market_status()})")
    service = build_service()
    result = await service.refresh()
    removed = await service.sweep_cache()
    if result is None:
        logger.warning("Refresh superseded, nothing committed")
        return
    logger.info(f"✅ Done: composite {result.score} ({result.status.value}), "
                f"{len(result.missing_signals)} fallbacks, swept {sum(removed.values())} cache entries")


if __name__ == "__main__":
    asyncio.run(main())
