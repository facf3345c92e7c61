"""Market Compass — FastAPI REST API with refresh loop."""
import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from common.logger import get_logger
from common.market_hours import get_market_status, refresh_interval
from service.compass import CompassService

logger = get_logger("api")


async def run_refresh_cycle(service: CompassService) -> None:
    try:
        await service.refresh()
    except Exception as e:
        logger.error(f"❌ Refresh cycle failed: {e}")


async def refresh_loop(service: CompassService) -> None:
    """Refresh at the cadence of the current session, sweeping the cache each pass."""
    while True:
        status = get_market_status()
        await asyncio.sleep(refresh_interval(status))
        logger.info(f"🔄 Scheduled refresh (market {status})")
        await run_refresh_cycle(service)
        try:
            await service.sweep_cache()
        except Exception as e:
            logger.warning(f"Cache sweep failed: {e}")


def create_app(service: Optional[CompassService] = None, start_scheduler: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.service is None:
            from service.container import build_service
            app.state.service = build_service()
        tasks = []
        if start_scheduler:
            tasks.append(asyncio.create_task(run_refresh_cycle(app.state.service)))
            tasks.append(asyncio.create_task(refresh_loop(app.state.service)))
        yield
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    app = FastAPI(title="Market Compass API", version="1.0.0", lifespan=lifespan)
    app.state.service = service
    app.add_middleware(CORSMiddleware,
        allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    # Routes live on a shared router mounted at both "/" and "/api"
    app.include_router(router)
    app.include_router(router, prefix="/api")
    return app


def _service(request: Request) -> CompassService:
    return request.app.state.service


router = APIRouter()


@router.get("/health")
def health():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/composite")
def get_composite(request: Request):
    result = _service(request).get_composite()
    if result is None:
        return {"score": None, "note": "No score yet, refresh in progress..."}
    return {
        "score": result.score,
        "status": result.status.value,
        "pillars": {
            key: {
                "score": p.score,
                "weight": p.weight,
                "signals": [s.model_dump(mode="json") for s in p.signals],
            }
            for key, p in result.pillars.items()
        },
        "missing_signals": result.missing_signals,
        "is_incomplete": result.is_incomplete,
        "agreement": result.agreement.model_dump(mode="json"),
        "computed_at": result.computed_at.isoformat(),
    }


@router.get("/history/percentile")
async def get_percentile(request: Request, score: float = Query(..., ge=0, le=100)):
    service = _service(request)
    return {
        "percentile": await service.get_history_percentile(score),
        "history_length": await service.get_history_length(),
    }


@router.get("/history/length")
async def get_history_length(request: Request):
    return {"history_length": await _service(request).get_history_length()}


@router.get("/history")
async def get_history(request: Request):
    entries = await _service(request).get_history()
    return {"history": [e.model_dump() for e in entries], "days": len(entries)}


@router.get("/history/recent")
async def get_recent_scores(request: Request, days: int = Query(30, ge=1, le=60)):
    """Composite scores oldest first, for sparklines."""
    return {"scores": await _service(request).get_recent_scores(days)}


@router.get("/formulas")
def get_formulas(request: Request):
    return {key: f.model_dump() for key, f in _service(request).get_formulas().items()}


@router.get("/formulas/{key}")
def get_formula(request: Request, key: str):
    service = _service(request)
    formula = service.get_formula(key)
    if formula is None:
        raise HTTPException(status_code=404, detail=f"Unknown signal: {key}")
    return {**formula.model_dump(), "current": service.explain_signal(key)}


@router.get("/health-index")
async def get_health_index(request: Request):
    return (await _service(request).get_health_index()).model_dump(mode="json")


@router.get("/status")
def get_status(request: Request):
    service = _service(request)
    return {
        "market": get_market_status(),
        "data": service.data_status().model_dump(mode="json"),
        "rate_limits": [s.model_dump() for s in service.limiter_status()],
    }


@router.post("/refresh")
async def trigger_refresh(request: Request, background_tasks: BackgroundTasks):
    """Manually trigger a refresh cycle."""
    background_tasks.add_task(run_refresh_cycle, _service(request))
    return {"status": "refresh triggered"}


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.main:app", host="0.0.0.0", port=8000)
