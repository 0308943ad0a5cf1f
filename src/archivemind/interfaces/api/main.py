# --- START OF FILE: src/archivemind/interfaces/api/main.py ---
import logging
import time
from typing import List, Optional

from fastapi import FastAPI, Request, Depends, Query

from archivemind.config import settings
from archivemind.boot import build_services
from archivemind.domain.entities import ResourceType
from archivemind.logging_conf import setup_logging
from archivemind.application.services import ActivityTracker, StatsService
from archivemind.infrastructure.sched.sweep_scheduler import SweepScheduler
from archivemind.interfaces.api.deps import get_activity_tracker, get_stats_service, require_api_key
from archivemind.interfaces.api.metrics import router as metrics_router, observe_request
from archivemind.interfaces.api.schemas import (
    ArchiveOut,
    GuildStatsOut,
    ResourceOut,
    WatchedChannelOut,
)

setup_logging()
log = logging.getLogger(__name__)

# --- FastAPI App ---
app = FastAPI(title="Archivemind API", version="1.0.0")
app.state.services = None


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    route = request.scope.get("route")
    observe_request(request.method, getattr(route, "path", None), response.status_code, time.perf_counter() - started)
    return response


@app.on_event("startup")
async def on_startup():
    log.info("🚀 Application startup sequence initiated...")
    if not settings.DISCORD_BOT_TOKEN:
        log.critical("FATAL: DISCORD_BOT_TOKEN not set. Services not started.")
        return

    app.state.services = build_services()
    scheduler: SweepScheduler = app.state.services.get("sweep_scheduler")
    if scheduler:
        scheduler.start()
    log.info("🚀 Application startup complete.")


@app.on_event("shutdown")
async def on_shutdown():
    services = app.state.services or {}
    scheduler: Optional[SweepScheduler] = services.get("sweep_scheduler")
    if scheduler:
        scheduler.stop()
    platform = services.get("platform")
    if platform is not None and hasattr(platform, "aclose"):
        await platform.aclose()


@app.get("/")
def root(): return {"message": "Archivemind API Running"}

@app.get("/health")
def health_check(): return {"status": "ok"}


@app.get("/guilds/{guild_id}/stats", response_model=GuildStatsOut, dependencies=[Depends(require_api_key)])
def guild_stats(
    guild_id: str,
    top: int = Query(default=10, ge=1, le=100),
    stats: StatsService = Depends(get_stats_service),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    return {
        "overview": stats.guild_overview(guild_id),
        "activity": tracker.get_activity_stats(guild_id),
        "top_channels": stats.top_channels(guild_id, top),
    }


@app.get("/guilds/{guild_id}/watched", response_model=List[WatchedChannelOut], dependencies=[Depends(require_api_key)])
def watched_channels(guild_id: str, tracker: ActivityTracker = Depends(get_activity_tracker)):
    return tracker.get_watched_channels(guild_id)


@app.get("/guilds/{guild_id}/archives", response_model=List[ArchiveOut], dependencies=[Depends(require_api_key)])
def archives(
    guild_id: str,
    include_restored: bool = True,
    limit: int = Query(default=50, ge=1, le=500),
    stats: StatsService = Depends(get_stats_service),
):
    return stats.list_archives(guild_id, include_restored, limit)


@app.get("/guilds/{guild_id}/resources", response_model=List[ResourceOut], dependencies=[Depends(require_api_key)])
def resources(
    guild_id: str,
    q: Optional[str] = None,
    type: Optional[ResourceType] = None,
    author_id: Optional[str] = None,
    limit: int = Query(default=25, ge=1, le=200),
    stats: StatsService = Depends(get_stats_service),
):
    return stats.find_resources(guild_id, q, type, author_id, limit)


if settings.METRICS_ENABLED:
    app.include_router(metrics_router, dependencies=[Depends(require_api_key)])
# --- END OF FILE ---
