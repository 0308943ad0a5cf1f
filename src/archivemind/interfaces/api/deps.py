# src/archivemind/interfaces/api/deps.py

from __future__ import annotations
from fastapi import Header, HTTPException, Request

from archivemind.config import settings
from archivemind.application.services import ActivityTracker, StatsService


def _service(request: Request, name: str, label: str):
    services = request.app.state.services or {}
    service = services.get(name)
    if not service:
        raise HTTPException(status_code=503, detail=f"{label} is currently unavailable.")
    return service

def get_stats_service(request: Request) -> StatsService:
    """Dependency to get the StatsService instance from the app state."""
    return _service(request, "stats_service", "Stats service")

def get_activity_tracker(request: Request) -> ActivityTracker:
    """Dependency to get the ActivityTracker instance from the app state."""
    return _service(request, "activity_tracker", "Activity tracker")

# --- API Key Dependency ---

def require_api_key(x_api_key: str | None = Header(default=None)):
    if settings.API_KEY and x_api_key != settings.API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return True
