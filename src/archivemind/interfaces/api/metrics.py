# src/archivemind/interfaces/api/metrics.py
"""HTTP-level Prometheus series for the API, plus the /metrics scrape endpoint."""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response

router = APIRouter(prefix="/metrics", tags=["metrics"])

REQUESTS = Counter("am_requests_total", "Total API requests", ["method", "path", "status"])
LATENCY = Histogram("am_request_latency_seconds", "Request latency", ["path"])

UNMATCHED_PATH = "unmatched"


def observe_request(method: str, path: str, status_code: int, seconds: float) -> None:
    # `path` is the route template, e.g. /guilds/{guild_id}/stats.
    path = path or UNMATCHED_PATH
    REQUESTS.labels(method=method, path=path, status=str(status_code)).inc()
    LATENCY.labels(path=path).observe(seconds)


@router.get("")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
