"""Health and readiness endpoints.

  /health (liveness):  "is the process alive?"  Always 200; the body
                       reports per-dependency status.
  /ready (readiness):  "can this instance take heartbeats right now?"
                       503 when PostgreSQL is configured but unreachable.

Redis is not critical for readiness: heartbeats only need the progress
store, and the cache and telemetry degrade without failing requests.
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from app.db.engine import engine, ping_database
from app.db.redis import ping_redis

router = APIRouter(tags=["health"])


async def _database_status() -> str:
    if engine is None:
        return "not_configured"
    return "ok" if await ping_database() else "down"


@router.get("/health")
async def health() -> dict:
    """Liveness probe plus dependency status.

    Returns 200 even when degraded; the status field carries the actual
    health.  A 503 here would get the container restarted, which is too
    aggressive for a partial outage.
    """
    checks = {
        "database": await _database_status(),
        "redis": await ping_redis(),
    }
    overall = "ok" if all(v in ("ok", "not_configured") for v in checks.values()) else "degraded"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    """Readiness probe: 200 if the progress store is reachable, else 503."""
    if await _database_status() == "down":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
