"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured a shared async connection
pool is created at import time; when it is unset, redis_pool is None and
the cache and task queue fall back to in-memory implementations.

Redis holds only derived or transient data here (cached course progress
summaries, queued telemetry and repair tasks).  Losing it loses no learner
progress: lesson_progress rows in PostgreSQL are the source of truth.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


async def ping_redis() -> str:
    """Return ok|degraded|not_configured for health reporting."""
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except Exception:
        logger.warning("Redis ping failed", exc_info=True)
        return "degraded"
    return "ok"


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis, mirroring lifespan_db()."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured: Redis features use in-memory fallbacks")
        yield
        return

    if await ping_redis() == "ok":
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    else:
        # Keep serving: heartbeats only need the database, and telemetry
        # failures are already tolerated.
        logger.error("Redis unreachable on startup; cache and telemetry degraded")

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
