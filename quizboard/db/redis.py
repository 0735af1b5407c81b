"""Redis connection management.

When REDIS_URL is configured a shared async connection pool is created at
import time; when it is not (local dev, tests) ``redis_pool`` is None and
every store falls back to its in-memory implementation.

Redis holds three kinds of keys for this engine:
  ledger:{quiz_id}:{student_id}   one JSON ledger document per student
  attempts:{quiz_id}              append-only list of attempt facts
  submitting:{quiz_id}:{student}  in-flight submission marker with a TTL
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from quizboard.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Verify connectivity on startup and close the pool on shutdown.

    A failed ping is logged and startup continues; callers keep the
    configured Redis stores and surface PersistenceFailure per submission.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured, stores use in-memory fallbacks")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    except Exception:
        logger.exception("Redis connection failed on startup")

    try:
        yield
    finally:
        await redis_pool.aclose()
        logger.info("Redis connection pool closed")
