"""
Redis caching service for the date-grouped schedule.

CACHING STRATEGY
================

What we cache:
  - The GET /schedule response (JSON-serialized), keyed by version:
    "schedule:v<N>", where N is the counter in "schedule:version"

Why:
  - Every connected client re-fetches the schedule on connect, on every
    UPDATE event and on each polling tick; it is the hottest read
  - It only changes when a booking changes

Invalidation strategy:
  - Every normalized change event (explicit or from the native feed)
    increments the version before the event is broadcast
  - Readers take the version before querying PostgreSQL and store the
    result under that version, so a read that straddles a write lands
    under a version nobody asks for any more
  - TTL-based expiry as a safety net for writes that bypass both paths,
    and to age out superseded versions

Failure mode:
  - Redis errors are logged and the cache is bypassed; PostgreSQL stays
    authoritative
"""

import json
from typing import Optional

import redis.asyncio as redis
from roombook.core.config import get_settings
from roombook.core.logging import get_logger
from roombook.core.metrics import record_cache_operation, redis_connection_errors

logger = get_logger(__name__)
settings = get_settings()

SCHEDULE_VERSION_KEY = "schedule:version"
SCHEDULE_KEY_PREFIX = "schedule:v"

_redis_client: Optional[redis.Redis] = None

async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except (redis.RedisError, OSError) as e:
            logger.error("redis_connection_failed", error=str(e))
            redis_connection_errors.inc()
            _redis_client = None
            return None

    return _redis_client

async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None

def _schedule_key(version: int) -> str:
    return f"{SCHEDULE_KEY_PREFIX}{version}"

async def get_schedule_version() -> Optional[int]:
    """
    Current schedule version, 0 before the first change.
    None when Redis is unavailable, in which case the cache must be skipped.
    """
    client = await get_redis()
    if not client:
        return None

    try:
        value = await client.get(SCHEDULE_VERSION_KEY)
    except (redis.RedisError, OSError) as e:
        logger.error("cache_version_error", error=str(e))
        return None
    return int(value or 0)

async def get_cached_schedule(version: int) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    key = _schedule_key(version)
    try:
        data = await client.get(key)
    except (redis.RedisError, OSError) as e:
        logger.error("cache_get_error", key=key, error=str(e))
        return None

    record_cache_operation("get", hit=data is not None)
    if data:
        return json.loads(data)
    return None

async def set_cached_schedule(data: dict, version: int) -> None:
    """Cache schedule response with TTL under the version it was read at."""
    client = await get_redis()
    if not client:
        return

    key = _schedule_key(version)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except (redis.RedisError, OSError) as e:
        logger.error("cache_set_error", key=key, error=str(e))

async def invalidate_schedule_cache() -> None:
    """Bump the version; entries stored under older versions are never read again."""
    client = await get_redis()
    if not client:
        return

    try:
        version = await client.incr(SCHEDULE_VERSION_KEY)
        logger.debug("cache_invalidated", version=version)
    except (redis.RedisError, OSError) as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except (redis.RedisError, OSError) as e:
        return {"status": "error", "error": str(e)}
