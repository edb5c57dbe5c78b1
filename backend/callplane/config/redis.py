"""
Shared Redis client.

Redis only holds the feature store's last-known values, so calls keep
working while it is down; feature lookups then skip the cache.
"""
import logging
from typing import Optional

import redis.asyncio as redis

from callplane.config.constants import REDIS_SOCKET_TIMEOUT_SEC
from callplane.config.settings import settings

logger = logging.getLogger(__name__)

_client: Optional[redis.Redis] = None


def redis_url() -> str:
    auth = f":{settings.REDIS_PASSWORD}@" if settings.REDIS_PASSWORD else ""
    return f"redis://{auth}{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}"


async def get_redis() -> redis.Redis:
    global _client
    if _client is None:
        _client = redis.Redis.from_url(
            redis_url(),
            decode_responses=True,
            socket_timeout=REDIS_SOCKET_TIMEOUT_SEC,
            socket_connect_timeout=REDIS_SOCKET_TIMEOUT_SEC,
        )
    return _client


async def ping_redis() -> bool:
    """True when Redis answers; a dead Redis is logged, not raised."""
    try:
        client = await get_redis()
        return bool(await client.ping())
    except redis.RedisError as e:
        logger.warning(f"⚠️ [Redis] Unreachable, feature lookups will skip the cache: {e}")
        return False


async def close_redis():
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
