"""
config/redis_client.py
Redis connection and the two things GetLife keeps there: the deny-list of
signed-out access tokens and per-IP request counters for unauthenticated
traffic.
"""

from typing import Optional

import redis.asyncio as aioredis

from config.settings import settings

DENIED_TOKEN_PREFIX = "getlife:denied_jti:"
RATE_LIMIT_PREFIX = "getlife:rate:"

# Set by init_redis() during app startup
redis_client: Optional[aioredis.Redis] = None


async def init_redis() -> None:
    global redis_client
    redis_client = aioredis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
    )
    await redis_client.ping()


async def close_redis() -> None:
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None


def get_redis() -> aioredis.Redis:
    """FastAPI dependency to get Redis client."""
    if not redis_client:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return redis_client


class SessionGuard:
    """Token deny-list and fixed-window rate limiting on top of one Redis client."""

    def __init__(self, client: aioredis.Redis):
        self.client = client

    async def deny_token(self, jti: str, ttl_seconds: int) -> None:
        """Keep a signed-out token's jti until the token would have expired anyway."""
        await self.client.set(f"{DENIED_TOKEN_PREFIX}{jti}", "1", ex=max(1, ttl_seconds))

    async def is_denied(self, jti: str) -> bool:
        return bool(await self.client.exists(f"{DENIED_TOKEN_PREFIX}{jti}"))

    async def allow_request(self, identifier: str, limit: int, window_seconds: int = 60) -> bool:
        """Count one request for `identifier`; False once the window's limit is exceeded."""
        key = f"{RATE_LIMIT_PREFIX}{identifier}"
        count = await self.client.incr(key)
        if count == 1:
            await self.client.expire(key, window_seconds)
        return count <= limit
