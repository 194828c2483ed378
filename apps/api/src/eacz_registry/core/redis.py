"""
Redis Client

Async Redis connection used for rate limiting and save-and-resume OTP codes.
"""

import logging

from fastapi import HTTPException, status
from redis.asyncio import Redis, from_url

from eacz_registry.core.config import settings

logger = logging.getLogger(__name__)

redis_client: Redis | None = None


async def init_redis() -> Redis:
    """Connect to Redis. Call on application startup."""
    global redis_client
    redis_client = from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    await redis_client.ping()
    return redis_client


async def get_redis() -> Redis | None:
    """FastAPI dependency returning the client, or None when Redis is not connected."""
    return redis_client


async def require_redis() -> Redis:
    """
    FastAPI dependency for endpoints that cannot work without Redis.

    Raises:
        HTTPException 503: If Redis is not connected
    """
    if redis_client is None:
        logger.error("Redis is required for this operation but is not connected")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "SERVICE_UNAVAILABLE",
                "message": "This service is temporarily unavailable. Please try again later.",
            },
        )
    return redis_client


async def close_redis() -> None:
    """Close the Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
