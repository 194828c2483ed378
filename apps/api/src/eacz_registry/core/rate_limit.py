"""
Rate Limiting Module

Sliding-window rate limiting backed by a Redis sorted set, falling back to
an in-process window when Redis is not connected.

Limits applied by the registry:
- Starting an application: 10 per hour per client IP
- Document uploads: 30 per hour per application
- OTP generation: 3 per hour per application
- Admin decisions: 10 per minute per staff user
"""

import logging
import time
from dataclasses import dataclass

from fastapi import HTTPException, Request, status

from eacz_registry.core import redis as redis_module

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimit:
    """A named request budget."""

    name: str
    limit: int
    window_seconds: int


START_APPLICATION_LIMIT = RateLimit("start_application", limit=10, window_seconds=3600)
DOCUMENT_UPLOAD_LIMIT = RateLimit("document_upload", limit=30, window_seconds=3600)
OTP_GENERATION_LIMIT = RateLimit("otp_generation", limit=3, window_seconds=3600)
ADMIN_DECISION_LIMIT = RateLimit("admin_decision", limit=10, window_seconds=60)

# Fallback window when Redis is unavailable: {key: [timestamps]}
_memory_store: dict[str, list[float]] = {}


class RateLimitExceeded(HTTPException):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "retry_after_seconds": window_seconds,
            },
            headers={"Retry-After": str(window_seconds)},
        )


async def _check_rate_limit_redis(client, key: str, limit: int, window_seconds: int) -> bool:
    """
    Check rate limit using Redis.

    Uses a sliding window over a sorted set of request timestamps.
    """
    now = time.time()
    window_start = now - window_seconds

    pipe = client.pipeline()
    pipe.zremrangebyscore(key, 0, window_start)
    pipe.zcard(key)
    pipe.zadd(key, {f"{now:.6f}": now})
    pipe.expire(key, window_seconds)

    results = await pipe.execute()
    current_count = results[1]

    return current_count < limit


def _check_rate_limit_memory(key: str, limit: int, window_seconds: int) -> bool:
    """
    Check rate limit using in-memory storage.

    Not shared across server instances.
    """
    now = time.time()
    window_start = now - window_seconds

    hits = [ts for ts in _memory_store.get(key, []) if ts > window_start]
    if len(hits) >= limit:
        _memory_store[key] = hits
        return False

    hits.append(now)
    _memory_store[key] = hits
    return True


async def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Check if a request is within rate limits.

    Tries Redis first, falls back to in-memory storage.

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    client = redis_module.redis_client

    if client is not None:
        try:
            return await _check_rate_limit_redis(client, key, limit, window_seconds)
        except Exception as e:
            logger.warning(f"Redis rate limit check failed, using memory: {e}")

    return _check_rate_limit_memory(key, limit, window_seconds)


async def enforce_rate_limit(rule: RateLimit, subject: str) -> None:
    """
    Consume one request from ``rule``'s budget for ``subject``.

    Raises:
        RateLimitExceeded: When the budget is exhausted (HTTP 429)
    """
    key = f"rate_limit:{rule.name}:{subject}"
    allowed = await check_rate_limit(key, rule.limit, rule.window_seconds)

    if not allowed:
        logger.warning(f"Rate limit exceeded for {key}: {rule.limit}/{rule.window_seconds}s")
        raise RateLimitExceeded(rule.limit, rule.window_seconds)


def client_ip(request: Request) -> str:
    """Best-effort client IP, honouring X-Forwarded-For from the proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def reset_memory_store() -> None:
    """Clear the in-memory fallback window."""
    _memory_store.clear()


__all__ = [
    "RateLimit",
    "RateLimitExceeded",
    "START_APPLICATION_LIMIT",
    "DOCUMENT_UPLOAD_LIMIT",
    "OTP_GENERATION_LIMIT",
    "ADMIN_DECISION_LIMIT",
    "check_rate_limit",
    "enforce_rate_limit",
    "client_ip",
    "reset_memory_store",
]
