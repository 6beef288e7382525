"""Rate limiting for generation endpoints using Upstash Redis.

Each generation request fans out into several model calls, so the
generation endpoints are throttled per caller. Falls back to allowing
requests if Upstash is not configured (development/test environments).
"""

from __future__ import annotations

import logging
import time
import uuid
from functools import lru_cache
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status

from core.config import Settings, get_settings
from dependencies.context import bearer_token_from_header, hash_user_token


if TYPE_CHECKING:
    from upstash_ratelimit.asyncio import Ratelimit

logger = logging.getLogger(__name__)

RATE_LIMIT_PREFIX = "pipelinepilot:ratelimit"

# Paths that bypass rate limiting (health checks, etc.)
RATE_LIMIT_BYPASS_PATHS: set[str] = {
    "/api/v1/health",
    "/api/v1/health/",
}


@lru_cache
def get_ratelimiter() -> Ratelimit | None:
    """Create and cache the rate limiter, or None when Upstash is unset."""
    from upstash_ratelimit import SlidingWindow
    from upstash_ratelimit.asyncio import Ratelimit
    from upstash_redis.asyncio import Redis

    settings = get_settings()

    if not settings.UPSTASH_REDIS_REST_URL or not settings.UPSTASH_REDIS_REST_TOKEN:
        logger.warning(
            "Upstash Redis not configured. Rate limiting is disabled. "
            "Set UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN to enable."
        )
        return None

    try:
        ratelimit = Ratelimit(
            redis=Redis(
                url=settings.UPSTASH_REDIS_REST_URL,
                token=settings.UPSTASH_REDIS_REST_TOKEN,
            ),
            limiter=SlidingWindow(
                max_requests=settings.RATE_LIMIT_REQUESTS,
                window=settings.RATE_LIMIT_WINDOW_SECONDS,
            ),
            prefix=RATE_LIMIT_PREFIX,
        )
    except Exception as e:
        logger.error("Failed to initialize rate limiter: %s", e)
        return None

    logger.info(
        "Rate limiting enabled: %d requests per %d seconds",
        settings.RATE_LIMIT_REQUESTS,
        settings.RATE_LIMIT_WINDOW_SECONDS,
    )
    return ratelimit


def _get_client_identifier(request: Request) -> str:
    """Pick the rate-limit bucket for a request.

    Callers presenting a bearer token share one bucket per token, regardless
    of which address they call from. Anonymous callers are bucketed by IP,
    taking the first X-Forwarded-For hop when behind a proxy.
    """
    token = bearer_token_from_header(request.headers.get("Authorization"))
    if token:
        return f"user:{hash_user_token(token)}"

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return f"ip:{forwarded_for.split(',')[0].strip()}"

    if request.client and request.client.host:
        return f"ip:{request.client.host}"

    # Unidentifiable clients must not share a bucket
    return f"unknown:{uuid.uuid4()}"


async def check_rate_limit(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """FastAPI dependency raising 429 once the caller's window is spent.

    Usage:
        @router.post("/generate", dependencies=[Depends(check_rate_limit)])
        async def generate(...): ...
    """
    path = request.url.path
    if path in RATE_LIMIT_BYPASS_PATHS:
        return

    ratelimiter = get_ratelimiter()
    if ratelimiter is None:
        return

    identifier = _get_client_identifier(request)

    try:
        response = await ratelimiter.limit(identifier)
    except Exception as e:
        # Redis trouble must not take generation offline
        logger.error("Rate limit check failed: %s", e)
        return

    if response.allowed:
        return

    current_time_ms = int(time.time() * 1000)
    retry_after = max(1, (response.reset - current_time_ms) // 1000)
    logger.warning(
        "Rate limit exceeded for %s on %s. Reset in %d seconds.",
        identifier,
        path,
        retry_after,
    )
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Too many requests. Please try again later.",
        headers={
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": str(settings.RATE_LIMIT_REQUESTS),
            "X-RateLimit-Remaining": str(response.remaining),
        },
    )
