"""
Rate Limiting Middleware
========================

Redis sliding-window rate limiting per authenticated user (falls back to
client IP). Chat endpoints, which fan out to the workflow engine, get a
stricter limit. When Redis is unreachable every request is allowed.
"""

import os
import time
import logging
from typing import Callable, Optional

import redis
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..auth import user_id_from_token

logger = logging.getLogger(__name__)

REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

RATE_LIMIT_PER_USER = int(os.environ.get("RATE_LIMIT_PER_USER", "60"))  # requests per minute
RATE_LIMIT_CHAT = int(os.environ.get("RATE_LIMIT_CHAT", "20"))  # chat messages per minute

EXEMPT_PATHS = ("/health", "/docs", "/openapi.json", "/api/v1/billing/webhook")


class RateLimiter:
    """
    Redis-based rate limiter using sliding window algorithm.
    """

    def __init__(self, redis_url: str = REDIS_URL):
        self.redis_url = redis_url
        self._client = None

    @property
    def client(self):
        """Lazy-load Redis client"""
        if self._client is None:
            try:
                self._client = redis.from_url(self.redis_url, decode_responses=True)
                self._client.ping()
            except redis.RedisError as e:
                logger.warning(f"Redis connection failed: {e}")
                self._client = None
        return self._client

    def is_allowed(self, key: str, limit: int, window_seconds: int = 60) -> tuple:
        """
        Check if request is allowed under rate limit.

        Returns:
            (is_allowed, remaining, reset_time)
        """
        client = self.client
        if not client:
            return (True, limit, 0)

        now = time.time()
        window_start = now - window_seconds

        try:
            pipe = client.pipeline()
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zcard(key)
            pipe.zadd(key, {str(now): now})
            pipe.expire(key, window_seconds)
            results = pipe.execute()
        except redis.RedisError as e:
            logger.warning(f"Rate limit check failed: {e}")
            return (True, limit, 0)

        current_count = results[1]
        reset_time = int(now + window_seconds)
        if current_count >= limit:
            return (False, 0, reset_time)
        return (True, max(0, limit - current_count - 1), reset_time)


_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get singleton rate limiter instance"""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter


def _client_key(request: Request) -> str:
    authorization = request.headers.get("authorization", "")
    if authorization.lower().startswith("bearer "):
        user_id = user_id_from_token(authorization[7:].strip())
        if user_id:
            return f"ratelimit:user:{user_id}"
    host = request.client.host if request.client else "unknown"
    return f"ratelimit:ip:{host}"


def _is_chat_message(path: str) -> bool:
    return path.startswith("/api/v1/chat/") and not path.endswith("/callback")


class RateLimitMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, limiter: Optional[RateLimiter] = None):
        super().__init__(app)
        self.limiter = limiter or get_rate_limiter()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in EXEMPT_PATHS:
            return await call_next(request)

        key = _client_key(request)
        limit = RATE_LIMIT_PER_USER
        if _is_chat_message(path):
            limit = RATE_LIMIT_CHAT
            key = f"{key}:chat"

        allowed, remaining, reset = self.limiter.is_allowed(key, limit, window_seconds=60)
        if not allowed:
            retry_after = max(0, reset - int(time.time()))
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Rate limit exceeded",
                    "details": f"Limit: {limit} requests per minute",
                },
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(reset),
                    "Retry-After": str(retry_after),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
