"""
Middleware Tests
================
"""

from pathlib import Path
import sys
from unittest.mock import MagicMock

import redis
from fastapi import FastAPI
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from insights_backend.middleware import RateLimitMiddleware, RateLimiter, SecurityHeadersMiddleware
from insights_backend.middleware.rate_limit import RATE_LIMIT_CHAT, RATE_LIMIT_PER_USER


def _app(limiter):
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, limiter=limiter)
    app.add_middleware(SecurityHeadersMiddleware)

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    @app.get("/api/v1/notebooks")
    def notebooks():
        return []

    @app.post("/api/v1/chat/notebook")
    def chat():
        return {"success": True}

    return app


class TestRateLimiter:
    """Sliding window against a mocked Redis pipeline"""

    def _limiter(self, count):
        limiter = RateLimiter(redis_url="redis://unused:6379")
        pipe = MagicMock()
        pipe.execute.return_value = [0, count, 1, True]
        limiter._client = MagicMock()
        limiter._client.pipeline.return_value = pipe
        return limiter

    def test_under_limit(self):
        allowed, remaining, reset = self._limiter(count=3).is_allowed("k", 10)
        assert allowed
        assert remaining == 6
        assert reset > 0

    def test_over_limit(self):
        allowed, remaining, _ = self._limiter(count=10).is_allowed("k", 10)
        assert not allowed
        assert remaining == 0

    def test_redis_error_allows(self):
        limiter = self._limiter(count=0)
        limiter._client.pipeline.return_value.execute.side_effect = redis.ConnectionError("down")
        assert limiter.is_allowed("k", 10) == (True, 10, 0)


class TestRateLimitMiddleware:

    def test_chat_has_its_own_limit(self):
        limiter = MagicMock()
        limiter.is_allowed.return_value = (True, 5, 0)
        client = TestClient(_app(limiter))

        response = client.post("/api/v1/chat/notebook")
        assert response.headers["X-RateLimit-Limit"] == str(RATE_LIMIT_CHAT)
        key, limit = limiter.is_allowed.call_args.args
        assert key.endswith(":chat")
        assert limit == RATE_LIMIT_CHAT

        client.get("/api/v1/notebooks")
        assert limiter.is_allowed.call_args.args[1] == RATE_LIMIT_PER_USER

    def test_rejected_request(self):
        limiter = MagicMock()
        limiter.is_allowed.return_value = (False, 0, 0)
        response = TestClient(_app(limiter)).get("/api/v1/notebooks")

        assert response.status_code == 429
        assert response.json()["error"] == "Rate limit exceeded"
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_health_is_exempt(self):
        limiter = MagicMock()
        TestClient(_app(limiter)).get("/health")
        limiter.is_allowed.assert_not_called()


class TestSecurityHeaders:

    def test_headers(self):
        limiter = MagicMock()
        limiter.is_allowed.return_value = (True, 5, 0)
        response = TestClient(_app(limiter)).get("/api/v1/notebooks")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "Strict-Transport-Security" not in response.headers
        assert response.headers["Content-Security-Policy"] == "default-src 'none'; frame-ancestors 'none'"

    def test_docs_pages_skip_strict_csp(self):
        limiter = MagicMock()
        limiter.is_allowed.return_value = (True, 5, 0)
        client = TestClient(_app(limiter))

        for path in ("/docs", "/redoc"):
            response = client.get(path)
            assert response.status_code == 200
            assert "Content-Security-Policy" not in response.headers
            assert response.headers["X-Content-Type-Options"] == "nosniff"
