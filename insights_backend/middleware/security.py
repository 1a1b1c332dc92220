"""
Security Middleware
===================

Security response headers and optional HTTPS redirect.
"""

import os

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

ENFORCE_HTTPS = os.environ.get("ENFORCE_HTTPS", "false").lower() in ("true", "1", "yes")
HSTS_MAX_AGE = int(os.environ.get("HSTS_MAX_AGE", "31536000"))

# JSON API; file downloads are not rendered as documents
API_CSP = "default-src 'none'; frame-ancestors 'none'"

# Swagger UI and ReDoc load scripts and styles from a CDN
DOCS_PREFIXES = ("/docs", "/redoc")

# Token responses and signed file downloads must not be cached
NO_STORE_PREFIXES = ("/auth/", "/api/v1/files/")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Headers added to every HTTP response:
    - X-Content-Type-Options
    - X-Frame-Options
    - Referrer-Policy
    - Content-Security-Policy
    - Strict-Transport-Security (HTTPS only)
    - Cache-Control: no-store (auth and file downloads)
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        is_https = request.url.scheme == "https" or request.headers.get("x-forwarded-proto") == "https"

        if ENFORCE_HTTPS and not is_https:
            url = str(request.url).replace("http://", "https://", 1)
            return RedirectResponse(url, status_code=301)

        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if not request.url.path.startswith(DOCS_PREFIXES):
            response.headers["Content-Security-Policy"] = API_CSP
        if request.url.path.startswith(NO_STORE_PREFIXES):
            response.headers["Cache-Control"] = "no-store"
        if is_https:
            response.headers["Strict-Transport-Security"] = f"max-age={HSTS_MAX_AGE}; includeSubDomains"

        return response
