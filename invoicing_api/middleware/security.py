"""
Security headers middleware for API hardening.

Adds essential security headers to all responses.
"""
import os
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from invoicing_api.config import Settings


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds security headers to all responses.

    Headers added:
    - X-Content-Type-Options: nosniff
    - X-Frame-Options: DENY
    - Strict-Transport-Security (for HTTPS)
    - Content-Security-Policy
    - Referrer-Policy
    - Permissions-Policy
    """

    # Whether to enable HSTS (should be True in production with HTTPS)
    ENABLE_HSTS = os.getenv("ENABLE_HSTS", "false").lower() == "true"

    # HSTS max-age in seconds (1 year)
    HSTS_MAX_AGE = 31536000

    # The OAuth callback page ships its styles inline and has no scripts.
    CSP_POLICY = "; ".join([
        "default-src 'none'",
        "style-src 'unsafe-inline'",
        "img-src 'self' data:",
        "frame-ancestors 'none'",
        "base-uri 'none'",
        "form-action 'self'",
    ])

    # Swagger UI loads its bundle from a CDN.
    DOCS_PATHS = {"/docs", "/redoc"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Permissions-Policy"] = (
            "accelerometer=(), camera=(), geolocation=(), "
            "gyroscope=(), magnetometer=(), microphone=(), "
            "payment=(), usb=()"
        )

        if request.url.path not in self.DOCS_PATHS:
            response.headers["Content-Security-Policy"] = self.CSP_POLICY

        if self.ENABLE_HSTS:
            response.headers["Strict-Transport-Security"] = (
                f"max-age={self.HSTS_MAX_AGE}; includeSubDomains"
            )

        if "Server" in response.headers:
            del response.headers["Server"]

        return response


def get_cors_origins(settings: Settings) -> list[str]:
    """
    Allowed CORS origins.

    Comma separated ``CORS_ORIGINS``; defaults to common local frontends.
    """
    if settings.cors_origins:
        return [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]

    return [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]
