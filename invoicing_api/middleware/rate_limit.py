"""
Rate limiting for the OAuth and settlement endpoints using slowapi.
"""
import os

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse
import structlog

logger = structlog.get_logger(__name__)

RETRY_AFTER_SECONDS = 60


def get_client_identifier(request: Request) -> str:
    """
    Get client identifier for rate limiting.

    Prefers the first X-Forwarded-For hop, falling back to the peer address.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    return get_remote_address(request)


# In-memory storage unless a shared store is configured (e.g. redis://...)
RATE_LIMIT_STORAGE_URI = os.getenv("RATE_LIMIT_STORAGE_URI")
if RATE_LIMIT_STORAGE_URI:
    limiter = Limiter(key_func=get_client_identifier, storage_uri=RATE_LIMIT_STORAGE_URI)
else:
    limiter = Limiter(key_func=get_client_identifier)


RATE_LIMITS = {
    "auth": "10/minute",      # OAuth redirects, callbacks and refreshes
    "settle": "30/minute",    # each settlement writes two upstream documents
}


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Render a rate limit hit into the standard response envelope."""
    logger.warning(
        "rate_limit_exceeded",
        client=get_client_identifier(request),
        path=request.url.path,
        limit=str(exc.detail),
    )

    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": "Too many requests",
            "message": f"Rate limit {exc.detail} exceeded. Retry in {RETRY_AFTER_SECONDS} seconds.",
        },
        headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
    )


def auth_rate_limit():
    """Rate limit decorator for OAuth endpoints."""
    return limiter.limit(RATE_LIMITS["auth"])


def settle_rate_limit():
    """Rate limit decorator for the settlement endpoint."""
    return limiter.limit(RATE_LIMITS["settle"])
