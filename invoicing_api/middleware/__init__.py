"""
Middleware module initialization.
"""
from invoicing_api.middleware.logging import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    get_correlation_id,
    redact_sensitive_data,
    log_performance,
    add_correlation_id_processor,
    redact_sensitive_processor,
)
from invoicing_api.middleware.rate_limit import (
    limiter,
    rate_limit_exceeded_handler,
    auth_rate_limit,
    settle_rate_limit,
    RATE_LIMITS,
)
from invoicing_api.middleware.security import SecurityHeadersMiddleware, get_cors_origins

__all__ = [
    "CorrelationIdMiddleware",
    "RequestLoggingMiddleware",
    "get_correlation_id",
    "redact_sensitive_data",
    "log_performance",
    "add_correlation_id_processor",
    "redact_sensitive_processor",
    "limiter",
    "rate_limit_exceeded_handler",
    "auth_rate_limit",
    "settle_rate_limit",
    "RATE_LIMITS",
    "SecurityHeadersMiddleware",
    "get_cors_origins",
]
