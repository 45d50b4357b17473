"""
FastAPI application entry point.

Configures the application with routes, middleware, and settings.
"""
import logging
import os
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

# Initialize Sentry for error tracking (must be done early)
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from invoicing_api import __version__

sentry_dsn = os.getenv("SENTRY_DSN")
if sentry_dsn:
    sentry_sdk.init(
        dsn=sentry_dsn,
        environment=os.getenv("ENVIRONMENT", "development"),
        release=os.getenv("APP_VERSION", __version__),
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1")),
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            LoggingIntegration(level=None, event_level="ERROR"),
        ],
        # Don't send PII by default
        send_default_pii=False,
        before_send=lambda event, hint: _filter_sensitive_data(event),
    )


def _filter_sensitive_data(event: dict) -> dict:
    """Filter OAuth credentials from Sentry events before sending."""
    sensitive_keys = {"token", "secret", "authorization", "code", "password"}

    def _redact(obj):
        if isinstance(obj, dict):
            return {
                k: "[REDACTED]" if any(s in k.lower() for s in sensitive_keys) else _redact(v)
                for k, v in obj.items()
            }
        elif isinstance(obj, list):
            return [_redact(item) for item in obj]
        return obj

    if "request" in event:
        for key in ("data", "query_string", "headers"):
            if key in event["request"]:
                event["request"][key] = _redact(event["request"][key])
    if "extra" in event:
        event["extra"] = _redact(event["extra"])

    return event


from invoicing_api.api import dependencies
from invoicing_api.api.routes import auth, credit_notes, health, invoices
from invoicing_api.config import get_settings
from invoicing_api.exceptions import InvoicingAPIError
from invoicing_api.middleware.logging import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    add_correlation_id_processor,
    redact_sensitive_processor,
)
from invoicing_api.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from invoicing_api.middleware.security import SecurityHeadersMiddleware, get_cors_origins

settings = get_settings()

logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

# Configure structured logging with enhanced processors
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        add_correlation_id_processor,  # Add correlation ID to all logs
        redact_sensitive_processor,     # Redact tokens, secrets, auth codes
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Intuit Invoicing API",
    description="""
## QuickBooks Online invoicing backend

Create invoices, issue credit notes and settle invoices (fully or partially)
in QuickBooks Online on behalf of connected companies.

### Getting started

1. Visit `/auth/authorize` and connect a QuickBooks company.
2. Note the company ID shown on the callback page.
3. Pass it as `companyId` on every `/api` call.

Every API response uses the envelope `{success, data, error, message}`.
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Authentication", "description": "Intuit OAuth authorization and token refresh"},
        {"name": "Invoices", "description": "Invoice creation, lookup and settlement"},
        {"name": "CreditNotes", "description": "Credit memos issued against invoices"},
        {"name": "Health", "description": "Service and QuickBooks connectivity checks"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(settings),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID", "Location"],
)

app.add_middleware(SecurityHeadersMiddleware)

# Add logging middleware (order matters: correlation ID first)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)

# Add GZip compression for responses > 1KB
app.add_middleware(GZipMiddleware, minimum_size=1000)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(invoices.router, prefix="/api/invoices", tags=["Invoices"])
app.include_router(credit_notes.router, prefix="/api/credit-notes", tags=["CreditNotes"])
app.include_router(health.router, prefix="/health", tags=["Health"])


# Global Exception Handlers

@app.exception_handler(InvoicingAPIError)
async def invoicing_exception_handler(request: Request, exc: InvoicingAPIError):
    """Render invoicing API errors into the response envelope."""
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        "invoicing_api_error",
        error_code=exc.error_code,
        message=exc.message,
        details=exc.details,
        path=str(request.url.path),
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and query parameters are client errors."""
    errors = exc.errors()
    logger.info("request_validation_failed", path=str(request.url.path), errors=len(errors))
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    detail = f"{location}: {first.get('msg')}" if location else first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Invalid request", "message": detail},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions with consistent format."""
    sentry_sdk.capture_exception(exc)

    logger.exception(
        "unhandled_error",
        error_type=type(exc).__name__,
        message=str(exc),
        path=str(request.url.path),
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "An unexpected error occurred. Please try again.",
            **({"message": f"{type(exc).__name__}: {exc}"} if settings.debug else {}),
        },
    )


@app.on_event("startup")
async def startup_event() -> None:
    """Initialize application on startup."""
    logger.info(
        "Starting Intuit Invoicing API",
        environment=settings.intuit_environment,
        base_url=settings.quickbooks_base_url,
        debug=settings.debug,
    )

    if sentry_dsn:
        logger.info("Sentry error tracking enabled", environment=os.getenv("ENVIRONMENT", "development"))
    else:
        logger.warning("Sentry error tracking not configured (SENTRY_DSN not set)")

    if not settings.oauth_configured:
        logger.warning("Intuit OAuth credentials not configured (INTUIT_CLIENT_ID / INTUIT_CLIENT_SECRET)")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """Flush pending token writes and close the outbound HTTP client."""
    logger.info("Shutting down Intuit Invoicing API")

    if dependencies.get_token_store.cache_info().currsize:
        dependencies.get_token_store().close()
    if dependencies.get_http_client.cache_info().currsize:
        await dependencies.get_http_client().aclose()
