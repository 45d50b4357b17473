"""
Health check routes.
"""
from datetime import datetime, timezone
from typing import Optional

import httpx
import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from invoicing_api import __version__
from invoicing_api.api.dependencies import get_oauth_service, get_quickbooks_client
from invoicing_api.config import Settings, get_settings
from invoicing_api.exceptions import InvoicingAPIError
from invoicing_api.schemas.api import ApiResponse, QuickBooksHealth
from invoicing_api.services.oauth import IntuitOAuthService
from invoicing_api.services.quickbooks_client import QuickBooksClient

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("", summary="Service health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get(
    "/quickbooks",
    response_model=ApiResponse[QuickBooksHealth],
    response_model_exclude_none=True,
    summary="QuickBooks connectivity",
    description=(
        "Report OAuth configuration and, when companyId is given, whether the company's "
        "QuickBooks API answers. Responds 503 when QuickBooks is unreachable."
    ),
)
async def quickbooks_health(
    company_id: Optional[str] = Query(None, alias="companyId"),
    settings: Settings = Depends(get_settings),
    oauth_service: IntuitOAuthService = Depends(get_oauth_service),
    client: QuickBooksClient = Depends(get_quickbooks_client),
):
    health = QuickBooksHealth(
        status="configured" if settings.oauth_configured else "not_configured",
        environment=settings.intuit_environment,
        base_url=settings.quickbooks_base_url,
        configured=settings.oauth_configured,
        company_id=company_id or None,
    )
    if not company_id:
        return ApiResponse.ok(health)

    tokens = await oauth_service.get_or_refresh(company_id)
    if tokens is None:
        health.status = "not_authorized"
        health.detail = "No usable OAuth tokens for this company; visit /auth/authorize"
        return ApiResponse.ok(health)

    try:
        info = await client.get_company_info(company_id, tokens.access_token)
    except (InvoicingAPIError, httpx.HTTPError) as e:
        logger.warning("quickbooks_health_check_failed", company_id=company_id, error=str(e))
        health.status = "unreachable"
        health.detail = str(e)
        envelope = ApiResponse.fail("QuickBooks API is unreachable")
        envelope.data = health
        return JSONResponse(
            status_code=503,
            content=envelope.model_dump(mode="json", by_alias=True, exclude_none=True),
        )

    health.status = "connected"
    health.connected = True
    health.company_name = info.get("CompanyName")
    return ApiResponse.ok(health)
