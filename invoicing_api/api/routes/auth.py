"""
Intuit OAuth routes.

Starts the authorization flow, handles the Intuit callback and exchanges
refresh tokens on demand.
"""
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from invoicing_api.api.dependencies import get_oauth_service
from invoicing_api.api.pages import oauth_error_page, oauth_success_page
from invoicing_api.exceptions import ValidationError
from invoicing_api.middleware.rate_limit import auth_rate_limit
from invoicing_api.schemas.api import ApiResponse, RefreshTokenRequest
from invoicing_api.services.oauth import IntuitOAuthService

logger = structlog.get_logger(__name__)

router = APIRouter()

RETRY_SUGGESTION = "Please try the authorization flow again."


@router.get(
    "/authorize",
    status_code=302,
    summary="Start OAuth authorization",
    description="Redirect to the Intuit consent screen.",
)
@auth_rate_limit()
async def authorize(
    request: Request,
    state: Optional[str] = Query(None, description="Opaque CSRF state echoed back on callback"),
    oauth_service: IntuitOAuthService = Depends(get_oauth_service),
) -> RedirectResponse:
    url = oauth_service.build_authorization_url(state)
    logger.info("oauth_authorization_started")
    return RedirectResponse(url, status_code=302)


@router.get(
    "/callback",
    response_class=HTMLResponse,
    summary="OAuth callback",
    description="Exchange the authorization code for tokens and show the company ID.",
)
@auth_rate_limit()
async def callback(
    request: Request,
    code: Optional[str] = Query(None),
    realm_id: Optional[str] = Query(None, alias="realmId", description="QuickBooks company ID"),
    error: Optional[str] = Query(None, description="Set by Intuit when the user declines"),
    oauth_service: IntuitOAuthService = Depends(get_oauth_service),
) -> HTMLResponse:
    if error:
        logger.warning("oauth_callback_denied", error=error)
        return HTMLResponse(oauth_error_page(f"Intuit returned an error: {error}", RETRY_SUGGESTION), status_code=400)

    if not code or not realm_id:
        logger.warning("oauth_callback_incomplete", has_code=bool(code), has_realm_id=bool(realm_id))
        return HTMLResponse(oauth_error_page("Missing code or realmId", RETRY_SUGGESTION), status_code=400)

    tokens = await oauth_service.exchange_code_for_tokens(code, realm_id)
    if tokens is None:
        return HTMLResponse(
            oauth_error_page("Failed to exchange code for tokens", RETRY_SUGGESTION), status_code=400
        )

    logger.info("oauth_callback_completed", company_id=realm_id)
    return HTMLResponse(oauth_success_page(realm_id, str(request.base_url), tokens.expires_in))


@router.post(
    "/refresh",
    response_model=ApiResponse[Dict[str, Any]],
    response_model_exclude_none=True,
    summary="Refresh tokens",
    description="Exchange a refresh token for new tokens, storing them when companyId is given.",
)
@auth_rate_limit()
async def refresh(
    request: Request,
    body: RefreshTokenRequest,
    company_id: Optional[str] = Query(None, alias="companyId"),
    oauth_service: IntuitOAuthService = Depends(get_oauth_service),
) -> ApiResponse[Dict[str, Any]]:
    if not body.refresh_token:
        raise ValidationError("Refresh token is required")

    tokens = await oauth_service.refresh_tokens(body.refresh_token)
    if tokens is None:
        raise ValidationError("Failed to refresh token")

    if company_id:
        oauth_service.store_tokens(company_id, tokens)

    return ApiResponse.ok(tokens.to_dict())
