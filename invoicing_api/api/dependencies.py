"""
FastAPI dependencies.

Long-lived collaborators (HTTP client, token store, OAuth service, QuickBooks
client) are process singletons; the per-request services wrap them.
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import httpx
from fastapi import Depends, Query

from invoicing_api.config import Settings, get_settings
from invoicing_api.exceptions import AuthenticationRequiredError, ValidationError
from invoicing_api.services.invoicing import InvoiceService
from invoicing_api.services.oauth import IntuitOAuthService
from invoicing_api.services.quickbooks_client import QuickBooksClient
from invoicing_api.services.settlement import SettlementService
from invoicing_api.services.token_store import FileTokenStore, TokenStore
from invoicing_api.utils.cache import cache


@lru_cache
def get_http_client() -> httpx.AsyncClient:
    """Shared outbound HTTP client."""
    return httpx.AsyncClient(timeout=get_settings().http_timeout_seconds)


@lru_cache
def get_token_store() -> TokenStore:
    return FileTokenStore(get_settings().token_file_path)


@lru_cache
def get_oauth_service() -> IntuitOAuthService:
    # One instance so concurrent requests share the per-company refresh locks.
    return IntuitOAuthService(get_settings(), get_token_store(), get_http_client())


@lru_cache
def get_quickbooks_client() -> QuickBooksClient:
    return QuickBooksClient(get_settings(), get_http_client())


def get_invoice_service(
    client: QuickBooksClient = Depends(get_quickbooks_client),
    settings: Settings = Depends(get_settings),
) -> InvoiceService:
    return InvoiceService(client, settings, cache)


def get_settlement_service(
    client: QuickBooksClient = Depends(get_quickbooks_client),
    oauth_service: IntuitOAuthService = Depends(get_oauth_service),
    settings: Settings = Depends(get_settings),
) -> SettlementService:
    return SettlementService(client, oauth_service, settings)


def get_company_id(
    company_id: Optional[str] = Query(None, alias="companyId", description="QuickBooks company (realm) ID"),
) -> str:
    """
    Require the companyId query parameter.

    Raises:
        ValidationError: parameter missing or blank
    """
    if not company_id or not company_id.strip():
        raise ValidationError("companyId is required")
    return company_id.strip()


@dataclass(frozen=True)
class CompanyContext:
    """A company together with a currently valid access token."""

    company_id: str
    access_token: str


async def get_company_context(
    company_id: str = Depends(get_company_id),
    oauth_service: IntuitOAuthService = Depends(get_oauth_service),
) -> CompanyContext:
    """
    Resolve usable OAuth tokens for the requested company.

    Raises:
        AuthenticationRequiredError: never authorized, or refresh failed
    """
    tokens = await oauth_service.get_or_refresh(company_id)
    if tokens is None or not tokens.access_token:
        raise AuthenticationRequiredError(company_id)
    return CompanyContext(company_id=company_id, access_token=tokens.access_token)
