"""
Intuit OAuth2 token lifecycle.

Builds the authorization redirect, exchanges authorization codes and refresh
tokens at the Intuit token endpoint, and hands out access tokens that are
refreshed automatically shortly before they expire.
"""
import asyncio
import base64
import secrets
import weakref
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional
from urllib.parse import urlencode

import httpx
import structlog

from invoicing_api.config import Settings
from invoicing_api.services.token_store import TokenRecord, TokenStore, utcnow

logger = structlog.get_logger(__name__)

# Intuit access tokens live about an hour; refresh when less than this remains.
TOKEN_REFRESH_BUFFER = timedelta(minutes=5)


class IntuitOAuthService:
    """OAuth2 client for Intuit with per-company token refresh."""

    def __init__(
        self,
        settings: Settings,
        token_store: TokenStore,
        http_client: httpx.AsyncClient,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the OAuth service.

        Args:
            settings: Application settings with client credentials and URLs
            token_store: Where token records are read from and written to
            http_client: Shared async HTTP client
            clock: Source of the current UTC time
        """
        self.settings = settings
        self.token_store = token_store
        self.http_client = http_client
        self.clock = clock
        # Locks live only while some caller holds or waits on them.
        self._refresh_locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    def build_authorization_url(self, state: Optional[str] = None) -> str:
        """
        Build the Intuit authorization URL.

        Args:
            state: CSRF state parameter; a random one is generated when omitted.
                Validating it on callback is the caller's job.

        Returns:
            Full authorization URL
        """
        params = {
            "client_id": self.settings.intuit_client_id,
            "scope": self.settings.intuit_scopes,
            "redirect_uri": self.settings.intuit_redirect_uri,
            "response_type": "code",
            "state": state or secrets.token_urlsafe(32),
        }
        return f"{self.settings.intuit_authorization_url}?{urlencode(params)}"

    async def exchange_code_for_tokens(self, code: str, company_id: str) -> Optional[TokenRecord]:
        """
        Exchange an authorization code for tokens and store them.

        Returns:
            The stored record, or None if Intuit rejected the exchange
        """
        record = await self._request_tokens(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.settings.intuit_redirect_uri,
            }
        )
        if record is None:
            logger.warning("token_exchange_failed", company_id=company_id)
            return None

        self.store_tokens(company_id, record)
        return record

    def store_tokens(self, company_id: str, record: TokenRecord) -> None:
        self.token_store.put(company_id, record)
        logger.info("tokens_stored", company_id=company_id, expires_in=record.expires_in)

    async def refresh_tokens(self, refresh_token: str) -> Optional[TokenRecord]:
        """
        Exchange a refresh token for new tokens.

        The result is not stored; callers decide where it belongs.
        """
        if not refresh_token:
            return None
        return await self._request_tokens(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }
        )

    async def get_or_refresh(self, company_id: str) -> Optional[TokenRecord]:
        """
        Return usable tokens for a company, refreshing them when close to expiry.

        Returns None when the company was never authorized or the refresh
        failed; either way the user has to go through /auth/authorize again.
        """
        record = self.token_store.get(company_id)
        if record is None:
            return None
        if not record.expires_within(TOKEN_REFRESH_BUFFER, self.clock()):
            return record

        # One refresh per company at a time; latecomers reuse its result.
        lock = self._refresh_locks.get(company_id)
        if lock is None:
            lock = self._refresh_locks[company_id] = asyncio.Lock()
        async with lock:
            record = self.token_store.get(company_id)
            if record is None:
                return None
            if not record.expires_within(TOKEN_REFRESH_BUFFER, self.clock()):
                return record

            if not record.refresh_token:
                logger.warning("token_refresh_unavailable", company_id=company_id)
                return None

            refreshed = await self.refresh_tokens(record.refresh_token)
            if refreshed is None:
                logger.warning("token_refresh_failed", company_id=company_id)
                return None

            self.token_store.put(company_id, refreshed)
            logger.info("token_refreshed", company_id=company_id, expires_in=refreshed.expires_in)
            return refreshed

    def _basic_auth_header(self) -> str:
        credentials = base64.b64encode(
            f"{self.settings.intuit_client_id}:{self.settings.intuit_client_secret}".encode()
        ).decode()
        return f"Basic {credentials}"

    async def _request_tokens(self, form: Dict[str, str]) -> Optional[TokenRecord]:
        try:
            response = await self.http_client.post(
                self.settings.intuit_token_url,
                headers={
                    "Authorization": self._basic_auth_header(),
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Accept": "application/json",
                },
                data=form,
                timeout=self.settings.http_timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.error("token_endpoint_unreachable", grant_type=form["grant_type"], error=str(e))
            return None

        if not response.is_success:
            logger.warning(
                "token_endpoint_rejected",
                grant_type=form["grant_type"],
                status_code=response.status_code,
                body=response.text[:500],
            )
            return None

        try:
            payload = response.json()
        except ValueError as e:
            logger.error("token_endpoint_invalid_json", grant_type=form["grant_type"], error=str(e))
            return None

        record = TokenRecord.from_token_response(payload, now=self.clock())
        if not record.access_token:
            logger.warning("token_endpoint_missing_access_token", grant_type=form["grant_type"])
            return None
        return record
