"""
QuickBooks-backed services: token storage, OAuth, API client, invoicing and
settlement.
"""
from invoicing_api.services.invoicing import InvoiceService
from invoicing_api.services.oauth import IntuitOAuthService
from invoicing_api.services.quickbooks_client import QuickBooksClient
from invoicing_api.services.settlement import SettlementService
from invoicing_api.services.token_store import FileTokenStore, InMemoryTokenStore, TokenRecord, TokenStore

__all__ = [
    "InvoiceService",
    "IntuitOAuthService",
    "QuickBooksClient",
    "SettlementService",
    "FileTokenStore",
    "InMemoryTokenStore",
    "TokenRecord",
    "TokenStore",
]
