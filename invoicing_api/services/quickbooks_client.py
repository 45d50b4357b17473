"""
QuickBooks Online accounting API client.

Thin async wrapper over the v3 REST endpoints used by the invoicing API.
Every call takes the company (realm) ID and a bearer access token; token
lifecycle lives in invoicing_api.services.oauth.
"""
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
import structlog

from invoicing_api.config import Settings
from invoicing_api.exceptions import ExternalServiceError, QuickBooksAPIError
from invoicing_api.schemas.quickbooks import (
    CreditMemoEntity,
    CreditMemoRequest,
    CustomerEntity,
    CustomerRequest,
    InvoiceEntity,
    InvoiceRequest,
    PaymentEntity,
    PaymentRequest,
    QuickBooksModel,
    compute_line_amounts,
)

logger = structlog.get_logger(__name__)

EntityT = TypeVar("EntityT", bound=QuickBooksModel)

# QuickBooks answers 400 "Object Not Found" as often as 404.
NOT_FOUND_STATUSES = {400, 404}


def quote_literal(value: str) -> str:
    """Escape a value for use inside a QuickBooks query string literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class QuickBooksClient:
    """Client for the QuickBooks Online accounting API."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self.settings = settings
        self.http_client = http_client

    @property
    def api_base_url(self) -> str:
        return self.settings.quickbooks_base_url

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    async def create_invoice(
        self, company_id: str, access_token: str, request: InvoiceRequest
    ) -> Optional[InvoiceEntity]:
        """Create an invoice. Line amounts are recomputed before sending."""
        payload = request.model_copy(update={"line": compute_line_amounts(request.line)})
        data = await self._request("POST", company_id, "invoice", access_token, json=payload.to_payload())
        return self._entity(data, "Invoice", InvoiceEntity)

    async def get_invoice(self, company_id: str, access_token: str, invoice_id: str) -> Optional[InvoiceEntity]:
        """Fetch an invoice by ID; None when it does not exist."""
        data = await self._request(
            "GET", company_id, f"invoice/{invoice_id}", access_token, allow_not_found=True
        )
        return self._entity(data, "Invoice", InvoiceEntity)

    async def list_invoices(
        self, company_id: str, access_token: str, max_results: Optional[int] = None
    ) -> List[InvoiceEntity]:
        query = "SELECT * FROM Invoice"
        if max_results and max_results > 0:
            query += f" MAXRESULTS {max_results}"
        return await self._query(company_id, access_token, query, "Invoice", InvoiceEntity)

    async def find_duplicate_invoice(
        self,
        company_id: str,
        access_token: str,
        request: InvoiceRequest,
        customer_id: str,
    ) -> Optional[InvoiceEntity]:
        """
        Find an existing invoice matching customer, doc number and date.

        With a doc number only an exact doc number match counts; otherwise
        the most recent invoice for the customer (and date) is returned.
        """
        clauses = [f"CustomerRef = '{quote_literal(customer_id)}'"]
        if request.doc_number:
            clauses.append(f"DocNumber = '{quote_literal(request.doc_number)}'")
        if request.txn_date:
            clauses.append(f"TxnDate = '{quote_literal(request.txn_date)}'")

        query = f"SELECT * FROM Invoice WHERE {' AND '.join(clauses)}"
        invoices = await self._query(company_id, access_token, query, "Invoice", InvoiceEntity)
        if not invoices:
            return None

        if request.doc_number:
            return next((i for i in invoices if i.doc_number == request.doc_number), None)
        return max(invoices, key=lambda i: i.txn_date or "")

    # ------------------------------------------------------------------
    # Credit memos
    # ------------------------------------------------------------------

    async def create_credit_memo(
        self, company_id: str, access_token: str, request: CreditMemoRequest
    ) -> Optional[CreditMemoEntity]:
        """Create a credit memo. Amounts are positive; QuickBooks treats them as credits."""
        payload = request.model_copy(update={"line": compute_line_amounts(request.line)})
        data = await self._request("POST", company_id, "creditmemo", access_token, json=payload.to_payload())
        return self._entity(data, "CreditMemo", CreditMemoEntity)

    async def get_credit_memo(
        self, company_id: str, access_token: str, credit_memo_id: str
    ) -> Optional[CreditMemoEntity]:
        data = await self._request(
            "GET", company_id, f"creditmemo/{credit_memo_id}", access_token, allow_not_found=True
        )
        return self._entity(data, "CreditMemo", CreditMemoEntity)

    async def list_credit_memos(
        self, company_id: str, access_token: str, max_results: Optional[int] = None
    ) -> List[CreditMemoEntity]:
        query = "SELECT * FROM CreditMemo"
        if max_results and max_results > 0:
            query += f" MAXRESULTS {max_results}"
        return await self._query(company_id, access_token, query, "CreditMemo", CreditMemoEntity)

    # ------------------------------------------------------------------
    # Payments and customers
    # ------------------------------------------------------------------

    async def create_payment(
        self, company_id: str, access_token: str, request: PaymentRequest
    ) -> Optional[PaymentEntity]:
        data = await self._request("POST", company_id, "payment", access_token, json=request.to_payload())
        return self._entity(data, "Payment", PaymentEntity)

    async def find_customer_by_name(
        self, company_id: str, access_token: str, display_name: str
    ) -> Optional[CustomerEntity]:
        query = f"SELECT * FROM Customer WHERE DisplayName = '{quote_literal(display_name)}'"
        customers = await self._query(company_id, access_token, query, "Customer", CustomerEntity)
        return customers[0] if customers else None

    async def create_customer(
        self, company_id: str, access_token: str, request: CustomerRequest
    ) -> Optional[CustomerEntity]:
        data = await self._request("POST", company_id, "customer", access_token, json=request.to_payload())
        return self._entity(data, "Customer", CustomerEntity)

    async def get_company_info(self, company_id: str, access_token: str) -> Dict[str, Any]:
        """Get connected company information."""
        data = await self._request("GET", company_id, f"companyinfo/{company_id}", access_token)
        return (data or {}).get("CompanyInfo", {})

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _query(
        self,
        company_id: str,
        access_token: str,
        query: str,
        entity_name: str,
        model: Type[EntityT],
    ) -> List[EntityT]:
        data = await self._request("GET", company_id, "query", access_token, params={"query": query})
        rows = (data or {}).get("QueryResponse", {}).get(entity_name, [])
        return [model.model_validate(row) for row in rows]

    @staticmethod
    def _entity(data: Optional[Dict[str, Any]], key: str, model: Type[EntityT]) -> Optional[EntityT]:
        if not data or not data.get(key):
            return None
        return model.model_validate(data[key])

    async def _request(
        self,
        method: str,
        company_id: str,
        endpoint: str,
        access_token: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """
        Make an authenticated API request.

        Args:
            method: HTTP method
            company_id: QuickBooks realm ID
            endpoint: Path below /v3/company/{company_id}/
            access_token: Bearer token
            json: Request body
            params: Query parameters
            allow_not_found: Return None instead of raising on 400/404

        Returns:
            Response JSON data

        Raises:
            QuickBooksAPIError: non-success response
            ExternalServiceError: connection failure or timeout
        """
        url = f"{self.api_base_url}/v3/company/{company_id}/{endpoint}"
        query_params = dict(params or {})
        if self.settings.quickbooks_minor_version:
            query_params["minorversion"] = self.settings.quickbooks_minor_version

        try:
            response = await self.http_client.request(
                method=method,
                url=url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                },
                json=json,
                params=query_params or None,
                timeout=self.settings.http_timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.error(
                "quickbooks_unreachable",
                method=method,
                endpoint=endpoint,
                company_id=company_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ExternalServiceError("quickbooks", f"QuickBooks API is unreachable: {e}") from e

        if response.is_success:
            return response.json()

        if allow_not_found and response.status_code in NOT_FOUND_STATUSES:
            logger.info(
                "quickbooks_entity_not_found",
                endpoint=endpoint,
                company_id=company_id,
                status_code=response.status_code,
            )
            return None

        logger.error(
            "quickbooks_api_error",
            method=method,
            endpoint=endpoint,
            company_id=company_id,
            status_code=response.status_code,
            body=response.text[:1000],
        )
        raise QuickBooksAPIError(response.status_code, response.text)
