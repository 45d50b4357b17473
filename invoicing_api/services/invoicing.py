"""
Invoice and credit note operations.
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

import structlog

from invoicing_api.config import Settings
from invoicing_api.exceptions import ExternalServiceError, NotFoundError, ValidationError
from invoicing_api.schemas.api import CreditNoteListResponse, InvoiceListResponse, InvoiceSummary
from invoicing_api.schemas.quickbooks import (
    CreditMemoEntity,
    CreditMemoRequest,
    CustomerRequest,
    InvoiceEntity,
    InvoiceRequest,
    Reference,
)
from invoicing_api.services.quickbooks_client import QuickBooksClient
from invoicing_api.services.settlement import build_adjusted_lines
from invoicing_api.utils.cache import SimpleCache

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


def summarize_invoices(invoices: List[InvoiceEntity]) -> InvoiceSummary:
    """Totals for an invoice listing. An invoice is paid once its balance is 0."""
    summary = InvoiceSummary()
    for invoice in invoices:
        total = invoice.total_amt or ZERO
        balance = invoice.balance or ZERO
        summary.total_amount += total
        summary.total_balance += balance
        summary.paid_amount += total - balance
        if balance == ZERO:
            summary.paid_count += 1
        else:
            summary.unpaid_count += 1
    return summary


class InvoiceService:
    """Invoice and credit note operations for one QuickBooks company."""

    def __init__(self, client: QuickBooksClient, settings: Settings, cache: SimpleCache):
        self.client = client
        self.settings = settings
        self.cache = cache

    async def create_invoice(
        self, company_id: str, access_token: str, request: InvoiceRequest
    ) -> Tuple[InvoiceEntity, bool]:
        """
        Create an invoice, or return the existing one with the same DocNumber.

        Returns:
            (invoice, created) where created is False for a duplicate
        """
        if not request.line:
            raise ValidationError("Invoice must contain at least one line item")

        customer_ref = await self.resolve_customer(company_id, access_token, request.customer_ref)
        request = request.model_copy(update={"customer_ref": customer_ref})

        if request.doc_number:
            existing = await self.client.find_duplicate_invoice(
                company_id, access_token, request, customer_ref.value
            )
            if existing is not None:
                logger.info(
                    "invoice_duplicate_found",
                    company_id=company_id,
                    invoice_id=existing.id,
                    doc_number=request.doc_number,
                )
                return existing, False

        invoice = await self.client.create_invoice(company_id, access_token, request)
        if invoice is None:
            raise ExternalServiceError("quickbooks", "Failed to create invoice")

        logger.info("invoice_created", company_id=company_id, invoice_id=invoice.id, total=str(invoice.total_amt))
        return invoice, True

    async def resolve_customer(
        self, company_id: str, access_token: str, customer_ref: Optional[Reference]
    ) -> Reference:
        """
        Turn a customer reference into one carrying a QuickBooks customer ID.

        An ID is used as given. A name is looked up by display name and the
        customer is created when no match exists.
        """
        if customer_ref is not None and customer_ref.value:
            return customer_ref
        if customer_ref is None or not customer_ref.name:
            raise ValidationError("CustomerRef must include a customer id (value) or name")

        name = customer_ref.name
        cache_key = f"customer:{company_id}:{name}"
        customer_id = self.cache.get(cache_key)
        if customer_id is None:
            customer = await self.client.find_customer_by_name(company_id, access_token, name)
            if customer is None:
                customer = await self.client.create_customer(
                    company_id, access_token, CustomerRequest(display_name=name)
                )
                if customer is None or not customer.id:
                    raise ExternalServiceError("quickbooks", f"Failed to create customer '{name}'")
                logger.info("customer_created", company_id=company_id, customer_id=customer.id)
            customer_id = customer.id
            self.cache.cleanup_expired()
            self.cache.set(cache_key, customer_id, ttl_seconds=self.settings.customer_cache_ttl_seconds)

        return Reference(value=customer_id, name=name)

    async def list_invoices(
        self, company_id: str, access_token: str, max_results: Optional[int] = None
    ) -> InvoiceListResponse:
        invoices = await self.client.list_invoices(company_id, access_token, max_results)
        return InvoiceListResponse(
            invoices=invoices,
            count=len(invoices),
            summary=summarize_invoices(invoices),
        )

    async def get_invoice(self, company_id: str, access_token: str, invoice_id: str) -> InvoiceEntity:
        invoice = await self.client.get_invoice(company_id, access_token, invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice", invoice_id)
        return invoice

    async def create_credit_note(self, company_id: str, access_token: str, invoice_id: str) -> CreditMemoEntity:
        """Credit an invoice in full without recording a payment."""
        invoice = await self.get_invoice(company_id, access_token, invoice_id)

        lines = build_adjusted_lines(invoice.line, Decimal("1"), True)
        if not lines:
            raise ValidationError("Invoice has no sales item lines that can be credited")

        credit_memo = await self.client.create_credit_memo(
            company_id,
            access_token,
            CreditMemoRequest(
                customer_ref=invoice.customer_ref,
                line=lines,
                txn_date=date.today().isoformat(),
                private_note=f"Credit note for invoice {invoice.doc_number or invoice.id}",
            ),
        )
        if credit_memo is None:
            raise ExternalServiceError("quickbooks", "Failed to create credit memo")

        logger.info(
            "credit_note_created",
            company_id=company_id,
            invoice_id=invoice_id,
            credit_memo_id=credit_memo.id,
            total=str(credit_memo.total_amt),
        )
        return credit_memo

    async def list_credit_notes(
        self, company_id: str, access_token: str, max_results: Optional[int] = None
    ) -> CreditNoteListResponse:
        credit_notes = await self.client.list_credit_memos(company_id, access_token, max_results)
        return CreditNoteListResponse(credit_notes=credit_notes, count=len(credit_notes))

    async def get_credit_note(self, company_id: str, access_token: str, credit_note_id: str) -> CreditMemoEntity:
        credit_memo = await self.client.get_credit_memo(company_id, access_token, credit_note_id)
        if credit_memo is None:
            raise NotFoundError("Credit note", credit_note_id)
        return credit_memo
