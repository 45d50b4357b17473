"""
Invoice routes: create, list, fetch, settle and credit in full.
"""
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request, Response

from invoicing_api.api.dependencies import (
    CompanyContext,
    get_company_context,
    get_company_id,
    get_invoice_service,
    get_settlement_service,
)
from invoicing_api.middleware.rate_limit import settle_rate_limit
from invoicing_api.schemas.api import ApiResponse, InvoiceListResponse, SettlementRequest
from invoicing_api.schemas.quickbooks import CreditMemoEntity, InvoiceEntity, InvoiceRequest
from invoicing_api.services.invoicing import InvoiceService
from invoicing_api.services.settlement import SettlementService

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse[InvoiceEntity],
    response_model_exclude_none=True,
    status_code=201,
    summary="Create invoice",
    description=(
        "Create an invoice. A customer name is resolved to an existing QuickBooks customer "
        "or created. An existing invoice with the same DocNumber is returned with 200."
    ),
)
async def create_invoice(
    body: InvoiceRequest,
    response: Response,
    context: CompanyContext = Depends(get_company_context),
    service: InvoiceService = Depends(get_invoice_service),
) -> ApiResponse[InvoiceEntity]:
    invoice, created = await service.create_invoice(context.company_id, context.access_token, body)
    if not created:
        response.status_code = 200
        return ApiResponse.ok(invoice, message="Invoice with this DocNumber already exists")

    response.headers["Location"] = f"/api/invoices/{invoice.id}"
    return ApiResponse.ok(invoice)


@router.get(
    "",
    response_model=ApiResponse[InvoiceListResponse],
    response_model_exclude_none=True,
    summary="List invoices",
    description="List invoices with paid/unpaid totals.",
)
async def list_invoices(
    max_results: Optional[int] = Query(None, alias="maxResults", ge=1, le=1000),
    context: CompanyContext = Depends(get_company_context),
    service: InvoiceService = Depends(get_invoice_service),
) -> ApiResponse[InvoiceListResponse]:
    result = await service.list_invoices(context.company_id, context.access_token, max_results)
    return ApiResponse.ok(result)


@router.get(
    "/{invoice_id}",
    response_model=ApiResponse[InvoiceEntity],
    response_model_exclude_none=True,
    summary="Get invoice",
)
async def get_invoice(
    invoice_id: str,
    context: CompanyContext = Depends(get_company_context),
    service: InvoiceService = Depends(get_invoice_service),
) -> ApiResponse[InvoiceEntity]:
    invoice = await service.get_invoice(context.company_id, context.access_token, invoice_id)
    return ApiResponse.ok(invoice)


@router.post(
    "/{invoice_id}/settle",
    response_model=ApiResponse[CreditMemoEntity],
    response_model_exclude_none=True,
    status_code=201,
    summary="Settle invoice",
    description=(
        "Settle an invoice fully or partially with a credit memo and an applied payment. "
        "Amount defaults to the current balance."
    ),
)
@settle_rate_limit()
async def settle_invoice(
    request: Request,
    response: Response,
    invoice_id: str,
    body: Optional[SettlementRequest] = None,
    company_id: str = Depends(get_company_id),
    service: SettlementService = Depends(get_settlement_service),
) -> ApiResponse[CreditMemoEntity]:
    result = await service.settle(company_id, invoice_id, body or SettlementRequest())
    response.headers["Location"] = f"/api/credit-notes/{result.credit_memo.id}"
    return ApiResponse.ok(result.credit_memo, message=result.message)


@router.post(
    "/{invoice_id}/credit-note",
    response_model=ApiResponse[CreditMemoEntity],
    response_model_exclude_none=True,
    status_code=201,
    summary="Credit invoice",
    description="Create a credit memo for the full invoice without recording a payment.",
)
async def create_credit_note(
    invoice_id: str,
    response: Response,
    context: CompanyContext = Depends(get_company_context),
    service: InvoiceService = Depends(get_invoice_service),
) -> ApiResponse[CreditMemoEntity]:
    credit_memo = await service.create_credit_note(context.company_id, context.access_token, invoice_id)
    response.headers["Location"] = f"/api/credit-notes/{credit_memo.id}"
    return ApiResponse.ok(credit_memo)
