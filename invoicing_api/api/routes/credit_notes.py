"""
Credit note routes.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from invoicing_api.api.dependencies import CompanyContext, get_company_context, get_invoice_service
from invoicing_api.schemas.api import ApiResponse, CreditNoteListResponse
from invoicing_api.schemas.quickbooks import CreditMemoEntity
from invoicing_api.services.invoicing import InvoiceService

router = APIRouter()


@router.get(
    "",
    response_model=ApiResponse[CreditNoteListResponse],
    response_model_exclude_none=True,
    summary="List credit notes",
)
async def list_credit_notes(
    max_results: Optional[int] = Query(None, alias="maxResults", ge=1, le=1000),
    context: CompanyContext = Depends(get_company_context),
    service: InvoiceService = Depends(get_invoice_service),
) -> ApiResponse[CreditNoteListResponse]:
    result = await service.list_credit_notes(context.company_id, context.access_token, max_results)
    return ApiResponse.ok(result)


@router.get(
    "/{credit_note_id}",
    response_model=ApiResponse[CreditMemoEntity],
    response_model_exclude_none=True,
    summary="Get credit note",
)
async def get_credit_note(
    credit_note_id: str,
    context: CompanyContext = Depends(get_company_context),
    service: InvoiceService = Depends(get_invoice_service),
) -> ApiResponse[CreditMemoEntity]:
    credit_memo = await service.get_credit_note(context.company_id, context.access_token, credit_note_id)
    return ApiResponse.ok(credit_memo)
