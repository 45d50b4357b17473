"""
Pydantic schemas for the inbound API.

Defines the uniform response envelope and the request/response bodies that
are not straight QuickBooks entities.
"""
from decimal import Decimal
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from invoicing_api.schemas.quickbooks import CreditMemoEntity, InvoiceEntity, Money

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Standard envelope for every API response."""

    success: bool = Field(..., description="Whether the request succeeded")
    data: Optional[T] = Field(None, description="Payload on success")
    error: Optional[str] = Field(None, description="Error description on failure")
    message: Optional[str] = Field(None, description="Additional human-readable context")

    @classmethod
    def ok(cls, data: T, message: Optional[str] = None) -> "ApiResponse[T]":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str, message: Optional[str] = None) -> "ApiResponse[T]":
        return cls(success=False, error=error, message=message)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SettlementRequest(BaseModel):
    """Request to settle (fully or partially) an invoice."""

    model_config = ConfigDict(populate_by_name=True)

    amount: Optional[Decimal] = Field(
        None, alias="Amount", description="Amount to settle; defaults to the invoice balance"
    )
    txn_date: Optional[str] = Field(None, alias="TxnDate", description="Transaction date (YYYY-MM-DD)")
    description: Optional[str] = Field(None, alias="Description", description="Private note for the credit memo")


class RefreshTokenRequest(CamelModel):
    """Request to exchange a refresh token for new tokens."""
    refresh_token: str = ""


class InvoiceSummary(CamelModel):
    """Aggregates over a list of invoices."""
    total_amount: Money = Decimal("0")
    total_balance: Money = Decimal("0")
    paid_amount: Money = Decimal("0")
    paid_count: int = 0
    unpaid_count: int = 0


class InvoiceListResponse(CamelModel):
    invoices: List[InvoiceEntity] = Field(default_factory=list)
    count: int = 0
    summary: InvoiceSummary = Field(default_factory=InvoiceSummary)


class CreditNoteListResponse(CamelModel):
    credit_notes: List[CreditMemoEntity] = Field(default_factory=list)
    count: int = 0


class QuickBooksHealth(CamelModel):
    """Upstream connectivity report for /health/quickbooks."""
    status: str
    environment: str
    base_url: str
    configured: bool
    company_id: Optional[str] = None
    connected: bool = False
    company_name: Optional[str] = None
    detail: Optional[str] = None
