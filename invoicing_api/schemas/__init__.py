"""
Request/response schemas.
"""
from invoicing_api.schemas.api import (
    ApiResponse,
    CreditNoteListResponse,
    InvoiceListResponse,
    InvoiceSummary,
    QuickBooksHealth,
    RefreshTokenRequest,
    SettlementRequest,
)
from invoicing_api.schemas.quickbooks import (
    CreditMemoEntity,
    CreditMemoRequest,
    CustomerEntity,
    CustomerRequest,
    InvoiceEntity,
    InvoiceRequest,
    LineItem,
    LinkedTransaction,
    PaymentEntity,
    PaymentLine,
    PaymentRequest,
    Reference,
    SalesItemLineDetail,
)

__all__ = [
    "ApiResponse",
    "CreditNoteListResponse",
    "InvoiceListResponse",
    "InvoiceSummary",
    "QuickBooksHealth",
    "RefreshTokenRequest",
    "SettlementRequest",
    "CreditMemoEntity",
    "CreditMemoRequest",
    "CustomerEntity",
    "CustomerRequest",
    "InvoiceEntity",
    "InvoiceRequest",
    "LineItem",
    "LinkedTransaction",
    "PaymentEntity",
    "PaymentLine",
    "PaymentRequest",
    "Reference",
    "SalesItemLineDetail",
]
