"""
Pydantic models mirroring QuickBooks Online entities.

Field aliases are the upstream PascalCase names, so the same models parse
upstream responses, accept inbound API bodies, and serialize outbound
payloads. Unknown upstream fields are kept (``extra="allow"``) and passed
through untouched.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

SALES_ITEM_LINE_DETAIL = "SalesItemLineDetail"
CENT = Decimal("0.01")

# Decimals travel as JSON numbers; QuickBooks rejects quoted amounts.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


def round_money(value: Decimal) -> Decimal:
    """Round a monetary value to cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class QuickBooksModel(BaseModel):
    """Base for upstream entities."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the upstream JSON shape, dropping unset fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Reference(QuickBooksModel):
    """Reference to another QuickBooks entity (customer, item, ...)."""
    value: Optional[str] = None
    name: Optional[str] = None


class SalesItemLineDetail(QuickBooksModel):
    """Quantity and price details for a sales item line."""
    item_ref: Optional[Reference] = Field(None, alias="ItemRef")
    qty: Optional[Money] = Field(None, alias="Qty")
    unit_price: Optional[Money] = Field(None, alias="UnitPrice")


class LineItem(QuickBooksModel):
    """Invoice or credit memo line."""
    detail_type: str = Field(SALES_ITEM_LINE_DETAIL, alias="DetailType")
    amount: Optional[Money] = Field(None, alias="Amount")
    description: Optional[str] = Field(None, alias="Description")
    sales_item_line_detail: Optional[SalesItemLineDetail] = Field(None, alias="SalesItemLineDetail")

    @property
    def is_sales_item(self) -> bool:
        return self.detail_type == SALES_ITEM_LINE_DETAIL and self.sales_item_line_detail is not None

    def with_computed_amount(self) -> "LineItem":
        """Copy of the line with Amount = UnitPrice * Qty when both are known."""
        detail = self.sales_item_line_detail
        if (
            self.detail_type != SALES_ITEM_LINE_DETAIL
            or detail is None
            or detail.unit_price is None
            or detail.qty is None
        ):
            return self
        return self.model_copy(update={"amount": round_money(detail.unit_price * detail.qty)})


def compute_line_amounts(lines: Optional[List[LineItem]]) -> Optional[List[LineItem]]:
    """Recompute sales item line amounts ahead of an outbound send."""
    if lines is None:
        return None
    return [line.with_computed_amount() for line in lines]


class InvoiceRequest(QuickBooksModel):
    """Request body for creating an invoice."""
    customer_ref: Optional[Reference] = Field(None, alias="CustomerRef")
    line: Optional[List[LineItem]] = Field(None, alias="Line")
    doc_number: Optional[str] = Field(None, alias="DocNumber")
    txn_date: Optional[str] = Field(None, alias="TxnDate")
    due_date: Optional[str] = Field(None, alias="DueDate")


class InvoiceEntity(QuickBooksModel):
    """Invoice as returned by QuickBooks."""
    id: Optional[str] = Field(None, alias="Id")
    sync_token: Optional[str] = Field(None, alias="SyncToken")
    customer_ref: Optional[Reference] = Field(None, alias="CustomerRef")
    line: Optional[List[LineItem]] = Field(None, alias="Line")
    total_amt: Optional[Money] = Field(None, alias="TotalAmt")
    balance: Optional[Money] = Field(None, alias="Balance")
    doc_number: Optional[str] = Field(None, alias="DocNumber")
    txn_date: Optional[str] = Field(None, alias="TxnDate")
    due_date: Optional[str] = Field(None, alias="DueDate")


class CreditMemoRequest(QuickBooksModel):
    """Request body for creating a credit memo."""
    customer_ref: Optional[Reference] = Field(None, alias="CustomerRef")
    line: Optional[List[LineItem]] = Field(None, alias="Line")
    doc_number: Optional[str] = Field(None, alias="DocNumber")
    txn_date: Optional[str] = Field(None, alias="TxnDate")
    private_note: Optional[str] = Field(None, alias="PrivateNote")


class CreditMemoEntity(QuickBooksModel):
    """Credit memo as returned by QuickBooks."""
    id: Optional[str] = Field(None, alias="Id")
    sync_token: Optional[str] = Field(None, alias="SyncToken")
    customer_ref: Optional[Reference] = Field(None, alias="CustomerRef")
    line: Optional[List[LineItem]] = Field(None, alias="Line")
    total_amt: Optional[Money] = Field(None, alias="TotalAmt")
    balance: Optional[Money] = Field(None, alias="Balance")
    doc_number: Optional[str] = Field(None, alias="DocNumber")
    txn_date: Optional[str] = Field(None, alias="TxnDate")
    private_note: Optional[str] = Field(None, alias="PrivateNote")


class LinkedTransaction(QuickBooksModel):
    """Transaction a payment line applies to."""
    txn_id: Optional[str] = Field(None, alias="TxnId")
    txn_type: Optional[str] = Field(None, alias="TxnType")


class PaymentLine(QuickBooksModel):
    amount: Money = Field(..., alias="Amount")
    linked_txn: Optional[List[LinkedTransaction]] = Field(None, alias="LinkedTxn")


class PaymentRequest(QuickBooksModel):
    """Request body for creating a payment."""
    customer_ref: Optional[Reference] = Field(None, alias="CustomerRef")
    total_amt: Money = Field(..., alias="TotalAmt")
    txn_date: Optional[str] = Field(None, alias="TxnDate")
    line: Optional[List[PaymentLine]] = Field(None, alias="Line")


class PaymentEntity(QuickBooksModel):
    """Payment as returned by QuickBooks."""
    id: Optional[str] = Field(None, alias="Id")
    sync_token: Optional[str] = Field(None, alias="SyncToken")
    customer_ref: Optional[Reference] = Field(None, alias="CustomerRef")
    total_amt: Optional[Money] = Field(None, alias="TotalAmt")
    txn_date: Optional[str] = Field(None, alias="TxnDate")


class CustomerRequest(QuickBooksModel):
    display_name: str = Field(..., alias="DisplayName")
    company_name: Optional[str] = Field(None, alias="CompanyName")


class CustomerEntity(QuickBooksModel):
    """Customer as returned by QuickBooks."""
    id: Optional[str] = Field(None, alias="Id")
    sync_token: Optional[str] = Field(None, alias="SyncToken")
    display_name: Optional[str] = Field(None, alias="DisplayName")
    company_name: Optional[str] = Field(None, alias="CompanyName")
