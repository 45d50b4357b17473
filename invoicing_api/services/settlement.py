"""
Invoice settlement: credit memo + applied payment + balance confirmation.

A settlement reduces an invoice's balance by creating a credit memo for the
settled portion of the invoice's sales lines and then a payment linked to
the invoice. QuickBooks applies the open credit toward the invoice when the
payment lands. The balance change is then polled for, purely as a
confirmation; failing to observe it is not an error.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

import httpx
import structlog

from invoicing_api.config import Settings
from invoicing_api.exceptions import (
    AuthenticationRequiredError,
    ExternalServiceError,
    InvoicingAPIError,
    NotFoundError,
    PollingTimeoutError,
    SettlementIncompleteError,
    ValidationError,
)
from invoicing_api.middleware.logging import log_performance
from invoicing_api.schemas.api import SettlementRequest
from invoicing_api.schemas.quickbooks import (
    CreditMemoEntity,
    CreditMemoRequest,
    InvoiceEntity,
    LineItem,
    LinkedTransaction,
    PaymentEntity,
    PaymentLine,
    PaymentRequest,
    SalesItemLineDetail,
    round_money,
)
from invoicing_api.services.oauth import IntuitOAuthService
from invoicing_api.services.quickbooks_client import QuickBooksClient
from invoicing_api.utils.retry import poll_until

logger = structlog.get_logger(__name__)

# Amounts within a cent of the balance settle the invoice in full.
FULL_SETTLEMENT_TOLERANCE = Decimal("0.01")

ZERO = Decimal("0")


@dataclass(frozen=True)
class SettlementState:
    """Amounts derived from an invoice and the requested settlement."""

    invoice_balance: Decimal
    requested_amount: Optional[Decimal]
    amount: Decimal
    settlement_ratio: Decimal
    is_full_settlement: bool


@dataclass
class SettlementResult:
    """Outcome of a successful settlement."""

    credit_memo: CreditMemoEntity
    payment: PaymentEntity
    state: SettlementState
    final_balance: Optional[Decimal] = None
    balance_confirmed: bool = False

    @property
    def message(self) -> str:
        kind = "Full" if self.state.is_full_settlement else "Partial"
        summary = (
            f"{kind} settlement of {self.state.amount}: credit memo {self.credit_memo.id} "
            f"and payment {self.payment.id} created."
        )
        if self.balance_confirmed:
            return f"{summary} Invoice balance changed from {self.state.invoice_balance} to {self.final_balance}."
        if self.final_balance is not None:
            return (
                f"{summary} Balance change not yet visible upstream "
                f"(last observed balance {self.final_balance})."
            )
        return f"{summary} Balance change could not be confirmed."


def resolve_settlement_state(invoice: InvoiceEntity, requested_amount: Optional[Decimal]) -> SettlementState:
    """
    Work out the settlement amount, ratio and whether it settles in full.

    Raises:
        ValidationError: balance is zero on a non-zero invoice and no amount
            was given, or the amount is not positive or exceeds the balance.
    """
    balance = invoice.balance if invoice.balance is not None else ZERO
    total = invoice.total_amt if invoice.total_amt is not None else ZERO

    if requested_amount is None:
        if balance == ZERO and total > ZERO:
            # Either already paid or not yet synced upstream; the caller decides.
            raise ValidationError(
                f"Invoice balance is 0 but its total is {total}. The invoice may already "
                "be paid or its balance may not be synced yet. Specify an explicit Amount "
                "to settle."
            )
        amount = balance
    else:
        amount = requested_amount

    if amount <= ZERO:
        raise ValidationError("Settlement amount must be greater than 0")
    if amount > balance:
        raise ValidationError(
            f"Settlement amount {amount} exceeds invoice balance {balance}"
        )

    ratio = Decimal("1") if balance == ZERO else amount / balance
    return SettlementState(
        invoice_balance=balance,
        requested_amount=requested_amount,
        amount=amount,
        settlement_ratio=ratio,
        is_full_settlement=amount >= balance - FULL_SETTLEMENT_TOLERANCE,
    )


def sales_item_lines(lines: Optional[List[LineItem]]) -> List[LineItem]:
    """Lines that can be carried onto a credit memo."""
    return [line for line in lines or [] if line.is_sales_item]


def build_adjusted_lines(lines: Optional[List[LineItem]], ratio: Decimal, is_full: bool) -> List[LineItem]:
    """
    Credit memo lines for the settled portion of an invoice.

    Full settlements copy quantity and amount unchanged. Partial ones scale
    quantity by ``ratio`` and recompute the amount from the unit price, or
    scale the amount directly when the line carries no price/quantity.

    Per-line rounding remainders are pushed onto the largest line so the
    partial lines sum to the scaled invoice total rounded to cents.
    """
    adjusted = []
    scaled_total = ZERO
    for line in sales_item_lines(lines):
        detail = line.sales_item_line_detail
        qty = detail.qty
        amount = line.amount

        if not is_full:
            original = line.amount
            if original is None and detail.unit_price is not None and detail.qty is not None:
                original = detail.unit_price * detail.qty
            if original is not None:
                scaled_total += original * ratio

            if qty is not None:
                qty = qty * ratio
            if detail.unit_price is not None and qty is not None:
                amount = round_money(detail.unit_price * qty)
            elif amount is not None:
                amount = round_money(amount * ratio)

        adjusted.append(
            LineItem(
                detail_type=line.detail_type,
                amount=amount,
                description=line.description,
                sales_item_line_detail=SalesItemLineDetail(
                    item_ref=detail.item_ref,
                    qty=qty,
                    unit_price=detail.unit_price,
                ),
            )
        )

    if is_full:
        return adjusted
    return _absorb_rounding_remainder(adjusted, round_money(scaled_total))


def _absorb_rounding_remainder(lines: List[LineItem], target: Decimal) -> List[LineItem]:
    priced = [i for i, line in enumerate(lines) if line.amount is not None]
    if not priced:
        return lines

    remainder = target - sum(lines[i].amount for i in priced)
    if remainder == ZERO:
        return lines

    index = max(priced, key=lambda i: lines[i].amount)
    line = lines[index]
    amount = line.amount + remainder
    detail = line.sales_item_line_detail
    # Amount is recomputed from UnitPrice * Qty on send, so Qty must carry the adjustment.
    if detail.unit_price and detail.qty is not None:
        detail = detail.model_copy(update={"qty": amount / detail.unit_price})

    lines[index] = line.model_copy(update={"amount": amount, "sales_item_line_detail": detail})
    return lines


def settlement_note(invoice: InvoiceEntity, state: SettlementState) -> str:
    reference = invoice.doc_number or invoice.id
    if state.is_full_settlement:
        return f"Full settlement of invoice {reference}"
    return f"Partial settlement of invoice {reference}: {state.amount} of {state.invoice_balance}"


class SettlementService:
    """Orchestrates invoice settlement against QuickBooks."""

    def __init__(
        self,
        client: QuickBooksClient,
        oauth_service: IntuitOAuthService,
        settings: Settings,
    ):
        self.client = client
        self.oauth_service = oauth_service
        self.settings = settings

    @log_performance("invoice_settlement")
    async def settle(self, company_id: str, invoice_id: str, request: SettlementRequest) -> SettlementResult:
        """
        Settle an invoice fully or partially.

        Raises:
            AuthenticationRequiredError: no usable tokens for the company
            NotFoundError: the invoice does not exist
            ValidationError: amount or line items make the settlement impossible
            SettlementIncompleteError: credit memo created, payment failed
        """
        tokens = await self.oauth_service.get_or_refresh(company_id)
        if tokens is None or not tokens.access_token:
            raise AuthenticationRequiredError(company_id)
        access_token = tokens.access_token

        log = logger.bind(company_id=company_id, invoice_id=invoice_id)

        invoice = await self.client.get_invoice(company_id, access_token, invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice", invoice_id)

        state = resolve_settlement_state(invoice, request.amount)
        log.info(
            "settlement_resolved",
            balance=str(state.invoice_balance),
            amount=str(state.amount),
            ratio=str(state.settlement_ratio),
            is_full=state.is_full_settlement,
        )

        lines = build_adjusted_lines(invoice.line, state.settlement_ratio, state.is_full_settlement)
        if not lines:
            raise ValidationError("Invoice has no sales item lines that can be credited")

        txn_date = request.txn_date or date.today().isoformat()
        credit_memo = await self.client.create_credit_memo(
            company_id,
            access_token,
            CreditMemoRequest(
                customer_ref=invoice.customer_ref,
                line=lines,
                txn_date=txn_date,
                private_note=request.description or settlement_note(invoice, state),
            ),
        )
        if credit_memo is None or not credit_memo.id:
            raise ExternalServiceError("quickbooks", "Failed to create credit memo")
        log.info("settlement_credit_memo_created", credit_memo_id=credit_memo.id)

        payment_request = PaymentRequest(
            customer_ref=invoice.customer_ref,
            total_amt=state.amount,
            txn_date=txn_date,
            line=[
                PaymentLine(
                    amount=state.amount,
                    linked_txn=[LinkedTransaction(txn_id=invoice.id, txn_type="Invoice")],
                )
            ],
        )
        try:
            payment = await self.client.create_payment(company_id, access_token, payment_request)
            if payment is None:
                raise ExternalServiceError("quickbooks", "Payment response contained no Payment")
        except Exception as e:
            # Never retried: a second attempt could credit the customer twice.
            log.error(
                "settlement_payment_failed",
                credit_memo_id=credit_memo.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise SettlementIncompleteError(credit_memo.id, str(e)) from e
        log.info("settlement_payment_created", payment_id=payment.id)

        final_balance, confirmed = await self._confirm_balance_change(
            company_id, access_token, invoice_id, state.invoice_balance
        )
        log.info(
            "settlement_completed",
            credit_memo_id=credit_memo.id,
            payment_id=payment.id,
            final_balance=str(final_balance) if final_balance is not None else None,
            balance_confirmed=confirmed,
        )
        return SettlementResult(
            credit_memo=credit_memo,
            payment=payment,
            state=state,
            final_balance=final_balance,
            balance_confirmed=confirmed,
        )

    async def _confirm_balance_change(
        self, company_id: str, access_token: str, invoice_id: str, original_balance: Decimal
    ) -> Tuple[Optional[Decimal], bool]:
        """Poll the invoice until its balance moves. Never raises for upstream trouble."""

        async def fetch() -> Optional[InvoiceEntity]:
            return await self.client.get_invoice(company_id, access_token, invoice_id)

        def balance_changed(invoice: Optional[InvoiceEntity]) -> bool:
            return invoice is not None and invoice.balance is not None and invoice.balance != original_balance

        def on_poll(attempt: int, invoice: Optional[InvoiceEntity]) -> None:
            logger.debug(
                "settlement_balance_polled",
                invoice_id=invoice_id,
                attempt=attempt,
                balance=str(invoice.balance) if invoice is not None else None,
            )

        try:
            invoice = await poll_until(
                fetch,
                balance_changed,
                max_attempts=self.settings.settlement_poll_max_attempts,
                initial_delay=self.settings.settlement_poll_initial_delay,
                max_delay=self.settings.settlement_poll_max_delay,
                on_poll=on_poll,
            )
        except PollingTimeoutError as e:
            last = e.last_result
            logger.warning("settlement_balance_unconfirmed", invoice_id=invoice_id, attempts=e.attempts)
            return (last.balance if last is not None else None), False
        except (InvoicingAPIError, httpx.HTTPError) as e:
            logger.warning("settlement_balance_poll_failed", invoice_id=invoice_id, error=str(e))
            return None, False

        return invoice.balance, True
