"""
Custom exceptions for the invoicing API.

Provides a hierarchy of exceptions with error codes. Every API-facing error is
rendered into the standard response envelope by the handler in main.py.
"""
from typing import Any, Dict, Optional

AUTHORIZE_PATH = "/auth/authorize"


class InvoicingAPIError(Exception):
    """
    Base exception for all invoicing API errors.

    Attributes:
        error_code: Unique error code (e.g., INV-001)
        message: Human-readable error message
        details: Additional error context
    """
    error_code: str = "INV-000"
    http_status: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
        hint: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        self.hint = hint
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to the API response envelope."""
        body: Dict[str, Any] = {"success": False, "error": self.message}
        if self.hint:
            body["message"] = self.hint
        return body


# Request Errors (INV-1XX)
class ValidationError(InvoicingAPIError):
    """Input validation failed."""
    error_code = "INV-100"
    http_status = 400

    def __init__(self, message: str = "Validation failed", **kwargs):
        super().__init__(message, **kwargs)


class NotFoundError(InvoicingAPIError):
    """Requested upstream entity does not exist."""
    error_code = "INV-104"
    http_status = 404

    def __init__(self, resource: str, resource_id: str, **kwargs):
        message = f"{resource} not found"
        super().__init__(message, details={"resource": resource, "id": resource_id}, **kwargs)


# Authentication Errors (INV-2XX)
class AuthenticationRequiredError(InvoicingAPIError):
    """No usable OAuth tokens for a company; the user must re-authorize."""
    error_code = "INV-200"
    http_status = 401

    def __init__(self, company_id: str, **kwargs):
        message = (
            f"No OAuth tokens found for companyId: {company_id}. "
            f"Please complete OAuth authorization first by visiting: {AUTHORIZE_PATH}"
        )
        super().__init__(
            message,
            details={"company_id": company_id, "authorize_url": AUTHORIZE_PATH},
            hint=f"Re-authorize at {AUTHORIZE_PATH}",
            **kwargs,
        )
        self.company_id = company_id


# Upstream Errors (INV-5XX)
class ExternalServiceError(InvoicingAPIError):
    """External service call failed or returned something unusable."""
    error_code = "INV-500"
    http_status = 502

    def __init__(self, service_name: str, message: str = None, **kwargs):
        msg = message or f"External service '{service_name}' is unavailable"
        kwargs.setdefault("details", {})["service"] = service_name
        super().__init__(msg, **kwargs)


class QuickBooksAPIError(ExternalServiceError):
    """QuickBooks returned a non-success response."""
    error_code = "INV-501"

    def __init__(self, status_code: int, body: str, **kwargs):
        message = f"QuickBooks API error: {status_code} - {body}"
        super().__init__("quickbooks", message, details={"status_code": status_code}, **kwargs)
        self.status_code = status_code
        self.body = body


class SettlementIncompleteError(InvoicingAPIError):
    """Credit memo was created but the payment that applies it failed."""
    error_code = "INV-510"
    http_status = 502

    def __init__(self, credit_memo_id: str, reason: str, **kwargs):
        message = (
            f"Settlement incomplete: credit memo {credit_memo_id} was created "
            f"but payment creation failed: {reason}"
        )
        super().__init__(
            message,
            details={"credit_memo_id": credit_memo_id, "reason": reason},
            hint=(
                f"Credit memo {credit_memo_id} was not rolled back. "
                "Reconcile it manually before retrying the settlement."
            ),
            **kwargs,
        )
        self.credit_memo_id = credit_memo_id


class PollingTimeoutError(InvoicingAPIError):
    """A polled condition never held within the allowed attempts."""
    error_code = "INV-520"
    http_status = 504

    def __init__(self, attempts: int, last_result: Any = None, **kwargs):
        message = f"Polling condition not met after {attempts} attempts"
        super().__init__(message, details={"attempts": attempts}, **kwargs)
        self.attempts = attempts
        self.last_result = last_result
