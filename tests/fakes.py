"""
Fake QuickBooks Online company and Intuit token endpoint.

``FakeQuickBooks.handler`` plugs into ``httpx.MockTransport`` and keeps
invoices, credit memos, payments and customers in memory. Payments reduce
the balance of the invoices they link to, the way QuickBooks applies them.
"""
import json
import re
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

import httpx

COMPANY_ID = "9130357766"
ACCESS_TOKEN = "access-token-1"
REFRESH_TOKEN = "refresh-token-1"
AUTH_CODE = "auth-code-ok"

TOKEN_URL = "https://oauth.test/tokens"
API_BASE_URL = "https://qbo.test"


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


def _fault(status_code: int, message: str) -> httpx.Response:
    return httpx.Response(
        status_code,
        json={"Fault": {"Error": [{"Message": message}], "type": "ValidationFault"}},
    )


class FakeQuickBooks:
    """In-memory QuickBooks company plus Intuit token endpoint."""

    def __init__(self):
        self.invoices: Dict[str, Dict[str, Any]] = {}
        self.credit_memos: Dict[str, Dict[str, Any]] = {}
        self.payments: Dict[str, Dict[str, Any]] = {}
        self.customers: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.valid_access_tokens = {ACCESS_TOKEN}
        self.valid_refresh_tokens = {REFRESH_TOKEN}
        self.token_counter = 1
        self.fail_payment = False
        self.apply_payments = True
        self.unreachable = False
        self._ids = 100

    # ------------------------------------------------------------------
    # Seeding and inspection
    # ------------------------------------------------------------------

    def next_id(self) -> str:
        self._ids += 1
        return str(self._ids)

    def add_customer(self, display_name: str) -> Dict[str, Any]:
        customer = {"Id": self.next_id(), "DisplayName": display_name, "SyncToken": "0"}
        self.customers[customer["Id"]] = customer
        return customer

    def add_invoice(
        self,
        lines: List[Dict[str, Any]],
        balance: Optional[Any] = None,
        customer_id: str = "58",
        doc_number: Optional[str] = None,
        txn_date: str = "2026-10-01",
    ) -> Dict[str, Any]:
        total = sum(_decimal(line.get("Amount")) for line in lines if line.get("DetailType") == "SalesItemLineDetail")
        invoice = {
            "Id": self.next_id(),
            "SyncToken": "0",
            "CustomerRef": {"value": customer_id},
            "Line": lines,
            "TotalAmt": float(total),
            "Balance": float(total if balance is None else _decimal(balance)),
            "TxnDate": txn_date,
        }
        if doc_number:
            invoice["DocNumber"] = doc_number
        self.invoices[invoice["Id"]] = invoice
        return invoice

    def calls(self, method: str, path_fragment: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and path_fragment in r.url.path]

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)

        if str(request.url).startswith(TOKEN_URL):
            return self._token(request)

        if request.headers.get("Authorization") not in {f"Bearer {t}" for t in self.valid_access_tokens}:
            return _fault(401, "AuthenticationFailed")

        match = re.match(r"^/v3/company/(?P<company>[^/]+)/(?P<rest>.+)$", request.url.path)
        if not match:
            return _fault(404, "Unknown endpoint")
        rest = match.group("rest")
        body = json.loads(request.content) if request.content else {}

        if request.method == "GET" and rest == "query":
            return self._query(request.url.params["query"])
        if request.method == "POST" and rest == "invoice":
            return self._create_invoice(body)
        if request.method == "POST" and rest == "creditmemo":
            return self._create_credit_memo(body)
        if request.method == "POST" and rest == "payment":
            return self._create_payment(body)
        if request.method == "POST" and rest == "customer":
            customer = self.add_customer(body["DisplayName"])
            return httpx.Response(200, json={"Customer": customer})
        if request.method == "GET" and rest.startswith("invoice/"):
            return self._get(self.invoices, rest.split("/", 1)[1], "Invoice")
        if request.method == "GET" and rest.startswith("creditmemo/"):
            return self._get(self.credit_memos, rest.split("/", 1)[1], "CreditMemo")
        if request.method == "GET" and rest.startswith("companyinfo/"):
            return httpx.Response(200, json={"CompanyInfo": {"CompanyName": "Sandbox Company_US_1"}})
        return _fault(404, "Unknown endpoint")

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        grant_type = form.get("grant_type")
        if grant_type == "authorization_code" and form.get("code") == AUTH_CODE:
            return self._issue_tokens()
        if grant_type == "refresh_token" and form.get("refresh_token") in self.valid_refresh_tokens:
            return self._issue_tokens()
        return httpx.Response(400, json={"error": "invalid_grant"})

    def _issue_tokens(self) -> httpx.Response:
        self.token_counter += 1
        access = f"access-token-{self.token_counter}"
        refresh = f"refresh-token-{self.token_counter}"
        self.valid_access_tokens.add(access)
        self.valid_refresh_tokens.add(refresh)
        return httpx.Response(
            200,
            json={
                "access_token": access,
                "refresh_token": refresh,
                "expires_in": 3600,
                "x_refresh_token_expires_in": 8726400,
                "token_type": "bearer",
            },
        )

    def _get(self, store: Dict[str, Dict[str, Any]], entity_id: str, key: str) -> httpx.Response:
        entity = store.get(entity_id)
        if entity is None:
            return _fault(400, "Object Not Found")
        return httpx.Response(200, json={key: entity})

    def _query(self, query: str) -> httpx.Response:
        if "FROM Customer" in query:
            name = re.search(r"DisplayName = '(.*)'", query).group(1).replace("\\'", "'")
            rows = [c for c in self.customers.values() if c["DisplayName"] == name]
            return httpx.Response(200, json={"QueryResponse": {"Customer": rows} if rows else {}})

        if "FROM CreditMemo" in query:
            rows = list(self.credit_memos.values())
            return httpx.Response(200, json={"QueryResponse": {"CreditMemo": rows}})

        rows = list(self.invoices.values())
        customer = re.search(r"CustomerRef = '([^']*)'", query)
        if customer:
            rows = [i for i in rows if i["CustomerRef"]["value"] == customer.group(1)]
        doc_number = re.search(r"DocNumber = '([^']*)'", query)
        if doc_number:
            rows = [i for i in rows if i.get("DocNumber") == doc_number.group(1)]
        limit = re.search(r"MAXRESULTS (\d+)", query)
        if limit:
            rows = rows[: int(limit.group(1))]
        return httpx.Response(200, json={"QueryResponse": {"Invoice": rows}})

    def _create_invoice(self, body: Dict[str, Any]) -> httpx.Response:
        if not body.get("CustomerRef", {}).get("value"):
            return _fault(400, "Required param missing: CustomerRef")
        invoice = self.add_invoice(
            body["Line"],
            customer_id=body["CustomerRef"]["value"],
            doc_number=body.get("DocNumber"),
            txn_date=body.get("TxnDate", "2026-10-18"),
        )
        return httpx.Response(200, json={"Invoice": invoice})

    def _create_credit_memo(self, body: Dict[str, Any]) -> httpx.Response:
        total = sum(_decimal(line.get("Amount")) for line in body.get("Line", []))
        memo = dict(body, Id=f"CM-{self.next_id()}", SyncToken="0", TotalAmt=float(total), Balance=float(total))
        self.credit_memos[memo["Id"]] = memo
        return httpx.Response(200, json={"CreditMemo": memo})

    def _create_payment(self, body: Dict[str, Any]) -> httpx.Response:
        if self.fail_payment:
            return _fault(500, "Internal Server Error")
        payment = dict(body, Id=self.next_id(), SyncToken="0")
        self.payments[payment["Id"]] = payment
        if self.apply_payments:
            for line in body.get("Line", []):
                for linked in line.get("LinkedTxn", []):
                    invoice = self.invoices.get(linked["TxnId"])
                    if invoice is not None:
                        invoice["Balance"] = float(_decimal(invoice["Balance"]) - _decimal(line["Amount"]))
        return httpx.Response(200, json={"Payment": payment})


def sales_line(qty: Any, unit_price: Any, description: str = "Consulting", item_id: str = "1") -> Dict[str, Any]:
    """An upstream-shaped SalesItemLineDetail line."""
    return {
        "Id": "1",
        "LineNum": 1,
        "DetailType": "SalesItemLineDetail",
        "Amount": float(_decimal(qty) * _decimal(unit_price)),
        "Description": description,
        "SalesItemLineDetail": {"ItemRef": {"value": item_id}, "Qty": qty, "UnitPrice": unit_price},
    }


def subtotal_line(amount: Any) -> Dict[str, Any]:
    return {"DetailType": "SubTotalLineDetail", "Amount": amount, "SubTotalLineDetail": {}}


