"""
HTML pages served by the OAuth callback.

Every interpolated value goes through ``html.escape``; the pages carry no
scripts so they render under the API's Content-Security-Policy.
"""
from html import escape

from invoicing_api.exceptions import AUTHORIZE_PATH

_STYLE = """
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body {
        font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
        background: #f7fafc;
        min-height: 100vh;
        display: flex;
        align-items: center;
        justify-content: center;
        padding: 20px;
    }
    .container {
        background: white;
        border-radius: 12px;
        box-shadow: 0 10px 30px rgba(0,0,0,0.15);
        max-width: 800px;
        width: 100%;
        padding: 40px;
    }
    h1 { color: #2d3748; margin-bottom: 10px; font-size: 28px; }
    h1.error { color: #e53e3e; }
    h2 { color: #2d3748; font-size: 18px; margin: 20px 0 10px; }
    p { color: #4a5568; margin-bottom: 12px; }
    .company-id {
        border: 2px solid #48bb78;
        border-radius: 6px;
        padding: 15px;
        font-family: 'Courier New', monospace;
        font-size: 20px;
        font-weight: bold;
        text-align: center;
        word-break: break-all;
        user-select: all;
    }
    pre {
        background: #1a202c;
        color: #e2e8f0;
        padding: 16px;
        border-radius: 6px;
        font-size: 13px;
        overflow-x: auto;
        margin-bottom: 12px;
    }
    .muted { color: #718096; font-size: 14px; }
    a { color: #667eea; font-weight: 600; text-decoration: none; }
"""


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{escape(title)} - Intuit Invoicing API</title>
    <style>{_STYLE}</style>
</head>
<body>
    <div class="container">
{body}
    </div>
</body>
</html>"""


def oauth_success_page(company_id: str, base_url: str, expires_in: int) -> str:
    """Page shown after a successful code exchange, with ready-to-run curl examples."""
    company = escape(company_id)
    base = escape(base_url.rstrip("/"))
    examples = [
        ("List invoices", f'curl "{base}/api/invoices?companyId={company}"'),
        (
            "Create an invoice",
            f'curl -X POST "{base}/api/invoices?companyId={company}" \\\n'
            '  -H "Content-Type: application/json" \\\n'
            "  -d '{\"CustomerRef\": {\"name\": \"Acme Ltd\"}, \"Line\": [{\"DetailType\": "
            "\"SalesItemLineDetail\", \"Description\": \"Consulting\", \"SalesItemLineDetail\": "
            "{\"ItemRef\": {\"value\": \"1\"}, \"Qty\": 2, \"UnitPrice\": 150}}]}'",
        ),
        (
            "Settle an invoice",
            f'curl -X POST "{base}/api/invoices/INVOICE_ID/settle?companyId={company}" \\\n'
            '  -H "Content-Type: application/json" \\\n'
            "  -d '{\"Amount\": 100.00}'",
        ),
        (
            "Credit an invoice in full",
            f'curl -X POST "{base}/api/invoices/INVOICE_ID/credit-note?companyId={company}"',
        ),
    ]
    snippets = "\n".join(
        f"        <h2>{escape(label)}</h2>\n        <pre>{command}</pre>" for label, command in examples
    )
    hours = expires_in / 3600
    body = f"""        <h1>Authorization successful</h1>
        <p>QuickBooks is connected. Use this company ID on every API call:</p>
        <div class="company-id">{company}</div>
{snippets}
        <p>Tokens are stored and refreshed automatically.</p>
        <p class="muted">Access token expires in {expires_in} seconds ({hours:.1f} hours).</p>"""
    return _page("OAuth Success", body)


def oauth_error_page(error: str, suggestion: str) -> str:
    body = f"""        <h1 class="error">Authorization error</h1>
        <p>{escape(error)}</p>
        <p class="muted">{escape(suggestion)}</p>
        <p><a href="{AUTHORIZE_PATH}">Try again</a></p>"""
    return _page("OAuth Error", body)
