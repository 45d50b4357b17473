"""
Intuit Invoicing API.

Backend-for-frontend over QuickBooks Online: OAuth token lifecycle, invoices,
credit notes and invoice settlement.
"""
__version__ = "1.0.0"
