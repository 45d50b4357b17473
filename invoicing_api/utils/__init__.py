"""Utilities package."""
from invoicing_api.utils.cache import SimpleCache, cache
from invoicing_api.utils.retry import backoff_delay, poll_until, retry_with_backoff

__all__ = [
    "SimpleCache",
    "cache",
    "backoff_delay",
    "poll_until",
    "retry_with_backoff",
]
