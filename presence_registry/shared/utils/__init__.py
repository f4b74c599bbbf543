"""
Shared utilities module containing common functionality for the registry.
"""

from .logging_config import setup_logging
from .retry import CircuitBreaker, with_retry
from .timeutils import ensure_utc, format_timestamp, utc_now

__all__ = [
    "CircuitBreaker",
    "with_retry",
    "setup_logging",
    "ensure_utc",
    "format_timestamp",
    "utc_now",
]
