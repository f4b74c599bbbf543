"""
Shared utilities package for the presence registry.

Contains the error taxonomy, start-up retry helpers, logging setup and
timestamp helpers used across the registry service.
"""

from .utils.retry import CircuitBreaker, with_retry

__all__ = ["CircuitBreaker", "with_retry"]
