"""Retry policy for provider calls.

Exports:
    RetryPolicy: Backoff computation and retry eligibility
    RetryStrategy: FIXED / LINEAR / EXPONENTIAL
"""

from infrastructure.resilience.retry.config import RetryPolicy
from infrastructure.resilience.retry.models import RetryStrategy

__all__ = [
    "RetryPolicy",
    "RetryStrategy",
]
