"""Resilience patterns for outbound provider calls.

This package contains the per-adapter token-bucket rate limiter and the
retry policy used by channel adapters.
"""

from infrastructure.resilience.rate_limiter import TokenBucketRateLimiter
from infrastructure.resilience.retry import RetryPolicy, RetryStrategy

__all__ = [
    # Rate limiting
    "TokenBucketRateLimiter",
    # Retry
    "RetryPolicy",
    "RetryStrategy",
]
