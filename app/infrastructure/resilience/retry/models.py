"""Retry policy models.

This module defines the backoff strategies understood by RetryPolicy.
"""

from enum import Enum


class RetryStrategy(Enum):
    """Backoff strategy between attempts.

    Values:
        FIXED: Same delay before every retry
        LINEAR: Delay grows by the base delay each attempt
        EXPONENTIAL: Delay doubles each attempt
    """

    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"
