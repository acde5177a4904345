"""Retry policy.

This module computes backoff delays and retry eligibility for failed
provider calls. ``next_delay`` is a pure function of the attempt number and
the policy fields; the caller owns the retry loop and the sleep.
"""

import random
from dataclasses import dataclass
from typing import Optional, Protocol, TYPE_CHECKING

from infrastructure.resilience.retry.models import RetryStrategy

if TYPE_CHECKING:
    from infrastructure.configuration import RetrySettings


class RetryableError(Protocol):
    """Anything carrying an error code and a retryable flag."""

    code: str
    retryable: bool


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff and retry-eligibility policy.

    Attributes:
        strategy: FIXED, LINEAR or EXPONENTIAL backoff
        base_delay_seconds: Delay unit for the strategy
        max_delay_seconds: Cap applied to every computed delay (jitter included)
        max_attempts: Total attempts allowed, first call included
        jitter: Add a random share of the delay to spread concurrent retries
        jitter_ratio: Upper bound of the added share (0.2 -> up to +20%)
        non_retryable_codes: Error codes never retried even if flagged retryable

    Example:
        policy = RetryPolicy(strategy=RetryStrategy.EXPONENTIAL, base_delay_seconds=1)
        policy.next_delay(1)  # 1.0
        policy.next_delay(3)  # 4.0
    """

    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    max_attempts: int = 3
    jitter: bool = False
    jitter_ratio: float = 0.2
    non_retryable_codes: frozenset = frozenset()

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must not be negative")
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        if not 0 <= self.jitter_ratio <= 1:
            raise ValueError("jitter_ratio must be between 0 and 1")

    @classmethod
    def from_settings(cls, settings: "RetrySettings", **overrides) -> "RetryPolicy":
        """Build a policy from RetrySettings, with per-adapter overrides."""
        values = {
            "strategy": RetryStrategy(settings.strategy),
            "base_delay_seconds": settings.base_delay_seconds,
            "max_delay_seconds": settings.max_delay_seconds,
            "max_attempts": settings.max_attempts,
            "jitter": settings.jitter,
            "jitter_ratio": settings.jitter_ratio,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        if isinstance(values["strategy"], str):
            values["strategy"] = RetryStrategy(values["strategy"])
        return cls(**values)

    def next_delay(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based).

        Args:
            attempt: The attempt that just failed
            rng: Random source for jitter; module random if omitted

        Returns:
            Delay in seconds, never above max_delay_seconds
        """
        if attempt < 1:
            raise ValueError("attempt must be at least 1")

        if self.strategy == RetryStrategy.FIXED:
            delay = self.base_delay_seconds
        elif self.strategy == RetryStrategy.LINEAR:
            delay = self.base_delay_seconds * attempt
        else:
            # Cap the exponent so very large attempt numbers stay finite
            delay = self.base_delay_seconds * (2 ** min(attempt - 1, 32))

        delay = min(delay, self.max_delay_seconds)

        if self.jitter and delay > 0:
            source = rng or random
            delay += source.uniform(0, delay * self.jitter_ratio)

        return min(delay, self.max_delay_seconds)

    def is_retryable(self, error: Optional[RetryableError]) -> bool:
        """Whether ``error`` is worth another attempt under this policy."""
        if error is None:
            return False
        if error.code in self.non_retryable_codes:
            return False
        return bool(error.retryable)

    def should_retry(
        self,
        attempt: int,
        error: Optional[RetryableError],
        max_attempts: Optional[int] = None,
    ) -> bool:
        """Whether to make another attempt after ``attempt`` failed with ``error``.

        Args:
            attempt: Number of attempts made so far
            error: The failure of the latest attempt
            max_attempts: Tighter per-call cap (e.g. from message options)
        """
        limit = self.max_attempts
        if max_attempts is not None:
            limit = min(limit, max_attempts)
        return attempt < limit and self.is_retryable(error)
