"""Token-bucket rate limiter for channel adapters.

Each adapter instance owns one bucket. Tokens refill continuously at
``capacity / refill_interval_seconds`` per second, so an empty bucket is
full again after one refill interval. Every read or write of the bucket
state happens under the bucket's own lock; unrelated adapters never
contend.

Usage:
    limiter = TokenBucketRateLimiter(capacity=80, refill_interval_seconds=1.0)

    if limiter.try_acquire():
        call_provider()

    admission = limiter.admit(queue=True, timeout=2.0)
    if not admission.is_success:
        return admission  # RATE_LIMITED, retryable
"""

import threading
import time
from typing import Callable, Optional

from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult

logger = get_module_logger()


class TokenBucketRateLimiter:
    """Concurrency-safe token bucket.

    Args:
        capacity: Maximum tokens (burst size)
        refill_interval_seconds: Time to refill an empty bucket
        name: Label used in logs (typically the adapter id)
        clock: Monotonic time source, injectable for tests
        sleep: Sleep function used by ``acquire``, injectable for tests
    """

    def __init__(
        self,
        capacity: int,
        refill_interval_seconds: float,
        name: str = "rate_limiter",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if refill_interval_seconds <= 0:
            raise ValueError("refill_interval_seconds must be positive")

        self.name = name
        self.capacity = capacity
        self.refill_interval_seconds = refill_interval_seconds
        self._refill_rate = capacity / refill_interval_seconds
        self._clock = clock
        self._sleep = sleep

        self._tokens = float(capacity)
        self._last_refill = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        # Caller holds self._lock
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(
                float(self.capacity), self._tokens + elapsed * self._refill_rate
            )
            self._last_refill = now

    def _wait_time(self, tokens: int) -> float:
        # Caller holds self._lock
        missing = tokens - self._tokens
        if missing <= 0:
            return 0.0
        return missing / self._refill_rate

    def try_acquire(self, tokens: int = 1) -> bool:
        """Take ``tokens`` if available, without blocking.

        Returns:
            True if the tokens were taken, False if the bucket is short
        """
        if tokens > self.capacity:
            return False
        with self._lock:
            self._refill()
            if self._tokens >= tokens:
                self._tokens -= tokens
                return True
            return False

    def acquire(self, tokens: int = 1, timeout: float = 0.0) -> bool:
        """Take ``tokens``, waiting up to ``timeout`` seconds for a refill.

        The lock is released while sleeping, so other callers are never
        blocked by a waiter.

        Returns:
            True if the tokens were taken before the deadline
        """
        if tokens > self.capacity:
            return False
        deadline = self._clock() + max(timeout, 0.0)
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= tokens:
                    self._tokens -= tokens
                    return True
                wait = self._wait_time(tokens)
            remaining = deadline - self._clock()
            if remaining <= 0 or wait > remaining:
                return False
            self._sleep(wait)

    def retry_after(self, tokens: int = 1) -> float:
        """Seconds until ``tokens`` would be available."""
        with self._lock:
            self._refill()
            return self._wait_time(tokens)

    def admit(self, queue: bool = False, timeout: float = 0.0) -> OperationResult:
        """Admission check returning an OperationResult.

        Args:
            queue: Wait up to ``timeout`` for a token instead of failing fast
            timeout: Longest wait when queueing

        Returns:
            SUCCESS, or a retryable RATE_LIMITED result carrying retry_after
        """
        admitted = self.acquire(timeout=timeout) if queue else self.try_acquire()
        if admitted:
            return OperationResult.success(message="admitted")

        retry_after = self.retry_after()
        logger.warning(
            "rate_limit_exceeded",
            limiter=self.name,
            capacity=self.capacity,
            retry_after=round(retry_after, 3),
            queued=queue,
        )
        return OperationResult.rate_limited(
            f"Rate limit exceeded for {self.name}", retry_after=retry_after
        )

    @property
    def available_tokens(self) -> float:
        """Current token count after refill accounting."""
        with self._lock:
            self._refill()
            return self._tokens

    def get_stats(self) -> dict:
        """Get rate limiter statistics."""
        with self._lock:
            self._refill()
            return {
                "name": self.name,
                "capacity": self.capacity,
                "refill_interval_seconds": self.refill_interval_seconds,
                "available_tokens": round(self._tokens, 3),
            }

    def reset(self, tokens: Optional[int] = None) -> None:
        """Refill the bucket (for tests/admin operations)."""
        with self._lock:
            self._tokens = float(self.capacity if tokens is None else tokens)
            self._last_refill = self._clock()
