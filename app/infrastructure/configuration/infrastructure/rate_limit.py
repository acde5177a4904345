"""Adapter rate limiting settings."""

from pydantic import Field

from infrastructure.configuration.base import InfrastructureSettings


class RateLimitSettings(InfrastructureSettings):
    """Default token-bucket budget for each adapter instance.

    Environment Variables:
        RATE_LIMIT_CAPACITY: Bucket size, i.e. burst allowance (default: 80)
        RATE_LIMIT_INTERVAL_SECONDS: Time to refill an empty bucket (default: 1.0s)
        RATE_LIMIT_QUEUE_ON_LIMIT: Wait for a token instead of failing fast
        RATE_LIMIT_QUEUE_TIMEOUT_SECONDS: Longest wait when queueing (default: 2.0s)

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()
        capacity = settings.rate_limit.capacity
        ```
    """

    capacity: int = Field(
        default=80,
        alias="RATE_LIMIT_CAPACITY",
        description="Bucket capacity (maximum burst)",
    )
    interval_seconds: float = Field(
        default=1.0,
        alias="RATE_LIMIT_INTERVAL_SECONDS",
        description="Seconds needed to refill an empty bucket",
    )
    queue_on_limit: bool = Field(
        default=False,
        alias="RATE_LIMIT_QUEUE_ON_LIMIT",
        description="Briefly queue for a token instead of returning RATE_LIMITED",
    )
    queue_timeout_seconds: float = Field(
        default=2.0,
        alias="RATE_LIMIT_QUEUE_TIMEOUT_SECONDS",
        description="Maximum time to wait for a token when queueing",
    )
