"""Retry policy infrastructure settings."""

from pydantic import Field

from infrastructure.configuration.base import InfrastructureSettings


class RetrySettings(InfrastructureSettings):
    """Default retry policy for channel adapter sends.

    Individual adapter configurations may override any of these values in
    their ``settings`` block; these are the defaults applied otherwise.

    Environment Variables:
        RETRY_STRATEGY: Backoff strategy - 'fixed', 'linear' or 'exponential'
        RETRY_BASE_DELAY_SECONDS: Base delay between attempts (default: 1.0s)
        RETRY_MAX_DELAY_SECONDS: Cap applied to any computed delay (default: 30s)
        RETRY_MAX_ATTEMPTS: Total provider calls per channel (default: 3)
        RETRY_JITTER: Add random jitter to delays (default: True)
        RETRY_JITTER_RATIO: Maximum jitter as a fraction of the delay (default: 0.2)

    Backoff:
        fixed:       base
        linear:      base * attempt
        exponential: base * 2 ^ (attempt - 1)

        Example with defaults (exponential, base=1s, max=30s):
            After attempt 1: 1s
            After attempt 2: 2s
            After attempt 3: 4s (plus up to 20% jitter)

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()
        max_attempts = settings.retry.max_attempts
        ```
    """

    strategy: str = Field(
        default="exponential",
        alias="RETRY_STRATEGY",
        description="Backoff strategy: 'fixed', 'linear' or 'exponential'",
    )
    base_delay_seconds: float = Field(
        default=1.0,
        alias="RETRY_BASE_DELAY_SECONDS",
        description="Base delay between attempts (seconds)",
    )
    max_delay_seconds: float = Field(
        default=30.0,
        alias="RETRY_MAX_DELAY_SECONDS",
        description="Maximum delay between attempts (seconds)",
    )
    max_attempts: int = Field(
        default=3,
        alias="RETRY_MAX_ATTEMPTS",
        description="Total provider calls per channel before giving up",
    )
    jitter: bool = Field(
        default=True,
        alias="RETRY_JITTER",
        description="Add random jitter to computed delays",
    )
    jitter_ratio: float = Field(
        default=0.2,
        alias="RETRY_JITTER_RATIO",
        description="Maximum jitter as a fraction of the computed delay",
    )
