"""Communication delivery settings."""

from pydantic import Field

from infrastructure.configuration.base import InfrastructureSettings


class CommunicationsSettings(InfrastructureSettings):
    """Orchestrator, factory and adapter lifecycle configuration.

    Environment Variables:
        COMMS_HEALTH_MONITOR_ENABLED: Start the background health poller (default: True)
        COMMS_HEALTH_CHECK_INTERVAL_SECONDS: Poll interval (default: 60s)
        COMMS_BROADCAST_MAX_CONCURRENCY: Parallel recipients per broadcast (default: 10)
        COMMS_SHUTDOWN_GRACE_SECONDS: Drain window for in-flight sends (default: 30s)
        COMMS_DEFAULT_TIMEOUT_SECONDS: Provider call timeout (default: 10s)
        COMMS_DEGRADED_AFTER_FAILURES: Failed health checks before DEGRADED (default: 3)
        COMMS_SIGNATURE_TOLERANCE_SECONDS: Webhook signature replay window (default: 300s)
        COMMS_IDEMPOTENCY_TTL_SECONDS: How long aggregated results are cached (default: 3600s)
        COMMS_DEFERRED_CHECK_INTERVAL_SECONDS: Quiet-hours requeue poll (default: 60s)

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()
        interval = settings.communications.health_check_interval_seconds
        ```
    """

    health_monitor_enabled: bool = Field(
        default=True,
        alias="COMMS_HEALTH_MONITOR_ENABLED",
        description="Start the background adapter health poller",
    )
    health_check_interval_seconds: float = Field(
        default=60.0,
        alias="COMMS_HEALTH_CHECK_INTERVAL_SECONDS",
        description="Seconds between adapter health polls",
    )
    broadcast_max_concurrency: int = Field(
        default=10,
        alias="COMMS_BROADCAST_MAX_CONCURRENCY",
        description="Maximum recipients processed concurrently in a broadcast",
    )
    shutdown_grace_seconds: float = Field(
        default=30.0,
        alias="COMMS_SHUTDOWN_GRACE_SECONDS",
        description="Seconds to wait for in-flight sends on shutdown",
    )
    default_timeout_seconds: float = Field(
        default=10.0,
        alias="COMMS_DEFAULT_TIMEOUT_SECONDS",
        description="Provider call timeout when the adapter configuration omits one",
    )
    degraded_after_failures: int = Field(
        default=3,
        alias="COMMS_DEGRADED_AFTER_FAILURES",
        description="Consecutive failed health checks before an adapter is DEGRADED",
    )
    signature_tolerance_seconds: int = Field(
        default=300,
        alias="COMMS_SIGNATURE_TOLERANCE_SECONDS",
        description="Maximum age of a signed webhook timestamp",
    )
    idempotency_ttl_seconds: int = Field(
        default=3600,
        alias="COMMS_IDEMPOTENCY_TTL_SECONDS",
        description="TTL of cached delivery results keyed by message and user",
    )
    deferred_check_interval_seconds: float = Field(
        default=60.0,
        alias="COMMS_DEFERRED_CHECK_INTERVAL_SECONDS",
        description="Seconds between re-evaluations of quiet-hours deferrals",
    )
