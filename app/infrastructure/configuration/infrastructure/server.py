"""HTTP server infrastructure settings."""

from typing import List

from pydantic import Field

from infrastructure.configuration.base import InfrastructureSettings


class ServerSettings(InfrastructureSettings):
    """HTTP surface configuration (operator health and provider webhooks).

    Environment Variables:
        API_RATE_LIMIT: slowapi limit for operator endpoints (default: 50/minute)
        WEBHOOK_RATE_LIMIT: slowapi limit for inbound provider webhooks (default: 600/minute)
        CORS_ALLOW_ORIGINS: Origins allowed outside production

    Example:
        ```python
        from infrastructure.configuration import settings

        limit = settings.server.WEBHOOK_RATE_LIMIT
        ```
    """

    API_RATE_LIMIT: str = Field(default="50/minute", alias="API_RATE_LIMIT")
    WEBHOOK_RATE_LIMIT: str = Field(default="600/minute", alias="WEBHOOK_RATE_LIMIT")
    CORS_ALLOW_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:8000", "http://127.0.0.1:8000"],
        alias="CORS_ALLOW_ORIGINS",
    )
