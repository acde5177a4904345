"""Infrastructure settings __init__ - exports all infrastructure settings."""

from infrastructure.configuration.infrastructure.communications import (
    CommunicationsSettings,
)
from infrastructure.configuration.infrastructure.rate_limit import RateLimitSettings
from infrastructure.configuration.infrastructure.retry import RetrySettings
from infrastructure.configuration.infrastructure.server import ServerSettings

__all__ = [
    "CommunicationsSettings",
    "RateLimitSettings",
    "RetrySettings",
    "ServerSettings",
]
