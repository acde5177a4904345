"""Infrastructure configuration module - public API.

This module provides centralized configuration management for the
communication delivery core using Pydantic BaseSettings with
domain-based organization.

Exports:
    settings: Singleton Settings instance (main configuration object)
    Settings: Main settings class (for testing/overrides)
    RetrySettings, RateLimitSettings, CommunicationsSettings: section classes

Example:
    ```python
    from infrastructure.services import get_settings

    settings = get_settings()

    max_attempts = settings.retry.max_attempts
    capacity = settings.rate_limit.capacity

    if settings.is_production:
        # Production-specific logic...
    ```
"""

from infrastructure.configuration.settings import Settings, settings
from infrastructure.configuration.infrastructure import (
    CommunicationsSettings,
    RateLimitSettings,
    RetrySettings,
)

__all__ = [
    "Settings",
    "settings",
    "CommunicationsSettings",
    "RateLimitSettings",
    "RetrySettings",
]
