"""
Dependency injection services.

Provides type aliases and provider functions for FastAPI dependency injection.
"""

from infrastructure.services.dependencies import (
    CommunicationsServiceDep,
    SettingsDep,
)
from infrastructure.services.providers import (
    get_communications_service,
    get_settings,
)

__all__ = [
    "SettingsDep",
    "CommunicationsServiceDep",
    "get_settings",
    "get_communications_service",
]
