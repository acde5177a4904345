"""
Type aliases for FastAPI dependency injection.

Provides annotated type hints for common infrastructure dependencies.
"""

from typing import Annotated

from fastapi import Depends

from infrastructure.communications import CommunicationsService
from infrastructure.configuration import Settings
from infrastructure.services.providers import (
    get_communications_service,
    get_settings,
)

# Settings dependency
SettingsDep = Annotated[Settings, Depends(get_settings)]

# Communications service dependency - adapters, preferences and delivery
CommunicationsServiceDep = Annotated[
    CommunicationsService, Depends(get_communications_service)
]

__all__ = [
    "SettingsDep",
    "CommunicationsServiceDep",
]
