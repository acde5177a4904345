"""
Factory functions for dependency injection.

Provides application-scoped singleton providers for the delivery core.
"""

from functools import lru_cache

from infrastructure.communications import CommunicationsService
from infrastructure.configuration import Settings


@lru_cache
def get_settings() -> Settings:
    """
    Get application-scoped settings singleton.

    The @lru_cache decorator ensures only ONE instance is created per process.

    Infrastructure packages should use this directly:
        from infrastructure.services.providers import get_settings
        settings = get_settings()

    Application code should use the DI type alias for testability:
        from infrastructure.services import SettingsDep
        @router.get("/version")
        def version(settings: SettingsDep):
            return {"version": settings.GIT_SHA}

    Returns:
        Settings: Cached settings instance loaded from environment.
    """
    return Settings()


@lru_cache
def get_communications_service() -> CommunicationsService:
    """
    Get application-scoped communications service singleton.

    The service owns the adapter factory, so every caller shares the same
    cached adapter instances, health monitor and deferred queue.

    Returns:
        CommunicationsService: Cached service built from application settings.

    Usage:
        @router.post("/webhooks/{adapter_type}/{organization_id}")
        def webhook(service: CommunicationsServiceDep, ...):
            adapter = service.get_adapter(adapter_type, organization_id)
    """
    return CommunicationsService(settings=get_settings())
