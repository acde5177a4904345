"""Communication delivery configuration settings - main aggregator."""

from pydantic_settings import BaseSettings, SettingsConfigDict

# Integration settings
from infrastructure.configuration.integrations import (
    NotifySettings,
    WhatsAppSettings,
)

# Infrastructure settings
from infrastructure.configuration.infrastructure import (
    CommunicationsSettings,
    RateLimitSettings,
    RetrySettings,
    ServerSettings,
)


class Settings(BaseSettings):
    """Application configuration settings - main aggregator.

    Aggregates all domain-specific settings into a single configuration object.
    Settings are organized by concern:

    - **Integrations**: Provider-wide defaults (WhatsApp, GC Notify)
    - **Infrastructure**: Core delivery behavior (retry, rate limiting,
      communications lifecycle, HTTP server)

    Environment Variables:
        PREFIX: Environment prefix for non-production deployments
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
        GIT_SHA: Git commit SHA for deployment tracking

    Example:
        ```python
        from infrastructure.configuration import settings

        # Access integration settings
        verify_token = settings.whatsapp.WHATSAPP_VERIFY_TOKEN

        # Access infrastructure settings
        max_attempts = settings.retry.max_attempts
        interval = settings.communications.health_check_interval_seconds

        # Check environment
        if settings.is_production:
            # Production-specific logic...
        ```
    """

    # Application-level settings
    PREFIX: str = ""
    LOG_LEVEL: str = "INFO"
    GIT_SHA: str = "Unknown"

    # Integration settings
    whatsapp: WhatsAppSettings
    notify: NotifySettings

    # Infrastructure settings
    communications: CommunicationsSettings
    rate_limit: RateLimitSettings
    retry: RetrySettings
    server: ServerSettings

    @property
    def is_production(self) -> bool:
        """Check if the application is running in production.

        Returns:
            True if PREFIX is empty (production), False otherwise.
        """
        return not bool(self.PREFIX)

    def __init__(self, **kwargs):
        """Initialize Settings with automatic subsettings instantiation.

        Args:
            **kwargs: Optional overrides for specific settings sections.
        """
        settings_map = {
            # Integrations
            "whatsapp": WhatsAppSettings,
            "notify": NotifySettings,
            # Infrastructure
            "communications": CommunicationsSettings,
            "rate_limit": RateLimitSettings,
            "retry": RetrySettings,
            "server": ServerSettings,
        }

        for setting_name, setting_class in settings_map.items():
            if setting_name not in kwargs:
                kwargs[setting_name] = setting_class()

        super().__init__(**kwargs)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


# Create the singleton settings instance
settings = Settings()
