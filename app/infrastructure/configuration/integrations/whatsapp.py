"""WhatsApp Business Cloud API integration settings."""

from pydantic import Field

from infrastructure.configuration.base import IntegrationSettings


class WhatsAppSettings(IntegrationSettings):
    """WhatsApp Cloud API defaults shared by every organization.

    Environment Variables:
        WHATSAPP_API_BASE_URL: Graph API host (default: https://graph.facebook.com)
        WHATSAPP_API_VERSION: Graph API version segment (default: v19.0)
        WHATSAPP_VERIFY_TOKEN: Token echoed back during webhook subscription

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()
        version = settings.whatsapp.WHATSAPP_API_VERSION
        ```
    """

    WHATSAPP_API_BASE_URL: str = Field(
        default="https://graph.facebook.com", alias="WHATSAPP_API_BASE_URL"
    )
    WHATSAPP_API_VERSION: str = Field(default="v19.0", alias="WHATSAPP_API_VERSION")
    WHATSAPP_VERIFY_TOKEN: str | None = Field(
        default=None, alias="WHATSAPP_VERIFY_TOKEN"
    )
