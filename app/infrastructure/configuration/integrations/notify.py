"""GC Notify integration settings."""

from pydantic import Field

from infrastructure.configuration.base import IntegrationSettings


class NotifySettings(IntegrationSettings):
    """GC Notify defaults shared by every organization's SMS adapter.

    Organizations supply their own API key and template id in the adapter
    credentials; only the endpoint is deployment-wide.

    Environment Variables:
        NOTIFY_API_URL: GC Notify API endpoint URL

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()
        api_url = settings.notify.NOTIFY_API_URL
        ```
    """

    NOTIFY_API_URL: str = Field(
        default="https://api.notification.canada.ca", alias="NOTIFY_API_URL"
    )
