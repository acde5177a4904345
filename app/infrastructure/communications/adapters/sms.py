"""SMS adapter using GC Notify.

Sends through a GC Notify template whose body is a single personalisation
field, so any text can be delivered:

    POST {api_url}/v2/notifications/sms
    Authorization: ApiKey-v1 <api key>
    {"phone_number": "+1...", "template_id": "...",
     "personalisation": {"message": "..."}, "reference": "<message id>"}

One-way: inbound messages are not supported.
"""

from typing import Optional

from pydantic import BaseModel, Field

from infrastructure.communications.adapters.base import ChannelAdapter, is_e164
from infrastructure.communications.models import (
    AdapterCapabilities,
    ChannelType,
    CommunicationMessage,
    MessageType,
)
from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult, classify_http_response

logger = get_module_logger()

SMS_MAX_LENGTH = 1600  # GC Notify SMS limit
TRUNCATION_SUFFIX = "..."


class SMSCredentials(BaseModel):
    """GC Notify service credentials.

    Attributes:
        api_key: Service API key
        template_id: Template with a single ``((message))`` placeholder
        personalisation_key: Placeholder name in the template
        api_url: Per-organization API URL; deployment default if unset
    """

    api_key: str = Field(..., min_length=1)
    template_id: str = Field(..., min_length=1)
    personalisation_key: str = "message"
    api_url: Optional[str] = None


class SMSAdapter(ChannelAdapter):
    channel_type = ChannelType.SMS
    credentials_model = SMSCredentials

    @property
    def api_url(self) -> str:
        url = self.credentials.api_url or self._settings.notify.NOTIFY_API_URL
        return url.rstrip("/")

    def validate_recipient(self, identifier: str) -> bool:
        return is_e164(identifier)

    def get_capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities(
            supported_message_types=[
                MessageType.TEXT,
                MessageType.RICH_TEXT,
                MessageType.TEMPLATE,
            ],
            max_text_length=SMS_MAX_LENGTH,
            supports_two_way=False,
            supports_delivery_receipts=False,
            # TEMPLATE messages are flattened to text; no provider-side templates
            supports_templates=False,
        )

    def render_text(self, message: CommunicationMessage) -> str:
        """Plain SMS body, truncated to the provider limit."""
        text = message.summary_text
        if len(text) > SMS_MAX_LENGTH:
            logger.warning(
                "sms_message_truncated",
                message_id=message.message_id,
                original_length=len(text),
            )
            text = text[: SMS_MAX_LENGTH - len(TRUNCATION_SUFFIX)] + TRUNCATION_SUFFIX
        return text

    def _headers(self):
        return {
            "Authorization": f"ApiKey-v1 {self.credentials.api_key}",
            "Content-Type": "application/json",
        }

    def _deliver(self, message: CommunicationMessage) -> OperationResult:
        payload = {
            "phone_number": message.recipient.identifier,
            "template_id": self.credentials.template_id,
            "personalisation": {
                self.credentials.personalisation_key: self.render_text(message)
            },
            "reference": message.message_id,
        }
        response = self.session.post(
            f"{self.api_url}/v2/notifications/sms",
            json=payload,
            headers=self._headers(),
            timeout=self.timeout_seconds,
        )
        if not response.ok:
            return classify_http_response(response, provider="gc_notify")

        external_id = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            external_id = body.get("id")
        return OperationResult.success(
            data={"external_message_id": external_id},
            message="SMS accepted by GC Notify",
        )

    def _probe_health(self) -> OperationResult:
        response = self.session.get(
            f"{self.api_url}/_status", timeout=self.timeout_seconds
        )
        if not response.ok:
            return classify_http_response(response, provider="gc_notify")
        try:
            status = response.json().get("status")
        except (ValueError, AttributeError):
            status = None
        return OperationResult.success(
            data={"api_status": status}, message="GC Notify reachable"
        )
