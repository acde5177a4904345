"""WhatsApp Business Cloud API adapter.

Outbound:  POST {base}/{version}/{phone_number_id}/messages  (Bearer token)
Health:    GET  {base}/{version}/{phone_number_id}?fields=quality_rating,...
Inbound:   Meta webhook envelope (``object``/``entry``/``changes``) carrying
           ``messages`` (user replies) and ``statuses`` (delivery receipts),
           signed with ``X-Hub-Signature-256`` when an app secret is set.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import requests
from pydantic import BaseModel, Field, ValidationError

from infrastructure.communications.adapters.base import ChannelAdapter, is_e164
from infrastructure.communications.errors import (
    InvalidPayloadError,
    SignatureVerificationError,
)
from infrastructure.communications.models import (
    MEDIA_MESSAGE_TYPES,
    AdapterCapabilities,
    ChannelType,
    CommunicationMessage,
    DeliveryError,
    DeliveryStatus,
    DeliveryStatusUpdate,
    IncomingMessage,
    InboundWebhookEvents,
    MessageContent,
    MessageType,
)
from infrastructure.communications.signing import verify_hub_signature
from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult, classify_http_response

logger = get_module_logger()

MAX_TEXT_LENGTH = 4096

# Graph API error codes
AUTH_ERROR_CODES = frozenset({190})
THROTTLING_ERROR_CODES = frozenset({4, 80007, 130429, 131056})
RECIPIENT_ERROR_CODES = frozenset({131026, 131047, 131051})
THROTTLE_RETRY_AFTER_SECONDS = 60.0

STATUS_MAP = {
    "sent": DeliveryStatus.SENT,
    "delivered": DeliveryStatus.DELIVERED,
    "read": DeliveryStatus.DELIVERED,
    "failed": DeliveryStatus.FAILED,
}

INBOUND_TYPE_MAP = {
    "text": MessageType.TEXT,
    "image": MessageType.IMAGE,
    "video": MessageType.VIDEO,
    "audio": MessageType.AUDIO,
    "voice": MessageType.AUDIO,
    "document": MessageType.DOCUMENT,
    "sticker": MessageType.IMAGE,
}


class WhatsAppCredentials(BaseModel):
    """Per-organization WhatsApp Business credentials.

    Attributes:
        access_token: System-user or permanent access token
        phone_number_id: Sending phone number id in the Business account
        business_account_id: WhatsApp Business Account id (informational)
        app_secret: Meta app secret; enables inbound signature verification
        verify_token: Subscription handshake token; deployment default if unset
    """

    access_token: str = Field(..., min_length=1)
    phone_number_id: str = Field(..., min_length=1)
    business_account_id: Optional[str] = None
    app_secret: Optional[str] = None
    verify_token: Optional[str] = None


def _from_timestamp(value: Any) -> datetime:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError):
        return datetime.now(timezone.utc)


class WhatsAppAdapter(ChannelAdapter):
    """Two-way WhatsApp channel.

    Recipient identifiers are E.164 phone numbers (``+447700900123``); the
    leading ``+`` is dropped on the wire as the Cloud API expects.
    """

    channel_type = ChannelType.WHATSAPP
    credentials_model = WhatsAppCredentials

    @property
    def base_url(self) -> str:
        wa = self._settings.whatsapp
        base = self.config.settings.options.get("api_base_url", wa.WHATSAPP_API_BASE_URL)
        version = self.config.settings.options.get("api_version", wa.WHATSAPP_API_VERSION)
        return f"{base.rstrip('/')}/{version}/{self.credentials.phone_number_id}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.credentials.access_token}",
            "Content-Type": "application/json",
        }

    def validate_recipient(self, identifier: str) -> bool:
        return is_e164(identifier)

    def get_capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities(
            supported_message_types=list(MessageType),
            max_text_length=MAX_TEXT_LENGTH,
            supports_two_way=True,
            supports_delivery_receipts=True,
            supports_templates=True,
        )

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def build_payload(self, message: CommunicationMessage) -> Dict[str, Any]:
        """Cloud API request body for ``message``."""
        payload: Dict[str, Any] = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": message.recipient.identifier.lstrip("+"),
        }
        content = message.content

        if message.type in (MessageType.TEXT, MessageType.RICH_TEXT):
            payload["type"] = "text"
            payload["text"] = {
                "body": content.text[:MAX_TEXT_LENGTH],
                "preview_url": message.type == MessageType.RICH_TEXT,
            }
        elif message.type in MEDIA_MESSAGE_TYPES:
            media_type = message.type.value
            media: Dict[str, Any] = {"link": content.media_url}
            if content.caption and message.type != MessageType.AUDIO:
                media["caption"] = content.caption
            if content.filename and message.type == MessageType.DOCUMENT:
                media["filename"] = content.filename
            payload["type"] = media_type
            payload[media_type] = media
        else:
            template: Dict[str, Any] = {
                "name": content.template_name,
                "language": {"code": content.template_language},
            }
            if content.template_parameters:
                template["components"] = [
                    {
                        "type": "body",
                        "parameters": [
                            {"type": "text", "text": p}
                            for p in content.template_parameters
                        ],
                    }
                ]
            payload["type"] = "template"
            payload["template"] = template

        if message.metadata.requires_ack:
            payload["biz_opaque_callback_data"] = message.message_id
        return payload

    def _deliver(self, message: CommunicationMessage) -> OperationResult:
        response = self.session.post(
            f"{self.base_url}/messages",
            json=self.build_payload(message),
            headers=self._headers(),
            timeout=self.timeout_seconds,
        )
        if not response.ok:
            return self._classify_error(response)

        # Accepted by the provider; a reply we cannot read must not trigger a resend
        external_id = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            messages = body.get("messages")
            if isinstance(messages, list) and messages and isinstance(messages[0], dict):
                external_id = messages[0].get("id")
        if external_id is None:
            logger.warning(
                "whatsapp_reply_unreadable",
                adapter_id=self.adapter_id,
                message_id=message.message_id,
            )
        return OperationResult.success(
            data={"external_message_id": external_id},
            message="whatsapp accepted message",
        )

    def _classify_error(self, response: requests.Response) -> OperationResult:
        """Layer Graph API error codes over the generic HTTP classification."""
        try:
            error = (response.json() or {}).get("error") or {}
        except (ValueError, AttributeError):
            error = {}
        if not isinstance(error, dict):
            error = {}
        code = error.get("code")
        detail = error.get("message") or f"HTTP {response.status_code}"

        if code in AUTH_ERROR_CODES or response.status_code in (401, 403):
            return OperationResult.unauthorized(f"whatsapp rejected token: {detail}")
        if code in THROTTLING_ERROR_CODES and response.status_code != 429:
            return OperationResult.rate_limited(
                f"whatsapp throttled request: {detail}",
                retry_after=THROTTLE_RETRY_AFTER_SECONDS,
            )
        if code in RECIPIENT_ERROR_CODES:
            return OperationResult.permanent_error(
                f"whatsapp cannot reach recipient: {detail}",
                error_code="RECIPIENT_UNREACHABLE",
            )
        return classify_http_response(response, provider="whatsapp")

    def _probe_health(self) -> OperationResult:
        response = self.session.get(
            self.base_url,
            params={"fields": "quality_rating,display_phone_number,verified_name"},
            headers=self._headers(),
            timeout=self.timeout_seconds,
        )
        if not response.ok:
            return self._classify_error(response)
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {}
        metadata = {
            "quality_rating": body.get("quality_rating"),
            "display_phone_number": body.get("display_phone_number"),
        }
        if body.get("quality_rating") == "RED":
            logger.warning(
                "whatsapp_quality_rating_low",
                adapter_id=self.adapter_id,
                quality_rating="RED",
            )
        return OperationResult.success(data=metadata, message="whatsapp reachable")

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def verify_subscription(
        self, mode: Optional[str], token: Optional[str], challenge: Optional[str]
    ) -> str:
        """Answer Meta's ``hub.mode=subscribe`` handshake.

        Raises:
            SignatureVerificationError: Wrong mode or token
        """
        expected = (
            self.credentials.verify_token
            or self._settings.whatsapp.WHATSAPP_VERIFY_TOKEN
        )
        if mode != "subscribe" or not expected or token != expected:
            raise SignatureVerificationError("Webhook verification token mismatch")
        return challenge or ""

    def _verify(
        self, headers: Optional[Mapping[str, str]], raw_body: Optional[bytes]
    ) -> None:
        if not self.credentials.app_secret:
            return
        if raw_body is None:
            raise SignatureVerificationError("Raw body required for signature check")
        verify_hub_signature(self.credentials.app_secret, raw_body, headers or {})

    def parse_webhook(
        self,
        payload: Mapping[str, Any],
        headers: Optional[Mapping[str, str]] = None,
        raw_body: Optional[bytes] = None,
    ) -> InboundWebhookEvents:
        self._verify(headers, raw_body)

        if not isinstance(payload, Mapping) or "entry" not in payload:
            raise InvalidPayloadError("Not a WhatsApp webhook payload")

        events = InboundWebhookEvents()
        try:
            for entry in payload.get("entry") or []:
                for change in entry.get("changes") or []:
                    value = change.get("value") or {}
                    names = {
                        str(c.get("wa_id")): (c.get("profile") or {}).get("name")
                        for c in value.get("contacts") or []
                    }
                    for raw in value.get("messages") or []:
                        events.messages.append(self._parse_message(raw, names))
                    for raw in value.get("statuses") or []:
                        events.statuses.append(self._parse_status(raw))
        except (AttributeError, TypeError, ValidationError) as e:
            raise InvalidPayloadError(f"Malformed WhatsApp webhook: {e}") from e
        return events

    def receive_message(
        self,
        payload: Mapping[str, Any],
        headers: Optional[Mapping[str, str]] = None,
        raw_body: Optional[bytes] = None,
    ) -> IncomingMessage:
        events = self.parse_webhook(payload, headers=headers, raw_body=raw_body)
        if not events.messages:
            raise InvalidPayloadError("WhatsApp webhook carries no messages")
        return events.messages[0]

    def _parse_message(
        self, raw: Mapping[str, Any], names: Dict[str, Optional[str]]
    ) -> IncomingMessage:
        try:
            external_id = str(raw["id"])
            wa_id = str(raw["from"])
            raw_type = raw.get("type", "text")
        except (KeyError, TypeError) as e:
            raise InvalidPayloadError(f"Malformed WhatsApp message: {e}") from e

        message_type = INBOUND_TYPE_MAP.get(raw_type, MessageType.TEXT)
        if raw_type == "text":
            content = MessageContent(text=(raw.get("text") or {}).get("body", ""))
        elif raw_type in INBOUND_TYPE_MAP:
            media = raw.get(raw_type) or {}
            content = MessageContent(
                media_url=media.get("id"),
                caption=media.get("caption"),
                filename=media.get("filename"),
                mime_type=media.get("mime_type"),
            )
        elif raw_type == "button":
            content = MessageContent(text=(raw.get("button") or {}).get("text", ""))
        elif raw_type == "interactive":
            reply = raw.get("interactive") or {}
            chosen = reply.get("button_reply") or reply.get("list_reply") or {}
            content = MessageContent(text=chosen.get("title", ""))
        else:
            content = MessageContent(text=f"[unsupported whatsapp message: {raw_type}]")

        sender = wa_id if wa_id.startswith("+") else f"+{wa_id}"
        return IncomingMessage(
            external_message_id=external_id,
            channel=ChannelType.WHATSAPP,
            sender=sender,
            sender_name=names.get(wa_id),
            type=message_type,
            content=content,
            received_at=_from_timestamp(raw.get("timestamp")),
            conversation_id=(raw.get("context") or {}).get("id") or wa_id,
            organization_id=self.config.organization_id if self.config else None,
        )

    def _parse_status(self, raw: Mapping[str, Any]) -> DeliveryStatusUpdate:
        try:
            external_id = raw["id"]
            status = STATUS_MAP[raw["status"]]
        except (KeyError, TypeError) as e:
            raise InvalidPayloadError(f"Malformed WhatsApp status: {e}") from e

        error = None
        errors: List[Mapping[str, Any]] = raw.get("errors") or []
        if errors:
            first = errors[0]
            error = DeliveryError(
                code=f"WHATSAPP_{first.get('code', 'UNKNOWN')}",
                message=first.get("title") or first.get("message") or "delivery failed",
            )
        recipient = raw.get("recipient_id")
        if recipient is not None:
            recipient = str(recipient)
        return DeliveryStatusUpdate(
            external_message_id=external_id,
            channel=ChannelType.WHATSAPP,
            status=status,
            recipient=f"+{recipient}" if recipient and not recipient.startswith("+") else recipient,
            timestamp=_from_timestamp(raw.get("timestamp")),
            error=error,
        )
