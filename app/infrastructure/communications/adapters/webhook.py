"""Generic outbound/inbound webhook adapter.

Outbound messages are POSTed as a JSON envelope either to the configured
URL or, when the recipient identifier is itself an absolute http(s) URL,
to that URL. Inbound calls use the same envelope, so a payload built by
``build_payload`` parses back with ``receive_message`` unchanged.

Envelope:
    {
        "event": "message",
        "message_id": "...",
        "type": "text",
        "content": {...},
        "recipient": {"identifier": "...", "display_name": "..."},
        "sender": {"id": "...", "role": "...", "organization_id": "..."},
        "metadata": {...},
        "priority": "normal",
        "conversation_id": "...",
        "timestamp": "2024-01-01T00:00:00+00:00"
    }

Status receipts use ``"event": "status"`` with ``message_id``, ``status``
and optional ``error``.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Mapping, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationError, model_validator

from infrastructure.communications.adapters.base import ChannelAdapter
from infrastructure.communications.errors import (
    AdapterConfigurationError,
    InvalidPayloadError,
    SignatureVerificationError,
)
from infrastructure.communications.models import (
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
from infrastructure.communications.signing import sign_payload, verify_signature
from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult, classify_http_response

logger = get_module_logger()

MAX_PAYLOAD_TEXT_LENGTH = 65536


class WebhookCredentials(BaseModel):
    """Endpoint, authentication and signing configuration.

    Attributes:
        url: Default target URL; optional when recipients are URLs
        auth_type: none | bearer | api_key | basic
        token: Bearer token (auth_type=bearer)
        api_key: Key value (auth_type=api_key)
        api_key_header: Header carrying the key (default X-API-Key)
        username: Basic auth user (auth_type=basic)
        password: Basic auth password (auth_type=basic)
        signing_secret: HMAC secret; signs outbound and verifies inbound payloads
        headers: Extra headers sent with every request
    """

    url: Optional[str] = None
    auth_type: Literal["none", "bearer", "api_key", "basic"] = "none"
    token: Optional[str] = None
    api_key: Optional[str] = None
    api_key_header: str = "X-API-Key"
    username: Optional[str] = None
    password: Optional[str] = None
    signing_secret: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_auth_fields(self) -> "WebhookCredentials":
        """Ensure the chosen auth scheme has what it needs."""
        if self.auth_type == "bearer" and not self.token:
            raise ValueError("bearer auth requires token")
        if self.auth_type == "api_key" and not self.api_key:
            raise ValueError("api_key auth requires api_key")
        if self.auth_type == "basic" and not (self.username and self.password):
            raise ValueError("basic auth requires username and password")
        return self


def _is_http_url(value: Optional[str]) -> bool:
    if not value:
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _serialize(payload: Mapping[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")


class WebhookAdapter(ChannelAdapter):
    """Two-way webhook channel with pluggable auth and HMAC signing."""

    channel_type = ChannelType.WEBHOOK
    credentials_model = WebhookCredentials

    def _on_initialize(self) -> None:
        if self.credentials.url is not None and not _is_http_url(self.credentials.url):
            raise AdapterConfigurationError(
                f"Webhook url must be an absolute http(s) URL: {self.credentials.url!r}"
            )

    def validate_recipient(self, identifier: str) -> bool:
        if not identifier or any(ch.isspace() for ch in identifier):
            return False
        if "://" in identifier:
            return _is_http_url(identifier)
        # Opaque ids need a configured endpoint to post to
        return bool(self.credentials and self.credentials.url)

    def get_capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities(
            supported_message_types=list(MessageType),
            max_text_length=MAX_PAYLOAD_TEXT_LENGTH,
            supports_two_way=True,
            supports_delivery_receipts=True,
            supports_templates=True,
        )

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def build_payload(self, message: CommunicationMessage) -> Dict[str, Any]:
        """JSON envelope for ``message``."""
        recipient = None
        if message.recipient is not None:
            recipient = {
                "identifier": message.recipient.identifier,
                "display_name": message.recipient.display_name,
            }
        return {
            "event": "message",
            "message_id": message.message_id,
            "type": message.type.value,
            "content": message.content.model_dump(mode="json"),
            "recipient": recipient,
            "sender": message.sender.model_dump(mode="json"),
            "metadata": message.metadata.model_dump(mode="json"),
            "priority": message.priority.value,
            "conversation_id": message.message_id,
            "timestamp": message.created_at.isoformat(),
        }

    def _target_url(self, message: CommunicationMessage) -> str:
        identifier = message.recipient.identifier
        return identifier if _is_http_url(identifier) else self.credentials.url

    def _request_headers(self, body: bytes) -> Dict[str, str]:
        creds = self.credentials
        headers = {"Content-Type": "application/json", **creds.headers}
        if creds.auth_type == "bearer":
            headers["Authorization"] = f"Bearer {creds.token}"
        elif creds.auth_type == "api_key":
            headers[creds.api_key_header] = creds.api_key
        if creds.signing_secret:
            headers.update(sign_payload(creds.signing_secret, body))
        return headers

    def _auth(self):
        creds = self.credentials
        if creds.auth_type == "basic":
            return (creds.username, creds.password)
        return None

    def _deliver(self, message: CommunicationMessage) -> OperationResult:
        body = _serialize(self.build_payload(message))
        response = self.session.post(
            self._target_url(message),
            data=body,
            headers=self._request_headers(body),
            auth=self._auth(),
            timeout=self.timeout_seconds,
        )
        if not response.ok:
            return classify_http_response(response, provider="webhook")

        external_id = None
        try:
            reply = response.json()
        except ValueError:
            reply = None
        if isinstance(reply, dict):
            external_id = reply.get("id") or reply.get("message_id")
        if external_id is None:
            external_id = response.headers.get("X-Request-Id")
        return OperationResult.success(
            data={"external_message_id": external_id},
            message="webhook accepted message",
        )

    def _probe_health(self) -> OperationResult:
        probe_url = self.config.settings.options.get("health_check_url")
        if probe_url:
            response = self.session.get(
                probe_url,
                headers=self._request_headers(b""),
                auth=self._auth(),
                timeout=self.timeout_seconds,
            )
        elif self.credentials.url:
            response = self.session.head(
                self.credentials.url,
                headers=self._request_headers(b""),
                auth=self._auth(),
                timeout=self.timeout_seconds,
            )
        else:
            return OperationResult.success(
                data={"probe": "skipped"}, message="no fixed endpoint to probe"
            )

        # Any non-auth 4xx still proves the endpoint is up
        if response.status_code < 500 and response.status_code not in (401, 403):
            return OperationResult.success(
                data={"status_code": response.status_code},
                message="webhook endpoint reachable",
            )
        return classify_http_response(response, provider="webhook")

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _verify(
        self, headers: Optional[Mapping[str, str]], raw_body: Optional[bytes]
    ) -> None:
        secret = self.credentials.signing_secret if self.credentials else None
        if not secret:
            return
        if raw_body is None:
            raise SignatureVerificationError("Raw body required for signature check")
        verify_signature(
            secret,
            raw_body,
            headers or {},
            tolerance_seconds=self._settings.communications.signature_tolerance_seconds,
        )

    def parse_webhook(
        self,
        payload: Mapping[str, Any],
        headers: Optional[Mapping[str, str]] = None,
        raw_body: Optional[bytes] = None,
    ) -> InboundWebhookEvents:
        self._verify(headers, raw_body)
        if not isinstance(payload, Mapping):
            raise InvalidPayloadError("Webhook payload must be a JSON object")

        event = payload.get("event", "message")
        if event == "status":
            return InboundWebhookEvents(statuses=[self._parse_status(payload)])
        if event == "message":
            return InboundWebhookEvents(messages=[self._parse_message(payload)])
        raise InvalidPayloadError(f"Unknown webhook event: {event!r}")

    def receive_message(
        self,
        payload: Mapping[str, Any],
        headers: Optional[Mapping[str, str]] = None,
        raw_body: Optional[bytes] = None,
    ) -> IncomingMessage:
        events = self.parse_webhook(payload, headers=headers, raw_body=raw_body)
        if not events.messages:
            raise InvalidPayloadError("Webhook payload carries no message")
        return events.messages[0]

    def _parse_message(self, payload: Mapping[str, Any]) -> IncomingMessage:
        try:
            message_id = payload["message_id"]
            message_type = MessageType(payload.get("type", "text"))
            content = MessageContent.model_validate(payload["content"])
            sender = payload.get("sender") or {}
            if not isinstance(sender, Mapping):
                raise InvalidPayloadError("Webhook sender must be an object")
            received_at = payload.get("timestamp") or datetime.now(timezone.utc)
            return IncomingMessage(
                external_message_id=message_id,
                channel=ChannelType.WEBHOOK,
                sender=sender.get("id") or "unknown",
                sender_name=sender.get("display_name"),
                type=message_type,
                content=content,
                received_at=received_at,
                conversation_id=payload.get("conversation_id"),
                organization_id=sender.get("organization_id")
                or (self.config.organization_id if self.config else None),
            )
        except (KeyError, TypeError, AttributeError, ValueError, ValidationError) as e:
            raise InvalidPayloadError(f"Malformed webhook message: {e}") from e

    def _parse_status(self, payload: Mapping[str, Any]) -> DeliveryStatusUpdate:
        try:
            error = payload.get("error")
            return DeliveryStatusUpdate(
                external_message_id=payload["message_id"],
                channel=ChannelType.WEBHOOK,
                status=DeliveryStatus(payload["status"]),
                recipient=payload.get("recipient"),
                timestamp=payload.get("timestamp") or datetime.now(timezone.utc),
                error=DeliveryError.model_validate(error) if error else None,
            )
        except (KeyError, TypeError, AttributeError, ValueError, ValidationError) as e:
            raise InvalidPayloadError(f"Malformed webhook status: {e}") from e
