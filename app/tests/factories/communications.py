"""Test factories for the communication delivery core.

Factory functions return pydantic models (or response doubles) with
sensible defaults; override only what a test cares about.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

from infrastructure.communications.models import (
    AdapterConfiguration,
    AdapterSettings,
    ChannelType,
    CommunicationMessage,
    DeliveryOptions,
    DeliveryResult,
    DeliveryStatus,
    MessageContent,
    MessageMetadata,
    MessagePriority,
    MessageType,
    QuietHoursWindow,
    Recipient,
    Sender,
    UserPreference,
)

DEFAULT_ORG = "org-1"

DEFAULT_IDENTIFIERS = {
    ChannelType.WHATSAPP: "+447700900123",
    ChannelType.SMS: "+447700900123",
    ChannelType.WEBHOOK: "https://family.example.com/hooks/inbox",
}

DEFAULT_CREDENTIALS = {
    ChannelType.WHATSAPP: {"access_token": "wa-token", "phone_number_id": "1234567"},
    ChannelType.SMS: {"api_key": "notify-key", "template_id": "tmpl-1"},
    ChannelType.WEBHOOK: {"url": "https://family.example.com/hooks/inbox"},
}


def make_message(
    text: str = "Mum had a good lunch today",
    message_type: MessageType = MessageType.TEXT,
    content: Optional[MessageContent] = None,
    recipient: Optional[Recipient] = None,
    organization_id: str = DEFAULT_ORG,
    priority: MessagePriority = MessagePriority.NORMAL,
    max_retries: int = 0,
    fallback_channels: Optional[List[ChannelType]] = None,
    allow_fallback: bool = True,
    override_dnd: bool = False,
    requires_ack: bool = False,
    message_id: Optional[str] = None,
) -> CommunicationMessage:
    """Create a CommunicationMessage.

    ``max_retries`` defaults to 0 so adapter tests count provider calls
    without retries unless they ask for them.
    """
    fields: Dict[str, Any] = dict(
        type=message_type,
        content=content or MessageContent(text=text),
        recipient=recipient,
        sender=Sender(id="care-app", organization_id=organization_id),
        metadata=MessageMetadata(requires_ack=requires_ack),
        priority=priority,
        delivery_options=DeliveryOptions(
            max_retries=max_retries,
            fallback_channels=fallback_channels or [],
            allow_fallback=allow_fallback,
            override_dnd=override_dnd,
        ),
    )
    if message_id is not None:
        fields["message_id"] = message_id
    return CommunicationMessage(**fields)


def make_recipient(
    channel: ChannelType = ChannelType.WHATSAPP, identifier: Optional[str] = None
) -> Recipient:
    return Recipient(
        channel_type=channel, identifier=identifier or DEFAULT_IDENTIFIERS[channel]
    )


def make_preference(
    user_id: str = "family-1",
    organization_id: str = DEFAULT_ORG,
    primary_channel: Optional[ChannelType] = ChannelType.WHATSAPP,
    fallback_channels: Optional[List[ChannelType]] = None,
    verified: Optional[List[ChannelType]] = None,
    unverified: Optional[List[ChannelType]] = None,
    consent_given: bool = True,
    timezone_name: str = "Europe/London",
    quiet_hours: Optional[List[QuietHoursWindow]] = None,
) -> UserPreference:
    """Create a UserPreference with verified identifiers on ``verified`` channels.

    By default only the primary channel is verified.
    """
    if verified is None:
        verified = [primary_channel] if primary_channel else []
    identifiers: Dict[ChannelType, Dict[str, bool]] = {}
    for channel in verified:
        identifiers[channel] = {DEFAULT_IDENTIFIERS[channel]: True}
    for channel in unverified or []:
        identifiers[channel] = {DEFAULT_IDENTIFIERS[channel]: False}
    return UserPreference(
        user_id=user_id,
        organization_id=organization_id,
        primary_channel=primary_channel,
        primary_identifier=DEFAULT_IDENTIFIERS[primary_channel] if primary_channel else None,
        fallback_channels=fallback_channels or [],
        consent_given=consent_given,
        consent_timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc) if consent_given else None,
        timezone=timezone_name,
        quiet_hours=quiet_hours or [],
        channel_identifiers=identifiers,
    )


def make_adapter_configuration(
    channel: ChannelType = ChannelType.WHATSAPP,
    organization_id: str = DEFAULT_ORG,
    credentials: Optional[Dict[str, Any]] = None,
    enabled: bool = True,
    **settings: Any,
) -> AdapterConfiguration:
    """Create an AdapterConfiguration; keyword arguments become AdapterSettings."""
    return AdapterConfiguration(
        adapter_type=channel,
        organization_id=organization_id,
        enabled=enabled,
        credentials=DEFAULT_CREDENTIALS[channel] if credentials is None else credentials,
        settings=AdapterSettings(**settings),
    )


def make_delivery_result(
    channel: ChannelType,
    success: bool = True,
    message_id: str = "msg-1",
    code: str = "PROVIDER_UNAVAILABLE",
    attempt_count: int = 1,
) -> DeliveryResult:
    if success:
        return DeliveryResult(
            success=True,
            message_id=message_id,
            channel=channel,
            status=DeliveryStatus.SENT,
            external_message_id=f"ext-{channel.value}",
            attempt_count=attempt_count,
        )
    return DeliveryResult.failure(
        message_id, channel, code, "provider failed", True, attempt_count
    )


def make_response(
    status_code: int = 200,
    json_body: Any = None,
    headers: Optional[Dict[str, str]] = None,
    text: str = "",
) -> MagicMock:
    """Stand-in for ``requests.Response``."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.headers = headers or {}
    response.text = text
    if json_body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = json_body
    return response
