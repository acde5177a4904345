"""Communication delivery core models.

Channel-agnostic models shared by adapters, the preference service and the
orchestrator. Producers build a CommunicationMessage and a target user id;
adapters translate it to one provider's wire format and report a
DeliveryResult; the orchestrator aggregates attempts into an
OrchestratedDeliveryResult.

Uses Pydantic BaseModel for:
- Runtime input validation at the producer and webhook boundaries
- Immutable (frozen) configuration and message objects
- JSON-friendly dumps for the idempotency cache and the HTTP API
"""

import uuid
from datetime import datetime, time, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import pytz
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from infrastructure.resilience.retry import RetryStrategy


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChannelType(Enum):
    """Communication medium. The value doubles as the adapter type name."""

    WHATSAPP = "whatsapp"
    WEBHOOK = "webhook"
    SMS = "sms"
    EMAIL = "email"
    PUSH = "push"


class MessageType(Enum):
    """Content shape carried by a CommunicationMessage."""

    TEXT = "text"
    RICH_TEXT = "rich_text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    TEMPLATE = "template"


MEDIA_MESSAGE_TYPES = frozenset(
    {MessageType.IMAGE, MessageType.VIDEO, MessageType.AUDIO, MessageType.DOCUMENT}
)


class MessagePriority(Enum):
    """Message priority levels.

    Only URGENT bypasses a recipient's quiet hours.
    """

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class DeliveryStatus(Enum):
    """Delivery status of one attempt or of an aggregated delivery.

    QUEUED means "not attempted by policy" (quiet hours), not an error.
    """

    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


class AdapterState(Enum):
    """Adapter lifecycle: uninitialized -> initializing -> ready <-> degraded -> shutdown."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DEGRADED = "degraded"
    SHUTDOWN = "shutdown"


class ConsentAction(Enum):
    OPT_IN = "opt_in"
    OPT_OUT = "opt_out"


# ---------------------------------------------------------------------------
# Adapter configuration
# ---------------------------------------------------------------------------


class AdapterSettings(BaseModel):
    """Per-adapter tuning. ``None`` fields fall back to the deployment settings.

    Attributes:
        timeout_seconds: Provider call timeout
        rate_limit_capacity: Token bucket size
        rate_limit_interval_seconds: Time to refill an empty bucket
        queue_on_rate_limit: Wait briefly for a token instead of failing fast
        queue_timeout_seconds: Longest wait when queueing
        retry_strategy: FIXED / LINEAR / EXPONENTIAL
        retry_base_delay_seconds: Backoff unit
        retry_max_delay_seconds: Backoff cap
        retry_max_attempts: Total attempts per send, first call included
        retry_jitter: Randomize backoff
        degraded_after_failures: Failed health checks before DEGRADED
        options: Provider-specific options (callback URL, health check URL, ...)
    """

    model_config = ConfigDict(frozen=True)

    timeout_seconds: Optional[float] = Field(default=None, gt=0)
    rate_limit_capacity: Optional[int] = Field(default=None, ge=1)
    rate_limit_interval_seconds: Optional[float] = Field(default=None, gt=0)
    queue_on_rate_limit: Optional[bool] = None
    queue_timeout_seconds: Optional[float] = Field(default=None, ge=0)
    retry_strategy: Optional[RetryStrategy] = None
    retry_base_delay_seconds: Optional[float] = Field(default=None, ge=0)
    retry_max_delay_seconds: Optional[float] = Field(default=None, ge=0)
    retry_max_attempts: Optional[int] = Field(default=None, ge=1)
    retry_jitter: Optional[bool] = None
    degraded_after_failures: Optional[int] = Field(default=None, ge=1)
    options: Dict[str, Any] = Field(default_factory=dict)


class AdapterConfiguration(BaseModel):
    """One organization's configuration of one channel.

    Immutable: reconfiguration replaces the object, and the factory treats a
    different configuration for the same (type, organization) as a reason
    to build a fresh adapter instance.

    Example:
        config = AdapterConfiguration(
            adapter_type=ChannelType.WHATSAPP,
            organization_id="org-1",
            credentials={"access_token": "...", "phone_number_id": "1234"},
            settings=AdapterSettings(rate_limit_capacity=20),
        )
    """

    model_config = ConfigDict(frozen=True)

    adapter_type: ChannelType
    organization_id: str = Field(..., min_length=1)
    enabled: bool = True
    credentials: Dict[str, Any] = Field(default_factory=dict)
    settings: AdapterSettings = Field(default_factory=AdapterSettings)

    @property
    def key(self) -> tuple:
        return (self.adapter_type, self.organization_id)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class MessageContent(BaseModel):
    """Payload of a message. Which fields are required depends on the type."""

    model_config = ConfigDict(frozen=True)

    text: Optional[str] = None
    media_url: Optional[str] = None
    caption: Optional[str] = None
    filename: Optional[str] = None
    mime_type: Optional[str] = None
    template_name: Optional[str] = None
    template_language: str = "en_GB"
    template_parameters: List[str] = Field(default_factory=list)


class Recipient(BaseModel):
    """Channel-specific address of a message.

    Attributes:
        channel_type: Channel the identifier belongs to
        identifier: Phone number (E.164), URL, opaque id, ...
        display_name: Optional name for logs and templates
    """

    model_config = ConfigDict(frozen=True)

    channel_type: ChannelType
    identifier: str = Field(..., min_length=1)
    display_name: Optional[str] = None


class Sender(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    role: str = "system"
    organization_id: str


class MessageMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str = "general"
    is_urgent: bool = False
    requires_ack: bool = False
    encryption_required: bool = False


class DeliveryOptions(BaseModel):
    """Per-message delivery behaviour.

    Attributes:
        max_retries: Retries per channel after the first attempt
        fallback_channels: Channels tried after the primary, before stored fallbacks
        allow_fallback: When False, only the primary channel is tried
        override_dnd: Send even during the recipient's quiet hours
    """

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    fallback_channels: List[ChannelType] = Field(default_factory=list)
    allow_fallback: bool = True
    override_dnd: bool = False


class CommunicationMessage(BaseModel):
    """Channel-agnostic message handed to the orchestrator by producers.

    Immutable. The orchestrator fills in ``recipient`` per channel attempt
    with ``with_recipient`` rather than mutating the original.

    Example:
        message = CommunicationMessage(
            type=MessageType.TEXT,
            content=MessageContent(text="Visit confirmed for 14:00"),
            sender=Sender(id="scheduler", organization_id="org-1"),
        )
    """

    model_config = ConfigDict(frozen=True)

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: MessageType = MessageType.TEXT
    content: MessageContent
    recipient: Optional[Recipient] = None
    sender: Sender
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)
    priority: MessagePriority = MessagePriority.NORMAL
    delivery_options: DeliveryOptions = Field(default_factory=DeliveryOptions)
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def validate_content_matches_type(self) -> "CommunicationMessage":
        """Ensure the content carries what the message type needs."""
        if self.type in (MessageType.TEXT, MessageType.RICH_TEXT):
            if not self.content.text or not self.content.text.strip():
                raise ValueError(f"{self.type.value} message requires non-empty text")
        elif self.type in MEDIA_MESSAGE_TYPES:
            if not self.content.media_url:
                raise ValueError(f"{self.type.value} message requires media_url")
        elif self.type == MessageType.TEMPLATE:
            if not self.content.template_name:
                raise ValueError("template message requires template_name")
        return self

    def with_recipient(self, recipient: Recipient) -> "CommunicationMessage":
        """Copy of this message addressed to ``recipient``."""
        return self.model_copy(update={"recipient": recipient})

    @property
    def summary_text(self) -> str:
        """Best plain-text rendering, used by text-only channels."""
        if self.type == MessageType.TEMPLATE:
            params = " ".join(self.content.template_parameters)
            return self.content.text or f"{self.content.template_name} {params}".strip()
        if self.type in MEDIA_MESSAGE_TYPES:
            parts = [self.content.caption or self.content.text, self.content.media_url]
            return " ".join(p for p in parts if p)
        return self.content.text or ""


class DeliveryRequest(BaseModel):
    """Producer call: deliver ``message`` to ``user_id``."""

    message: CommunicationMessage
    user_id: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class DeliveryError(BaseModel):
    """Structured failure carried in results instead of raising."""

    code: str
    message: str
    retryable: bool = False


class DeliveryResult(BaseModel):
    """Outcome of one channel attempt (retries included).

    Attributes:
        attempt_count: Provider calls made on this channel for this send
    """

    success: bool
    message_id: str
    channel: ChannelType
    status: DeliveryStatus
    external_message_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
    cost_estimate: Optional[float] = None
    error: Optional[DeliveryError] = None
    attempt_count: int = 0

    @classmethod
    def failure(
        cls,
        message_id: str,
        channel: ChannelType,
        code: str,
        message: str,
        retryable: bool = False,
        attempt_count: int = 0,
    ) -> "DeliveryResult":
        return cls(
            success=False,
            message_id=message_id,
            channel=channel,
            status=DeliveryStatus.FAILED,
            error=DeliveryError(code=code, message=message, retryable=retryable),
            attempt_count=attempt_count,
        )


class OrchestratedDeliveryResult(BaseModel):
    """Aggregated outcome of delivering one message to one user.

    ``attempts`` holds one DeliveryResult per channel tried, in order.
    ``fallback_attempts`` is the number of channels tried after the first.
    """

    success: bool
    status: DeliveryStatus
    message_id: str
    user_id: str
    channel_used: Optional[ChannelType] = None
    fallback_attempts: int = 0
    attempts: List[DeliveryResult] = Field(default_factory=list)
    external_message_id: Optional[str] = None
    error: Optional[DeliveryError] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class BroadcastResult(BaseModel):
    results: List[OrchestratedDeliveryResult] = Field(default_factory=list)
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    queued: int = 0

    @classmethod
    def from_results(
        cls, results: List[OrchestratedDeliveryResult]
    ) -> "BroadcastResult":
        return cls(
            results=results,
            total=len(results),
            succeeded=sum(1 for r in results if r.success),
            queued=sum(1 for r in results if r.status == DeliveryStatus.QUEUED),
            failed=sum(
                1
                for r in results
                if not r.success and r.status != DeliveryStatus.QUEUED
            ),
        )


# ---------------------------------------------------------------------------
# Preferences and consent
# ---------------------------------------------------------------------------


class QuietHoursWindow(BaseModel):
    """Do-not-disturb window in the user's local time.

    ``end <= start`` means the window crosses midnight and ends on the
    following day; ``start == end`` therefore covers a full 24 hours.

    Attributes:
        day_of_week: 0=Monday .. 6=Sunday the window starts on; None = every day
        start: Local start time (inclusive)
        end: Local end time (exclusive)
    """

    model_config = ConfigDict(frozen=True)

    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    start: time
    end: time

    @property
    def crosses_midnight(self) -> bool:
        return self.end <= self.start

    def contains(self, local_dt: datetime) -> bool:
        """Whether ``local_dt`` (already in the user's timezone) is inside."""
        t = local_dt.time().replace(tzinfo=None)
        weekday = local_dt.weekday()

        if not self.crosses_midnight:
            if self.day_of_week is not None and weekday != self.day_of_week:
                return False
            return self.start <= t < self.end

        if self.day_of_week is None:
            return t >= self.start or t < self.end
        if weekday == self.day_of_week and t >= self.start:
            return True
        return weekday == (self.day_of_week + 1) % 7 and t < self.end


class ConsentAuditEntry(BaseModel):
    """Immutable record of one consent change."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    action: ConsentAction
    actor: str
    reason: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class UserPreference(BaseModel):
    """A user's routing, consent and quiet-hours preferences.

    Attributes:
        primary_channel: Preferred channel, used only when its identifier is verified
        primary_identifier: Address on the primary channel
        fallback_channels: Stored fallback order
        channel_identifiers: channel -> identifier -> verified flag
        quiet_hours: Local-time windows during which non-urgent messages wait
    """

    user_id: str = Field(..., min_length=1)
    organization_id: str
    primary_channel: Optional[ChannelType] = None
    primary_identifier: Optional[str] = None
    fallback_channels: List[ChannelType] = Field(default_factory=list)
    language: str = "en-GB"
    timezone: str = "Europe/London"
    consent_given: bool = False
    consent_timestamp: Optional[datetime] = None
    quiet_hours: List[QuietHoursWindow] = Field(default_factory=list)
    channel_identifiers: Dict[ChannelType, Dict[str, bool]] = Field(
        default_factory=dict
    )
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Ensure the timezone is a known IANA name."""
        try:
            pytz.timezone(v)
        except pytz.UnknownTimeZoneError as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    def verified_identifier(self, channel: ChannelType) -> Optional[str]:
        """Identifier usable for automatic routing on ``channel``, if any.

        The primary identifier wins on the primary channel when verified;
        otherwise the first verified identifier registered for the channel.
        """
        identifiers = self.channel_identifiers.get(channel, {})
        if (
            channel == self.primary_channel
            and self.primary_identifier
            and identifiers.get(self.primary_identifier)
        ):
            return self.primary_identifier
        for identifier, verified in identifiers.items():
            if verified:
                return identifier
        return None


# ---------------------------------------------------------------------------
# Adapter reporting
# ---------------------------------------------------------------------------


class HealthCheckResult(BaseModel):
    """Latest health of one adapter instance."""

    adapter_id: str
    healthy: bool
    state: Optional[AdapterState] = None
    timestamp: datetime = Field(default_factory=_utcnow)
    latency_ms: float = 0.0
    errors: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AdapterCapabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    supported_message_types: List[MessageType]
    max_text_length: int
    supports_two_way: bool = False
    supports_delivery_receipts: bool = False
    supports_templates: bool = False

    def supports(self, message_type: MessageType) -> bool:
        return message_type in self.supported_message_types


class IncomingMessage(BaseModel):
    """Inbound message normalized from a provider webhook.

    Attributes:
        sender: Channel identifier of the author (phone number, URL, id)
        conversation_id: Provider thread/conversation reference, if any
    """

    external_message_id: str
    channel: ChannelType
    sender: str
    sender_name: Optional[str] = None
    type: MessageType = MessageType.TEXT
    content: MessageContent
    received_at: datetime = Field(default_factory=_utcnow)
    conversation_id: Optional[str] = None
    organization_id: Optional[str] = None


class DeliveryStatusUpdate(BaseModel):
    """Provider delivery receipt for a previously sent message."""

    external_message_id: str
    channel: ChannelType
    status: DeliveryStatus
    recipient: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
    error: Optional[DeliveryError] = None


class InboundWebhookEvents(BaseModel):
    """Everything parsed from one inbound webhook call."""

    messages: List[IncomingMessage] = Field(default_factory=list)
    statuses: List[DeliveryStatusUpdate] = Field(default_factory=list)
