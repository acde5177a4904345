"""Communication delivery subsystem.

Channel adapters, the adapter factory, user preferences and consent, and
the orchestrator that routes messages with quiet hours, retries and
fallback.

Usage:
    from infrastructure.communications import (
        CommunicationMessage,
        DeliveryRequest,
        MessageContent,
        Sender,
    )
    from infrastructure.services import get_communications_service

    service = get_communications_service()
    result = service.send_message(
        DeliveryRequest(
            message=CommunicationMessage(
                content=MessageContent(text="Medication round complete"),
                sender=Sender(id="emar", organization_id="org-1"),
            ),
            user_id="family-42",
        )
    )
"""

from infrastructure.communications.adapters import (
    ChannelAdapter,
    SMSAdapter,
    WebhookAdapter,
    WhatsAppAdapter,
)
from infrastructure.communications.configuration_store import (
    AdapterConfigurationStore,
    InMemoryAdapterConfigurationStore,
)
from infrastructure.communications.deferred import DeferredDelivery, DeferredMessageQueue
from infrastructure.communications.errors import (
    AdapterConfigurationError,
    AdapterNotRegisteredError,
    CommunicationError,
    InvalidPayloadError,
    PreferenceNotFoundError,
    SignatureVerificationError,
    UnsupportedOperationError,
)
from infrastructure.communications.factory import AdapterFactory
from infrastructure.communications.models import (
    AdapterCapabilities,
    AdapterConfiguration,
    AdapterSettings,
    AdapterState,
    BroadcastResult,
    ChannelType,
    CommunicationMessage,
    ConsentAction,
    ConsentAuditEntry,
    DeliveryError,
    DeliveryOptions,
    DeliveryRequest,
    DeliveryResult,
    DeliveryStatus,
    DeliveryStatusUpdate,
    HealthCheckResult,
    IncomingMessage,
    InboundWebhookEvents,
    MessageContent,
    MessageMetadata,
    MessagePriority,
    MessageType,
    OrchestratedDeliveryResult,
    QuietHoursWindow,
    Recipient,
    Sender,
    UserPreference,
)
from infrastructure.communications.orchestrator import CommunicationOrchestrator
from infrastructure.communications.preferences import (
    InMemoryPreferenceStore,
    PreferenceService,
    PreferenceStore,
)
from infrastructure.communications.service import CommunicationsService

__all__ = [
    # Adapters
    "ChannelAdapter",
    "SMSAdapter",
    "WebhookAdapter",
    "WhatsAppAdapter",
    "AdapterFactory",
    # Services
    "CommunicationOrchestrator",
    "CommunicationsService",
    "PreferenceService",
    "PreferenceStore",
    "InMemoryPreferenceStore",
    "AdapterConfigurationStore",
    "InMemoryAdapterConfigurationStore",
    "DeferredDelivery",
    "DeferredMessageQueue",
    # Errors
    "CommunicationError",
    "AdapterConfigurationError",
    "AdapterNotRegisteredError",
    "InvalidPayloadError",
    "PreferenceNotFoundError",
    "SignatureVerificationError",
    "UnsupportedOperationError",
    # Models
    "AdapterCapabilities",
    "AdapterConfiguration",
    "AdapterSettings",
    "AdapterState",
    "BroadcastResult",
    "ChannelType",
    "CommunicationMessage",
    "ConsentAction",
    "ConsentAuditEntry",
    "DeliveryError",
    "DeliveryOptions",
    "DeliveryRequest",
    "DeliveryResult",
    "DeliveryStatus",
    "DeliveryStatusUpdate",
    "HealthCheckResult",
    "IncomingMessage",
    "InboundWebhookEvents",
    "MessageContent",
    "MessageMetadata",
    "MessagePriority",
    "MessageType",
    "OrchestratedDeliveryResult",
    "QuietHoursWindow",
    "Recipient",
    "Sender",
    "UserPreference",
]
