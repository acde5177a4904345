"""Communications service facade.

Wires the adapter factory, preference service, configuration store,
idempotency cache and orchestrator from Settings, and exposes the
operations used by producers and the HTTP API.

Usage:
    # Via dependency injection
    from infrastructure.services import CommunicationsServiceDep

    @router.get("/health")
    def health(service: CommunicationsServiceDep):
        return service.get_health_status()

    # Direct instantiation
    service = CommunicationsService(settings=get_settings())
    service.configure_adapter(config)
    result = service.send_message(DeliveryRequest(message=message, user_id="user-1"))
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, TYPE_CHECKING, Union

from infrastructure.communications.adapters import BUILTIN_ADAPTERS, ChannelAdapter
from infrastructure.communications.configuration_store import (
    AdapterConfigurationStore,
    InMemoryAdapterConfigurationStore,
)
from infrastructure.communications.errors import AdapterConfigurationError
from infrastructure.communications.factory import AdapterFactory, as_channel_type
from infrastructure.communications.models import (
    AdapterConfiguration,
    BroadcastResult,
    ChannelType,
    CommunicationMessage,
    DeliveryRequest,
    HealthCheckResult,
    InboundWebhookEvents,
    OrchestratedDeliveryResult,
)
from infrastructure.communications.orchestrator import CommunicationOrchestrator
from infrastructure.communications.preferences import PreferenceService
from infrastructure.idempotency import IdempotencyCache, InMemoryIdempotencyCache
from infrastructure.logging import get_module_logger

if TYPE_CHECKING:
    from infrastructure.configuration import Settings

logger = get_module_logger()

InboundListener = Callable[[ChannelAdapter, InboundWebhookEvents], None]


class CommunicationsService:
    """Application-scoped entry point to the delivery subsystem.

    Args:
        settings: Settings instance (required, passed from provider)
        factory: Pre-built factory; one with the built-in adapters otherwise
        preferences: Preference service; in-memory store otherwise
        configurations: Adapter configuration store; in-memory otherwise
        idempotency_cache: Result cache; in-memory otherwise
        **adapter_kwargs: Forwarded to adapters built by the default factory
    """

    def __init__(
        self,
        settings: "Settings",
        factory: Optional[AdapterFactory] = None,
        preferences: Optional[PreferenceService] = None,
        configurations: Optional[AdapterConfigurationStore] = None,
        idempotency_cache: Optional[IdempotencyCache] = None,
        **adapter_kwargs: Any,
    ):
        self.settings = settings
        comms = settings.communications

        self.factory = factory or AdapterFactory(settings=settings, **adapter_kwargs)
        for adapter_cls in BUILTIN_ADAPTERS:
            if not self.factory.is_registered(adapter_cls.channel_type):
                self.factory.register(adapter_cls)

        self.preferences = preferences or PreferenceService()
        self.configurations = configurations or InMemoryAdapterConfigurationStore()
        self._inbound_listeners: List[InboundListener] = []
        self.orchestrator = CommunicationOrchestrator(
            preferences=self.preferences,
            factory=self.factory,
            configurations=self.configurations,
            idempotency_cache=idempotency_cache or InMemoryIdempotencyCache(),
            idempotency_ttl_seconds=comms.idempotency_ttl_seconds,
            broadcast_max_concurrency=comms.broadcast_max_concurrency,
        )

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def send_message(self, request: DeliveryRequest) -> OrchestratedDeliveryResult:
        return self.orchestrator.send_message(request)

    def broadcast_message(
        self, message: CommunicationMessage, user_ids: List[str]
    ) -> BroadcastResult:
        return self.orchestrator.broadcast_message(message, user_ids)

    def process_deferred(
        self, now: Optional[datetime] = None
    ) -> List[OrchestratedDeliveryResult]:
        return self.orchestrator.process_deferred(now)

    # ------------------------------------------------------------------
    # Adapter configuration
    # ------------------------------------------------------------------

    def configure_adapter(self, config: AdapterConfiguration) -> None:
        """Save ``config`` and bring any live adapter in line with it.

        A live adapter is rebuilt with the new configuration, or shut down
        when the configuration disables the channel.
        """
        self.configurations.put(config)
        live = self.factory.get_adapter(config.adapter_type, config.organization_id)
        if live is None:
            return
        if config.enabled:
            self.factory.create_adapter(config.adapter_type, config)
        else:
            self.factory.shutdown_adapter(config.adapter_type, config.organization_id)

    def remove_adapter(
        self, adapter_type: Union[ChannelType, str], organization_id: str
    ) -> bool:
        channel = as_channel_type(adapter_type)
        self.configurations.delete(channel, organization_id)
        return self.factory.shutdown_adapter(channel, organization_id)

    def get_adapter(
        self, adapter_type: Union[ChannelType, str], organization_id: str
    ) -> ChannelAdapter:
        """Adapter for an organization's configured channel, created on demand.

        Raises:
            AdapterNotRegisteredError: Unknown adapter type
            AdapterConfigurationError: Channel not configured, disabled or invalid
        """
        channel = as_channel_type(adapter_type)
        config = self.configurations.get(channel, organization_id)
        if config is None:
            raise AdapterConfigurationError(
                f"{channel.value} is not configured for organization {organization_id}"
            )
        return self.factory.create_adapter(channel, config)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def add_inbound_listener(self, listener: InboundListener) -> None:
        """Register a callable invoked with every parsed inbound webhook."""
        self._inbound_listeners.append(listener)

    def receive_webhook(
        self,
        adapter_type: Union[ChannelType, str],
        organization_id: str,
        payload: Mapping[str, Any],
        headers: Optional[Mapping[str, str]] = None,
        raw_body: Optional[bytes] = None,
    ) -> InboundWebhookEvents:
        """Parse a provider callback and hand the events to the listeners.

        Raises:
            AdapterNotRegisteredError: Unknown adapter type
            AdapterConfigurationError: Channel not configured for the organization
            SignatureVerificationError: Signature missing, stale or wrong
            InvalidPayloadError: Payload not understood by the adapter
            UnsupportedOperationError: Adapter is outbound only
        """
        adapter = self.get_adapter(adapter_type, organization_id)
        events = adapter.parse_webhook(payload, headers=headers, raw_body=raw_body)
        logger.info(
            "inbound_webhook_received",
            adapter_id=adapter.adapter_id,
            messages=len(events.messages),
            statuses=len(events.statuses),
        )
        for listener in list(self._inbound_listeners):
            try:
                listener(adapter, events)
            except Exception as e:  # noqa: BLE001
                logger.error(
                    "inbound_listener_failed",
                    adapter_id=adapter.adapter_id,
                    error=str(e),
                    exc_info=True,
                )
        return events

    # ------------------------------------------------------------------
    # Health and lifecycle
    # ------------------------------------------------------------------

    def check_health(self) -> Dict[str, HealthCheckResult]:
        return self.factory.check_health()

    def get_health_status(self) -> Dict[str, HealthCheckResult]:
        return self.factory.get_health_status()

    def start(self) -> None:
        """Start background work (the adapter health monitor) if enabled."""
        comms = self.settings.communications
        if comms.health_monitor_enabled:
            self.factory.start_health_monitor(comms.health_check_interval_seconds)
        else:
            logger.info("health_monitor_disabled")

    def stop(self, grace_seconds: Optional[float] = None) -> Dict[str, bool]:
        """Stop the monitor and drain every adapter."""
        return self.factory.shutdown_all(grace_seconds)
