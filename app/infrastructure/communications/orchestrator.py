"""Communication orchestrator: routing, quiet hours, fallback and broadcast.

Producers call ``send_message`` with a DeliveryRequest (message + target
user id). The orchestrator:

1. loads the user's preference; missing record -> PREFERENCE_NOT_FOUND,
   consent withdrawn -> NO_CONSENT (no adapter is called)
2. builds the channel list: primary (only with a verified identifier), then
   the request's fallbacks, then the stored fallbacks, de-duplicated and
   restricted to channels with a verified identifier; ``allow_fallback``
   False keeps only the primary
3. defers the message during quiet hours unless ``override_dnd`` is set or
   the priority is URGENT
4. tries channels strictly in order until one succeeds, recording every
   attempt
5. returns an OrchestratedDeliveryResult with the full attempt history

Usage:
    orchestrator = CommunicationOrchestrator(
        preferences=preference_service,
        factory=adapter_factory,
        configurations=configuration_store,
    )
    result = orchestrator.send_message(DeliveryRequest(message=message, user_id="user-1"))
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, List, Optional

from infrastructure.communications.configuration_store import (
    AdapterConfigurationStore,
)
from infrastructure.communications.deferred import DeferredMessageQueue
from infrastructure.communications.errors import CommunicationError
from infrastructure.communications.factory import AdapterFactory
from infrastructure.communications.models import (
    BroadcastResult,
    ChannelType,
    CommunicationMessage,
    DeliveryError,
    DeliveryRequest,
    DeliveryResult,
    DeliveryStatus,
    MessagePriority,
    OrchestratedDeliveryResult,
    Recipient,
    UserPreference,
)
from infrastructure.communications.preferences import (
    PreferenceService,
    quiet_hours_active,
)
from infrastructure.idempotency import IdempotencyCache, IdempotencyKeyBuilder
from infrastructure.logging import bind_delivery_context, get_module_logger

logger = get_module_logger()

DEFAULT_BROADCAST_CONCURRENCY = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_channels(
    preference: UserPreference, message: CommunicationMessage
) -> List[ChannelType]:
    """Ordered, de-duplicated channels with a verified identifier.

    Request fallbacks rank ahead of stored fallbacks.
    """
    options = message.delivery_options
    candidates: List[ChannelType] = []
    if preference.primary_channel is not None:
        candidates.append(preference.primary_channel)
    if options.allow_fallback:
        candidates.extend(options.fallback_channels)
        candidates.extend(preference.fallback_channels)

    channels: List[ChannelType] = []
    for channel in candidates:
        if channel in channels:
            continue
        if preference.verified_identifier(channel) is None:
            logger.debug(
                "channel_skipped_unverified",
                user_id=preference.user_id,
                channel=channel.value,
            )
            continue
        channels.append(channel)
    return channels


class CommunicationOrchestrator:
    """Entry point for producers.

    Args:
        preferences: Preference and consent service
        factory: Adapter factory with registered adapter classes
        configurations: Per-organization adapter configurations
        deferred_queue: Holding queue for quiet-hours deferrals
        idempotency_cache: Optional cache returning earlier results for a
            repeated (message_id, user_id)
        idempotency_ttl_seconds: TTL of cached results
        broadcast_max_concurrency: Recipients processed in parallel
        clock: Source of "now" for quiet-hours evaluation
    """

    def __init__(
        self,
        preferences: PreferenceService,
        factory: AdapterFactory,
        configurations: AdapterConfigurationStore,
        deferred_queue: Optional[DeferredMessageQueue] = None,
        idempotency_cache: Optional[IdempotencyCache] = None,
        idempotency_ttl_seconds: int = 3600,
        broadcast_max_concurrency: int = DEFAULT_BROADCAST_CONCURRENCY,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if broadcast_max_concurrency < 1:
            raise ValueError("broadcast_max_concurrency must be at least 1")
        self.preferences = preferences
        self.factory = factory
        self.configurations = configurations
        self.deferred_queue = deferred_queue or DeferredMessageQueue()
        self.idempotency_cache = idempotency_cache
        self.idempotency_ttl_seconds = idempotency_ttl_seconds
        self.broadcast_max_concurrency = broadcast_max_concurrency
        self._clock = clock
        self._keys = IdempotencyKeyBuilder(namespace="communications")

    # ------------------------------------------------------------------
    # Single recipient
    # ------------------------------------------------------------------

    def send_message(self, request: DeliveryRequest) -> OrchestratedDeliveryResult:
        """Deliver one message to one user. Never raises for delivery failures."""
        message = request.message
        with bind_delivery_context(
            message_id=message.message_id,
            user_id=request.user_id,
            organization_id=message.sender.organization_id,
        ):
            key = self._idempotency_key(request)
            cached = self._cached_result(key)
            if cached is not None:
                logger.info("delivery_already_processed", status=cached.status.value)
                return cached

            result = self._deliver(request, self._clock())
            self._remember(key, result)
            return result

    def _deliver(
        self, request: DeliveryRequest, now: datetime
    ) -> OrchestratedDeliveryResult:
        message = request.message
        user_id = request.user_id

        preference = self.preferences.get_preference(user_id)
        if preference is None:
            return self._rejected(request, "PREFERENCE_NOT_FOUND", "No preference record")
        if not preference.consent_given:
            return self._rejected(request, "NO_CONSENT", "User has not consented")

        channels = resolve_channels(preference, message)
        if not channels:
            return self._rejected(
                request, "NO_VERIFIED_CHANNEL", "No channel with a verified identifier"
            )

        if self._should_defer(preference, message, now):
            try:
                self.deferred_queue.enqueue(request)
            except OverflowError as e:
                return self._rejected(request, "DEFERRED_QUEUE_FULL", str(e))
            return OrchestratedDeliveryResult(
                success=False,
                status=DeliveryStatus.QUEUED,
                message_id=message.message_id,
                user_id=user_id,
            )

        attempts: List[DeliveryResult] = []
        for channel in channels:
            result = self._attempt_channel(message, preference, channel)
            attempts.append(result)
            if result.success:
                logger.info(
                    "message_delivered",
                    channel=channel.value,
                    fallback_attempts=len(attempts) - 1,
                )
                return OrchestratedDeliveryResult(
                    success=True,
                    status=result.status,
                    message_id=message.message_id,
                    user_id=user_id,
                    channel_used=channel,
                    fallback_attempts=len(attempts) - 1,
                    attempts=attempts,
                    external_message_id=result.external_message_id,
                )

        last_error = attempts[-1].error
        logger.error(
            "message_delivery_exhausted",
            channels=[a.channel.value for a in attempts],
            last_error=last_error.code if last_error else None,
        )
        return OrchestratedDeliveryResult(
            success=False,
            status=DeliveryStatus.FAILED,
            message_id=message.message_id,
            user_id=user_id,
            fallback_attempts=len(attempts) - 1,
            attempts=attempts,
            error=DeliveryError(
                code="ALL_CHANNELS_FAILED",
                message=f"Delivery failed on {len(attempts)} channel(s)"
                + (f"; last error {last_error.code}" if last_error else ""),
            ),
        )

    @staticmethod
    def _should_defer(
        preference: UserPreference, message: CommunicationMessage, now: datetime
    ) -> bool:
        if message.delivery_options.override_dnd:
            return False
        if message.priority == MessagePriority.URGENT:
            return False
        return quiet_hours_active(preference, now)

    def _attempt_channel(
        self,
        message: CommunicationMessage,
        preference: UserPreference,
        channel: ChannelType,
    ) -> DeliveryResult:
        organization_id = message.sender.organization_id
        config = self.configurations.get(channel, organization_id)
        if config is None or not config.enabled:
            logger.warning("channel_not_configured", channel=channel.value)
            return DeliveryResult.failure(
                message.message_id,
                channel,
                "CHANNEL_NOT_CONFIGURED",
                f"{channel.value} is not configured for organization {organization_id}",
            )

        try:
            adapter = self.factory.create_adapter(channel, config)
        except CommunicationError as e:
            logger.error(
                "adapter_unavailable", channel=channel.value, error=str(e)
            )
            return DeliveryResult.failure(
                message.message_id, channel, "CHANNEL_NOT_CONFIGURED", str(e)
            )

        recipient = Recipient(
            channel_type=channel,
            identifier=preference.verified_identifier(channel),
            display_name=message.recipient.display_name if message.recipient else None,
        )
        try:
            return adapter.send_message(message.with_recipient(recipient))
        except Exception as e:  # noqa: BLE001
            logger.error(
                "delivery_attempt_error", channel=channel.value, error=str(e), exc_info=True
            )
            return DeliveryResult.failure(
                message.message_id, channel, "INTERNAL_ERROR", str(e)
            )

    @staticmethod
    def _rejected(
        request: DeliveryRequest, code: str, detail: str
    ) -> OrchestratedDeliveryResult:
        logger.warning("message_rejected", reason=code)
        return OrchestratedDeliveryResult(
            success=False,
            status=DeliveryStatus.FAILED,
            message_id=request.message.message_id,
            user_id=request.user_id,
            error=DeliveryError(code=code, message=detail),
        )

    # ------------------------------------------------------------------
    # Idempotency
    # ------------------------------------------------------------------

    def _idempotency_key(self, request: DeliveryRequest) -> Optional[str]:
        if self.idempotency_cache is None:
            return None
        return self._keys.build(
            "deliver", message_id=request.message.message_id, user_id=request.user_id
        )

    def _cached_result(self, key: Optional[str]) -> Optional[OrchestratedDeliveryResult]:
        if key is None:
            return None
        cached = self.idempotency_cache.get(key)
        return OrchestratedDeliveryResult.model_validate(cached) if cached else None

    def _remember(self, key: Optional[str], result: OrchestratedDeliveryResult) -> None:
        if key is None:
            return
        # Pre-attempt rejections are not cached
        if result.status == DeliveryStatus.FAILED and not result.attempts:
            self.idempotency_cache.delete(key)
            return
        self.idempotency_cache.set(
            key, result.model_dump(mode="json"), self.idempotency_ttl_seconds
        )

    # ------------------------------------------------------------------
    # Broadcast
    # ------------------------------------------------------------------

    def broadcast_message(
        self, message: CommunicationMessage, user_ids: List[str]
    ) -> BroadcastResult:
        """Deliver ``message`` to every user in ``user_ids``.

        Recipients run concurrently (bounded); one recipient's failure,
        including an unexpected exception, never affects the others.
        Results keep the order of ``user_ids``; duplicates are sent once.
        """
        unique_ids = list(dict.fromkeys(user_ids))
        if not unique_ids:
            return BroadcastResult.from_results([])

        workers = min(self.broadcast_max_concurrency, len(unique_ids))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="broadcast"
        ) as executor:
            futures = [
                executor.submit(self._send_isolated, message, user_id)
                for user_id in unique_ids
            ]
            results = [future.result() for future in futures]

        summary = BroadcastResult.from_results(results)
        logger.info(
            "broadcast_completed",
            message_id=message.message_id,
            total=summary.total,
            succeeded=summary.succeeded,
            failed=summary.failed,
            queued=summary.queued,
        )
        return summary

    def _send_isolated(
        self, message: CommunicationMessage, user_id: str
    ) -> OrchestratedDeliveryResult:
        try:
            return self.send_message(DeliveryRequest(message=message, user_id=user_id))
        except Exception as e:  # noqa: BLE001
            logger.error(
                "broadcast_recipient_failed",
                message_id=message.message_id,
                user_id=user_id,
                error=str(e),
                exc_info=True,
            )
            return OrchestratedDeliveryResult(
                success=False,
                status=DeliveryStatus.FAILED,
                message_id=message.message_id,
                user_id=user_id,
                error=DeliveryError(code="INTERNAL_ERROR", message=str(e)),
            )

    # ------------------------------------------------------------------
    # Deferred deliveries
    # ------------------------------------------------------------------

    def process_deferred(
        self, now: Optional[datetime] = None
    ) -> List[OrchestratedDeliveryResult]:
        """Re-run deferred deliveries whose recipients left quiet hours.

        Entries still inside quiet hours stay queued. Entries whose
        recipient withdrew consent or lost their record complete as failed.

        Returns:
            Results of the entries that left the queue
        """
        now = now or self._clock()
        completed: List[OrchestratedDeliveryResult] = []
        for entry in self.deferred_queue.snapshot():
            request = entry.request
            with bind_delivery_context(
                message_id=request.message.message_id,
                user_id=request.user_id,
                organization_id=request.message.sender.organization_id,
            ):
                try:
                    result = self._deliver(request, now)
                except Exception as e:  # noqa: BLE001
                    logger.error(
                        "deferred_delivery_failed", error=str(e), exc_info=True
                    )
                    continue
                if result.status == DeliveryStatus.QUEUED:
                    continue
                self.deferred_queue.remove(request.message.message_id, request.user_id)
                self._remember(self._idempotency_key(request), result)
                logger.info(
                    "deferred_message_processed",
                    success=result.success,
                    status=result.status.value,
                )
                completed.append(result)
        return completed
