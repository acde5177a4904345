"""Channel adapter abstract base class.

Every channel (WhatsApp, webhook, SMS, ...) implements this interface.
The base class owns everything that is the same for all providers:

- lifecycle state (uninitialized -> initializing -> ready <-> degraded -> shutdown)
- credential validation against the adapter's pydantic credentials model
- the ``send_message`` template: rate-limiter admission, the provider call,
  retry-policy-driven re-attempts and normalization of every failure into
  ``DeliveryResult.error``
- health bookkeeping (consecutive failures -> DEGRADED, recovery -> READY)
- in-flight tracking so ``shutdown`` can drain before closing

Concrete adapters implement only provider request/response mapping,
recipient validation, capabilities and the health probe.

Example Implementation:
    class PagerAdapter(ChannelAdapter):
        channel_type = ChannelType.PUSH
        credentials_model = PagerCredentials

        def _deliver(self, message):
            response = self.session.post(url, json=..., timeout=self.timeout_seconds)
            if not response.ok:
                return classify_http_response(response, provider="pager")
            return OperationResult.success(data={"external_message_id": ...})
"""

import random
import re
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, Dict, Mapping, Optional, Type

import requests
from pydantic import BaseModel, ValidationError

from infrastructure.communications.errors import (
    AdapterConfigurationError,
    UnsupportedOperationError,
)
from infrastructure.communications.models import (
    AdapterCapabilities,
    AdapterConfiguration,
    AdapterState,
    ChannelType,
    CommunicationMessage,
    DeliveryError,
    DeliveryResult,
    DeliveryStatus,
    HealthCheckResult,
    IncomingMessage,
    InboundWebhookEvents,
)
from infrastructure.configuration import Settings
from infrastructure.logging import get_module_logger
from infrastructure.operations import (
    OperationResult,
    OperationStatus,
    classify_request_exception,
)
from infrastructure.resilience import RetryPolicy, TokenBucketRateLimiter

logger = get_module_logger()

SENDABLE_STATES = frozenset({AdapterState.READY, AdapterState.DEGRADED})

E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")


def is_e164(identifier: str) -> bool:
    """``+`` followed by 8-15 digits, no leading zero."""
    return bool(identifier) and bool(E164_PATTERN.match(identifier))


class ChannelAdapter(ABC):
    """Abstract base class for channel adapters.

    Class Attributes:
        channel_type: Channel served; also the registry key in AdapterFactory
        credentials_model: Pydantic model validating ``config.credentials``

    Args:
        settings: Deployment settings used for defaults
        session: HTTP session; a new ``requests.Session`` if omitted
        sleep: Sleep used between retries, injectable for tests
        rng: Random source for retry jitter
    """

    channel_type: ClassVar[ChannelType]
    credentials_model: ClassVar[Type[BaseModel]]

    def __init__(
        self,
        settings: Settings,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        self._settings = settings
        self._session = session
        self._sleep = sleep
        self._rng = rng

        self.config: Optional[AdapterConfiguration] = None
        self.credentials: Any = None
        self.rate_limiter: Optional[TokenBucketRateLimiter] = None
        self.retry_policy: Optional[RetryPolicy] = None
        self.timeout_seconds: float = settings.communications.default_timeout_seconds
        self.queue_on_rate_limit = False
        self.queue_timeout_seconds = 0.0
        self.degraded_after_failures = settings.communications.degraded_after_failures

        self._state = AdapterState.UNINITIALIZED
        self._state_lock = threading.Lock()
        self._consecutive_health_failures = 0
        self._last_health: Optional[HealthCheckResult] = None

        self._inflight = 0
        self._closing = False
        self._inflight_cond = threading.Condition()

    # ------------------------------------------------------------------
    # Identity and state
    # ------------------------------------------------------------------

    @property
    def adapter_id(self) -> str:
        """``{type}:{organization}`` once configured."""
        org = self.config.organization_id if self.config else "unconfigured"
        return f"{self.channel_type.value}:{org}"

    @property
    def state(self) -> AdapterState:
        with self._state_lock:
            return self._state

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    @property
    def inflight_count(self) -> int:
        with self._inflight_cond:
            return self._inflight

    @property
    def last_health(self) -> Optional[HealthCheckResult]:
        return self._last_health

    def _set_state(self, state: AdapterState) -> AdapterState:
        with self._state_lock:
            previous = self._state
            self._state = state
        if previous != state:
            logger.info(
                "adapter_state_changed",
                adapter_id=self.adapter_id,
                previous=previous.value,
                state=state.value,
            )
        return previous

    def mark_degraded(self, reason: str) -> None:
        """Move READY -> DEGRADED. Sends are still accepted."""
        with self._state_lock:
            if self._state != AdapterState.READY:
                return
            self._state = AdapterState.DEGRADED
        logger.warning("adapter_degraded", adapter_id=self.adapter_id, reason=reason)

    def _mark_recovered(self) -> None:
        with self._state_lock:
            if self._state != AdapterState.DEGRADED:
                return
            self._state = AdapterState.READY
        logger.info("adapter_recovered", adapter_id=self.adapter_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, config: AdapterConfiguration) -> None:
        """Validate ``config`` and make the adapter ready to send.

        Raises:
            AdapterConfigurationError: Wrong adapter type, invalid credentials
                or inconsistent settings
        """
        if config.adapter_type != self.channel_type:
            raise AdapterConfigurationError(
                f"{type(self).__name__} cannot be configured as "
                f"{config.adapter_type.value}"
            )

        with self._state_lock:
            if self._state != AdapterState.UNINITIALIZED:
                raise AdapterConfigurationError(
                    f"Adapter {self.adapter_id} already {self._state.value}"
                )
            self._state = AdapterState.INITIALIZING
        self.config = config

        try:
            self.credentials = self.credentials_model.model_validate(
                config.credentials
            )
            self._apply_settings(config)
            self._on_initialize()
        except ValidationError as e:
            self._reset_after_failed_init()
            raise AdapterConfigurationError(
                f"Invalid {self.channel_type.value} credentials: "
                f"{e.error_count()} validation error(s)"
            ) from e
        except (ValueError, AdapterConfigurationError) as e:
            self._reset_after_failed_init()
            if isinstance(e, AdapterConfigurationError):
                raise
            raise AdapterConfigurationError(str(e)) from e

        self._set_state(AdapterState.READY)
        logger.info(
            "adapter_initialized",
            adapter_id=self.adapter_id,
            rate_limit_capacity=self.rate_limiter.capacity,
            max_attempts=self.retry_policy.max_attempts,
            timeout_seconds=self.timeout_seconds,
        )

    def _reset_after_failed_init(self) -> None:
        with self._state_lock:
            self._state = AdapterState.UNINITIALIZED
        self.credentials = None
        logger.warning(
            "adapter_initialization_failed", adapter_id=self.adapter_id
        )

    def _apply_settings(self, config: AdapterConfiguration) -> None:
        overrides = config.settings
        rate_defaults = self._settings.rate_limit
        comms = self._settings.communications

        self.timeout_seconds = overrides.timeout_seconds or comms.default_timeout_seconds
        self.degraded_after_failures = (
            overrides.degraded_after_failures or comms.degraded_after_failures
        )
        self.queue_on_rate_limit = (
            rate_defaults.queue_on_limit
            if overrides.queue_on_rate_limit is None
            else overrides.queue_on_rate_limit
        )
        self.queue_timeout_seconds = (
            rate_defaults.queue_timeout_seconds
            if overrides.queue_timeout_seconds is None
            else overrides.queue_timeout_seconds
        )
        self.rate_limiter = TokenBucketRateLimiter(
            capacity=overrides.rate_limit_capacity or rate_defaults.capacity,
            refill_interval_seconds=(
                overrides.rate_limit_interval_seconds or rate_defaults.interval_seconds
            ),
            name=self.adapter_id,
        )
        self.retry_policy = RetryPolicy.from_settings(
            self._settings.retry,
            strategy=overrides.retry_strategy,
            base_delay_seconds=overrides.retry_base_delay_seconds,
            max_delay_seconds=overrides.retry_max_delay_seconds,
            max_attempts=overrides.retry_max_attempts,
            jitter=overrides.retry_jitter,
        )

    def _on_initialize(self) -> None:
        """Hook for provider-specific validation after credentials are parsed."""

    def shutdown(self, grace_seconds: Optional[float] = None) -> bool:
        """Stop accepting sends, drain in-flight ones, then release resources.

        Args:
            grace_seconds: Longest wait for in-flight sends; settings default if None

        Returns:
            True if every in-flight send finished before the deadline
        """
        if grace_seconds is None:
            grace_seconds = self._settings.communications.shutdown_grace_seconds

        with self._inflight_cond:
            if self._closing:
                return self._inflight == 0
            self._closing = True
            drained = self._inflight_cond.wait_for(
                lambda: self._inflight == 0, timeout=max(grace_seconds, 0.0)
            )
            remaining = self._inflight

        if not drained:
            logger.warning(
                "adapter_shutdown_forced",
                adapter_id=self.adapter_id,
                inflight=remaining,
                grace_seconds=grace_seconds,
            )

        self._set_state(AdapterState.SHUTDOWN)
        try:
            self._on_shutdown()
        finally:
            if self._session is not None:
                self._session.close()
        logger.info("adapter_shutdown", adapter_id=self.adapter_id, drained=drained)
        return drained

    def _on_shutdown(self) -> None:
        """Hook for provider-specific cleanup."""

    def _begin_send(self) -> bool:
        with self._inflight_cond:
            if self._closing or self.state not in SENDABLE_STATES:
                return False
            self._inflight += 1
            return True

    def _end_send(self) -> None:
        with self._inflight_cond:
            self._inflight -= 1
            if self._inflight == 0:
                self._inflight_cond.notify_all()

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send_message(self, message: CommunicationMessage) -> DeliveryResult:
        """Deliver ``message`` to ``message.recipient``. Never raises.

        Attempts are capped by both the retry policy and
        ``message.delivery_options.max_retries`` (1 + max_retries calls).

        Returns:
            DeliveryResult with ``attempt_count`` provider attempts recorded
        """
        if not self._begin_send():
            return DeliveryResult.failure(
                message.message_id,
                self.channel_type,
                "ADAPTER_NOT_READY",
                f"Adapter {self.adapter_id} is {self.state.value}",
            )
        try:
            return self._send_with_retries(message)
        finally:
            self._end_send()

    def _send_with_retries(self, message: CommunicationMessage) -> DeliveryResult:
        rejection = self._precheck(message)
        if rejection is not None:
            return rejection

        max_attempts = 1 + message.delivery_options.max_retries
        attempt = 0
        while True:
            attempt += 1
            outcome = self._attempt(message)

            if outcome.is_success:
                data = outcome.data or {}
                logger.info(
                    "delivery_attempt_succeeded",
                    adapter_id=self.adapter_id,
                    message_id=message.message_id,
                    attempt=attempt,
                )
                return DeliveryResult(
                    success=True,
                    message_id=message.message_id,
                    channel=self.channel_type,
                    status=data.get("status", DeliveryStatus.SENT),
                    external_message_id=data.get("external_message_id"),
                    cost_estimate=data.get("cost_estimate"),
                    attempt_count=attempt,
                )

            error = self._to_delivery_error(outcome)
            if outcome.status == OperationStatus.UNAUTHORIZED:
                self.mark_degraded(f"authentication rejected: {error.code}")

            logger.warning(
                "delivery_attempt_failed",
                adapter_id=self.adapter_id,
                message_id=message.message_id,
                attempt=attempt,
                error_code=error.code,
                retryable=error.retryable,
            )

            if not self.retry_policy.should_retry(attempt, error, max_attempts):
                return DeliveryResult(
                    success=False,
                    message_id=message.message_id,
                    channel=self.channel_type,
                    status=DeliveryStatus.FAILED,
                    error=error,
                    attempt_count=attempt,
                )

            delay = self.retry_policy.next_delay(attempt, self._rng)
            if outcome.retry_after:
                delay = max(
                    delay, min(outcome.retry_after, self.retry_policy.max_delay_seconds)
                )
            logger.debug(
                "delivery_retry_scheduled",
                adapter_id=self.adapter_id,
                message_id=message.message_id,
                attempt=attempt,
                delay_seconds=round(delay, 3),
            )
            self._sleep(delay)

    def _precheck(self, message: CommunicationMessage) -> Optional[DeliveryResult]:
        if message.recipient is None or not self.validate_recipient(
            message.recipient.identifier
        ):
            return DeliveryResult.failure(
                message.message_id,
                self.channel_type,
                "INVALID_RECIPIENT",
                f"Recipient is not a valid {self.channel_type.value} address",
            )
        if message.recipient.channel_type != self.channel_type:
            return DeliveryResult.failure(
                message.message_id,
                self.channel_type,
                "INVALID_RECIPIENT",
                f"Recipient is addressed to {message.recipient.channel_type.value}",
            )
        if not self.get_capabilities().supports(message.type):
            return DeliveryResult.failure(
                message.message_id,
                self.channel_type,
                "UNSUPPORTED_MESSAGE_TYPE",
                f"{self.channel_type.value} does not support {message.type.value}",
            )
        return None

    def _attempt(self, message: CommunicationMessage) -> OperationResult:
        admission = self.rate_limiter.admit(
            queue=self.queue_on_rate_limit, timeout=self.queue_timeout_seconds
        )
        if not admission.is_success:
            return admission
        try:
            return self._deliver(message)
        except Exception as e:  # noqa: BLE001
            logger.error(
                "delivery_attempt_error",
                adapter_id=self.adapter_id,
                message_id=message.message_id,
                error=str(e),
                exc_info=not isinstance(e, requests.RequestException),
            )
            return classify_request_exception(e, provider=self.channel_type.value)

    @staticmethod
    def _to_delivery_error(outcome: OperationResult) -> DeliveryError:
        return DeliveryError(
            code=outcome.error_code or outcome.status.value.upper(),
            message=outcome.message,
            retryable=outcome.is_retryable,
        )

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health_check(self) -> HealthCheckResult:
        """Probe the provider and update DEGRADED/READY bookkeeping. Never raises."""
        state = self.state
        if state not in SENDABLE_STATES:
            result = HealthCheckResult(
                adapter_id=self.adapter_id,
                healthy=False,
                state=state,
                errors=[f"adapter is {state.value}"],
            )
            self._last_health = result
            return result

        started = time.monotonic()
        try:
            outcome = self._probe_health()
        except Exception as e:  # noqa: BLE001
            outcome = classify_request_exception(e, provider=self.channel_type.value)
        latency_ms = (time.monotonic() - started) * 1000

        if outcome.is_success:
            self._consecutive_health_failures = 0
            self._mark_recovered()
        else:
            self._consecutive_health_failures += 1
            if outcome.status == OperationStatus.UNAUTHORIZED:
                self.mark_degraded("health check rejected credentials")
            elif self._consecutive_health_failures >= self.degraded_after_failures:
                self.mark_degraded(
                    f"{self._consecutive_health_failures} consecutive failed health checks"
                )

        metadata = outcome.data if isinstance(outcome.data, dict) else {}
        result = HealthCheckResult(
            adapter_id=self.adapter_id,
            healthy=outcome.is_success,
            state=self.state,
            latency_ms=round(latency_ms, 2),
            errors=[] if outcome.is_success else [outcome.message],
            metadata=metadata,
        )
        self._last_health = result
        return result

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def receive_message(
        self,
        payload: Mapping[str, Any],
        headers: Optional[Mapping[str, str]] = None,
        raw_body: Optional[bytes] = None,
    ) -> IncomingMessage:
        """Parse one inbound provider payload into an IncomingMessage.

        Raises:
            UnsupportedOperationError: One-way channel
            InvalidPayloadError: Payload carries no parsable message
            SignatureVerificationError: Signature check failed
        """
        raise UnsupportedOperationError(
            f"{self.channel_type.value} adapter is one-way"
        )

    def parse_webhook(
        self,
        payload: Mapping[str, Any],
        headers: Optional[Mapping[str, str]] = None,
        raw_body: Optional[bytes] = None,
    ) -> InboundWebhookEvents:
        """Parse every message and status update of an inbound webhook."""
        return InboundWebhookEvents(
            messages=[self.receive_message(payload, headers=headers, raw_body=raw_body)]
        )

    # ------------------------------------------------------------------
    # Provider-specific
    # ------------------------------------------------------------------

    @abstractmethod
    def validate_recipient(self, identifier: str) -> bool:
        """Whether ``identifier`` is a valid address on this channel."""

    @abstractmethod
    def get_capabilities(self) -> AdapterCapabilities:
        """Static description of what the channel supports."""

    @abstractmethod
    def _deliver(self, message: CommunicationMessage) -> OperationResult:
        """One provider call.

        Returns:
            SUCCESS with ``data`` holding ``external_message_id`` (and
            optionally ``cost_estimate``/``status``), or a classified failure
        """

    @abstractmethod
    def _probe_health(self) -> OperationResult:
        """Lightweight provider call; SUCCESS ``data`` becomes health metadata."""

    def get_status(self) -> Dict[str, Any]:
        """Operator-facing snapshot."""
        return {
            "adapter_id": self.adapter_id,
            "state": self.state.value,
            "inflight": self.inflight_count,
            "rate_limiter": self.rate_limiter.get_stats() if self.rate_limiter else None,
        }
