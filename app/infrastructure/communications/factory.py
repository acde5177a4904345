"""Adapter factory: registry, per-organization instance cache and health monitor.

One configured adapter instance is cached per (adapter type, organization).
``create_adapter`` is an idempotent get-or-create guarded by one lock per
key, so concurrent callers for the same key share a single instance and
``initialize`` runs exactly once; callers for different keys never contend.

Usage:
    factory = AdapterFactory(settings=settings)
    factory.register(WhatsAppAdapter)

    adapter = factory.create_adapter(ChannelType.WHATSAPP, config)
    result = adapter.send_message(message)

    factory.start_health_monitor(interval_seconds=60)
    ...
    factory.shutdown_all(grace_seconds=30)
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, Union

from infrastructure.communications.adapters.base import ChannelAdapter
from infrastructure.communications.errors import (
    AdapterConfigurationError,
    AdapterNotRegisteredError,
)
from infrastructure.communications.models import (
    AdapterConfiguration,
    AdapterState,
    ChannelType,
    HealthCheckResult,
)
from infrastructure.configuration import Settings
from infrastructure.logging import get_module_logger

logger = get_module_logger()

AdapterKey = Tuple[ChannelType, str]


def as_channel_type(adapter_type: Union[ChannelType, str]) -> ChannelType:
    if isinstance(adapter_type, ChannelType):
        return adapter_type
    try:
        return ChannelType(adapter_type)
    except ValueError as e:
        raise AdapterNotRegisteredError(f"Unknown adapter type: {adapter_type!r}") from e


class AdapterFactory:
    """Registry of adapter classes and cache of configured instances.

    Args:
        settings: Deployment settings passed to every adapter
        adapter_kwargs: Extra constructor arguments for adapters (e.g. a
            shared ``session`` or a test ``sleep``)
    """

    def __init__(self, settings: Settings, **adapter_kwargs: Any):
        self._settings = settings
        self._adapter_kwargs = adapter_kwargs

        self._registry: Dict[ChannelType, Type[ChannelAdapter]] = {}
        self._instances: Dict[AdapterKey, ChannelAdapter] = {}
        self._key_locks: Dict[AdapterKey, threading.Lock] = {}
        # Guards the dicts above; never held during initialize or network calls
        self._guard = threading.Lock()

        self._health: Dict[str, HealthCheckResult] = {}
        self._health_lock = threading.Lock()

        self._monitor_lock = threading.Lock()
        self._monitor_thread: Optional[threading.Thread] = None
        self._monitor_stop: Optional[threading.Event] = None

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(
        self,
        adapter_cls: Type[ChannelAdapter],
        adapter_type: Optional[Union[ChannelType, str]] = None,
    ) -> Type[ChannelAdapter]:
        """Register ``adapter_cls`` under its ``channel_type`` (or ``adapter_type``)."""
        channel = as_channel_type(adapter_type or adapter_cls.channel_type)
        with self._guard:
            previous = self._registry.get(channel)
            self._registry[channel] = adapter_cls
        if previous is not None and previous is not adapter_cls:
            logger.warning(
                "adapter_class_replaced",
                adapter_type=channel.value,
                previous=previous.__name__,
                adapter_class=adapter_cls.__name__,
            )
        else:
            logger.debug(
                "adapter_class_registered",
                adapter_type=channel.value,
                adapter_class=adapter_cls.__name__,
            )
        return adapter_cls

    def register_adapter(
        self, adapter_type: Optional[Union[ChannelType, str]] = None
    ) -> Callable[[Type[ChannelAdapter]], Type[ChannelAdapter]]:
        """Class decorator form of ``register``.

        Example:
            @factory.register_adapter()
            class PushAdapter(ChannelAdapter):
                channel_type = ChannelType.PUSH
                ...
        """

        def decorator(adapter_cls: Type[ChannelAdapter]) -> Type[ChannelAdapter]:
            return self.register(adapter_cls, adapter_type)

        return decorator

    def registered_types(self) -> List[ChannelType]:
        with self._guard:
            return list(self._registry)

    def is_registered(self, adapter_type: Union[ChannelType, str]) -> bool:
        with self._guard:
            return as_channel_type(adapter_type) in self._registry

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def _lock_for(self, key: AdapterKey) -> threading.Lock:
        with self._guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def create_adapter(
        self, adapter_type: Union[ChannelType, str], config: AdapterConfiguration
    ) -> ChannelAdapter:
        """Get or create the adapter for (type, ``config.organization_id``).

        A cached instance is returned when its configuration equals
        ``config``. A different configuration replaces the instance; the old
        one is drained and shut down after the swap.

        Raises:
            AdapterNotRegisteredError: No class registered for the type
            AdapterConfigurationError: Type mismatch, disabled configuration
                or rejected credentials
        """
        channel = as_channel_type(adapter_type)
        if config.adapter_type != channel:
            raise AdapterConfigurationError(
                f"Configuration is for {config.adapter_type.value}, not {channel.value}"
            )
        if not config.enabled:
            raise AdapterConfigurationError(
                f"{channel.value} is disabled for organization {config.organization_id}"
            )
        with self._guard:
            adapter_cls = self._registry.get(channel)
        if adapter_cls is None:
            raise AdapterNotRegisteredError(f"No adapter registered for {channel.value}")

        key: AdapterKey = (channel, config.organization_id)
        replaced: Optional[ChannelAdapter] = None
        with self._lock_for(key):
            with self._guard:
                existing = self._instances.get(key)
            if (
                existing is not None
                and existing.state != AdapterState.SHUTDOWN
                and existing.config == config
            ):
                return existing

            adapter = adapter_cls(settings=self._settings, **self._adapter_kwargs)
            adapter.initialize(config)
            with self._guard:
                replaced = self._instances.get(key)
                self._instances[key] = adapter
            logger.info(
                "adapter_created",
                adapter_id=adapter.adapter_id,
                replaced=replaced is not None,
            )

        if replaced is not None and replaced is not adapter:
            replaced.shutdown()
        return adapter

    def get_adapter(
        self, adapter_type: Union[ChannelType, str], organization_id: str
    ) -> Optional[ChannelAdapter]:
        with self._guard:
            return self._instances.get((as_channel_type(adapter_type), organization_id))

    def list_adapters(self) -> List[ChannelAdapter]:
        with self._guard:
            return list(self._instances.values())

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def check_health(self) -> Dict[str, HealthCheckResult]:
        """Poll every cached adapter now and record the latest results."""
        results: Dict[str, HealthCheckResult] = {}
        for adapter in self.list_adapters():
            result = adapter.health_check()
            results[adapter.adapter_id] = result
            if not result.healthy:
                logger.warning(
                    "adapter_unhealthy",
                    adapter_id=adapter.adapter_id,
                    state=adapter.state.value,
                    errors=result.errors,
                )
        with self._health_lock:
            self._health.update(results)
        logger.debug("adapter_health_checked", count=len(results))
        return results

    def get_health_status(self) -> Dict[str, HealthCheckResult]:
        """Latest health result per cached adapter instance."""
        with self._health_lock:
            return dict(self._health)

    def start_health_monitor(self, interval_seconds: Optional[float] = None) -> bool:
        """Poll health on a daemon thread every ``interval_seconds``.

        Returns:
            False if a monitor is already running
        """
        if interval_seconds is None:
            interval_seconds = self._settings.communications.health_check_interval_seconds
        with self._monitor_lock:
            if self._monitor_thread is not None and self._monitor_thread.is_alive():
                return False
            stop = threading.Event()
            thread = threading.Thread(
                target=self._run_health_monitor,
                args=(stop, interval_seconds),
                daemon=True,
                name="adapter-health-monitor",
            )
            self._monitor_stop = stop
            self._monitor_thread = thread
            thread.start()
        logger.info("health_monitor_started", interval_seconds=interval_seconds)
        return True

    def _run_health_monitor(self, stop: threading.Event, interval: float) -> None:
        while not stop.is_set():
            try:
                self.check_health()
            except Exception as e:  # noqa: BLE001
                logger.error("health_monitor_cycle_failed", error=str(e), exc_info=True)
            if stop.wait(interval):
                break

    def stop_health_monitor(self, timeout: float = 5.0) -> None:
        with self._monitor_lock:
            stop, thread = self._monitor_stop, self._monitor_thread
            self._monitor_stop = None
            self._monitor_thread = None
        if stop is None:
            return
        stop.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        logger.info("health_monitor_stopped")

    @property
    def health_monitor_running(self) -> bool:
        with self._monitor_lock:
            return self._monitor_thread is not None and self._monitor_thread.is_alive()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown_adapter(
        self,
        adapter_type: Union[ChannelType, str],
        organization_id: str,
        grace_seconds: Optional[float] = None,
    ) -> bool:
        """Remove and drain one adapter.

        Returns:
            True if the adapter existed and drained within the grace period
        """
        key: AdapterKey = (as_channel_type(adapter_type), organization_id)
        with self._lock_for(key):
            with self._guard:
                adapter = self._instances.pop(key, None)
        if adapter is None:
            logger.debug(
                "adapter_shutdown_skipped",
                adapter_type=key[0].value,
                organization_id=organization_id,
            )
            return False
        with self._health_lock:
            self._health.pop(adapter.adapter_id, None)
        return adapter.shutdown(grace_seconds)

    def shutdown_all(self, grace_seconds: Optional[float] = None) -> Dict[str, bool]:
        """Stop the monitor, then drain every adapter in parallel.

        Returns:
            adapter_id -> drained within the grace period
        """
        self.stop_health_monitor()
        with self._guard:
            adapters = list(self._instances.values())
            self._instances.clear()
        with self._health_lock:
            self._health.clear()
        if not adapters:
            return {}

        with ThreadPoolExecutor(
            max_workers=len(adapters), thread_name_prefix="adapter-shutdown"
        ) as executor:
            futures = {
                adapter.adapter_id: executor.submit(adapter.shutdown, grace_seconds)
                for adapter in adapters
            }
            results = {adapter_id: f.result() for adapter_id, f in futures.items()}
        logger.info(
            "adapters_shutdown",
            count=len(results),
            forced=[a for a, drained in results.items() if not drained],
        )
        return results
