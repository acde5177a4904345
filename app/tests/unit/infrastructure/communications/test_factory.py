"""Unit tests for AdapterFactory."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from infrastructure.communications.errors import (
    AdapterConfigurationError,
    AdapterNotRegisteredError,
)
from infrastructure.communications.factory import AdapterFactory, as_channel_type
from infrastructure.communications.models import AdapterState, ChannelType
from infrastructure.operations import OperationResult


@pytest.fixture
def factory(settings, scripted_adapter_cls, session_mock, sleep_mock):
    factory = AdapterFactory(settings=settings, session=session_mock, sleep=sleep_mock)
    factory.register(scripted_adapter_cls)
    yield factory
    factory.stop_health_monitor(timeout=1)


@pytest.mark.unit
class TestRegistry:
    def test_register_uses_channel_type(self, factory):
        assert factory.is_registered(ChannelType.PUSH)
        assert factory.is_registered("push")
        assert factory.registered_types() == [ChannelType.PUSH]

    def test_decorator_registers_under_explicit_type(self, settings, scripted_adapter_cls):
        factory = AdapterFactory(settings=settings)

        @factory.register_adapter(ChannelType.EMAIL)
        class MailAdapter(scripted_adapter_cls):
            pass

        assert factory.is_registered(ChannelType.EMAIL)
        assert not factory.is_registered(ChannelType.PUSH)

    def test_unknown_type_string_raises(self):
        with pytest.raises(AdapterNotRegisteredError):
            as_channel_type("carrier-pigeon")


@pytest.mark.unit
class TestCreateAdapter:
    def test_creates_initialized_adapter(self, factory, push_config):
        adapter = factory.create_adapter(ChannelType.PUSH, push_config())

        assert adapter.state == AdapterState.READY
        assert factory.get_adapter(ChannelType.PUSH, "org-1") is adapter
        assert factory.list_adapters() == [adapter]

    def test_same_configuration_returns_cached_instance(
        self, factory, push_config, scripted_adapter_cls
    ):
        config = push_config()

        first = factory.create_adapter(ChannelType.PUSH, config)
        second = factory.create_adapter("push", config)

        assert first is second
        assert scripted_adapter_cls.initialize_calls == 1

    def test_organizations_get_separate_instances(self, factory, push_config):
        a = factory.create_adapter(ChannelType.PUSH, push_config("org-a"))
        b = factory.create_adapter(ChannelType.PUSH, push_config("org-b"))

        assert a is not b
        assert {x.adapter_id for x in factory.list_adapters()} == {"push:org-a", "push:org-b"}

    def test_concurrent_creation_initializes_once(
        self, factory, push_config, scripted_adapter_cls
    ):
        gate = threading.Event()
        scripted_adapter_cls.initialize_delay = gate
        config = push_config()

        with ThreadPoolExecutor(max_workers=8) as executor:
            futures = [
                executor.submit(factory.create_adapter, ChannelType.PUSH, config)
                for _ in range(8)
            ]
            time.sleep(0.05)
            gate.set()
            adapters = [f.result(timeout=5) for f in futures]

        assert scripted_adapter_cls.initialize_calls == 1
        assert all(a is adapters[0] for a in adapters)

    def test_changed_configuration_replaces_and_shuts_down_old(self, factory, push_config):
        old = factory.create_adapter(ChannelType.PUSH, push_config())

        new = factory.create_adapter(
            ChannelType.PUSH, push_config(rate_limit_capacity=5)
        )

        assert new is not old
        assert old.state == AdapterState.SHUTDOWN
        assert factory.get_adapter(ChannelType.PUSH, "org-1") is new

    def test_shutdown_instance_is_rebuilt(self, factory, push_config):
        config = push_config()
        old = factory.create_adapter(ChannelType.PUSH, config)
        old.shutdown(grace_seconds=0)

        new = factory.create_adapter(ChannelType.PUSH, config)

        assert new is not old
        assert new.state == AdapterState.READY

    def test_unregistered_type_raises(self, factory, config_factory):
        with pytest.raises(AdapterNotRegisteredError):
            factory.create_adapter(ChannelType.SMS, config_factory(ChannelType.SMS))

    def test_type_mismatch_raises(self, factory, config_factory):
        with pytest.raises(AdapterConfigurationError):
            factory.create_adapter(ChannelType.PUSH, config_factory(ChannelType.SMS))

    def test_disabled_configuration_raises(self, factory, push_config, config_factory):
        config = config_factory(ChannelType.PUSH, credentials={"token": "t"}, enabled=False)

        with pytest.raises(AdapterConfigurationError):
            factory.create_adapter(ChannelType.PUSH, config)

    def test_failed_initialize_caches_nothing(self, factory, config_factory):
        config = config_factory(ChannelType.PUSH, credentials={})

        with pytest.raises(AdapterConfigurationError):
            factory.create_adapter(ChannelType.PUSH, config)

        assert factory.get_adapter(ChannelType.PUSH, "org-1") is None


@pytest.mark.unit
class TestHealth:
    def test_check_health_records_results(self, factory, push_config):
        adapter = factory.create_adapter(ChannelType.PUSH, push_config())
        adapter.probe_outcomes = [OperationResult.transient_error("down")]

        results = factory.check_health()

        assert results["push:org-1"].healthy is False
        assert factory.get_health_status()["push:org-1"].errors == ["down"]

    def test_health_monitor_polls_in_background(self, factory, push_config):
        factory.create_adapter(ChannelType.PUSH, push_config())

        assert factory.start_health_monitor(interval_seconds=0.01) is True
        assert factory.start_health_monitor(interval_seconds=0.01) is False

        deadline = time.monotonic() + 2
        while "push:org-1" not in factory.get_health_status():
            assert time.monotonic() < deadline
            time.sleep(0.01)
        assert factory.health_monitor_running is True

        factory.stop_health_monitor(timeout=1)
        assert factory.health_monitor_running is False


@pytest.mark.unit
class TestShutdown:
    def test_shutdown_adapter_removes_instance(self, factory, push_config):
        adapter = factory.create_adapter(ChannelType.PUSH, push_config())

        assert factory.shutdown_adapter(ChannelType.PUSH, "org-1", grace_seconds=0) is True
        assert adapter.state == AdapterState.SHUTDOWN
        assert factory.get_adapter(ChannelType.PUSH, "org-1") is None

    def test_shutdown_missing_adapter_returns_false(self, factory):
        assert factory.shutdown_adapter(ChannelType.PUSH, "nobody") is False

    def test_shutdown_all_drains_every_adapter(self, factory, push_config):
        adapters = [
            factory.create_adapter(ChannelType.PUSH, push_config(org))
            for org in ("org-a", "org-b")
        ]
        factory.start_health_monitor(interval_seconds=60)

        results = factory.shutdown_all(grace_seconds=1)

        assert results == {"push:org-a": True, "push:org-b": True}
        assert all(a.state == AdapterState.SHUTDOWN for a in adapters)
        assert factory.list_adapters() == []
        assert factory.health_monitor_running is False

    def test_shutdown_all_without_adapters(self, factory):
        assert factory.shutdown_all() == {}
