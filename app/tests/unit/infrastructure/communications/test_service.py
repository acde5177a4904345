"""Unit tests for the CommunicationsService facade."""

import pytest

from infrastructure.communications.adapters import (
    SMSAdapter,
    WebhookAdapter,
    WhatsAppAdapter,
)
from infrastructure.communications.errors import (
    AdapterConfigurationError,
    AdapterNotRegisteredError,
    UnsupportedOperationError,
)
from infrastructure.communications.models import (
    AdapterState,
    ChannelType,
    DeliveryRequest,
    DeliveryStatus,
)
from infrastructure.communications.service import CommunicationsService
from infrastructure.configuration import CommunicationsSettings

PHONE = "+447700900123"


@pytest.fixture
def service(settings, session_mock, sleep_mock):
    service = CommunicationsService(settings=settings, session=session_mock, sleep=sleep_mock)
    yield service
    service.stop(grace_seconds=0)


@pytest.fixture
def family_member(service):
    service.preferences.upsert_preference(
        "family-1",
        "org-1",
        primary_channel=ChannelType.WHATSAPP,
        primary_identifier=PHONE,
        fallback_channels=[ChannelType.SMS],
    )
    service.preferences.verify_channel_identifier("family-1", ChannelType.WHATSAPP, PHONE)
    service.preferences.add_channel_identifier(
        "family-1", ChannelType.SMS, PHONE, verified=True
    )
    service.preferences.set_opt_in("family-1", actor="family-1")
    return "family-1"


@pytest.mark.unit
class TestAdapterManagement:
    def test_builtin_adapters_registered(self, service):
        assert set(service.factory.registered_types()) == {
            ChannelType.WHATSAPP,
            ChannelType.WEBHOOK,
            ChannelType.SMS,
        }

    def test_get_adapter_builds_from_stored_configuration(self, service, config_factory):
        service.configure_adapter(config_factory(ChannelType.WHATSAPP))

        adapter = service.get_adapter("whatsapp", "org-1")

        assert isinstance(adapter, WhatsAppAdapter)
        assert adapter.state == AdapterState.READY
        assert service.get_adapter(ChannelType.WHATSAPP, "org-1") is adapter

    def test_get_adapter_without_configuration(self, service):
        with pytest.raises(AdapterConfigurationError):
            service.get_adapter(ChannelType.SMS, "org-1")

    def test_get_adapter_unknown_type(self, service):
        with pytest.raises(AdapterNotRegisteredError):
            service.get_adapter("fax", "org-1")

    def test_reconfigure_rebuilds_live_adapter(self, service, config_factory):
        service.configure_adapter(config_factory(ChannelType.SMS))
        old = service.get_adapter(ChannelType.SMS, "org-1")

        service.configure_adapter(config_factory(ChannelType.SMS, rate_limit_capacity=3))

        new = service.factory.get_adapter(ChannelType.SMS, "org-1")
        assert isinstance(new, SMSAdapter)
        assert new is not old
        assert new.rate_limiter.capacity == 3
        assert old.state == AdapterState.SHUTDOWN

    def test_disabling_shuts_down_live_adapter(self, service, config_factory):
        service.configure_adapter(config_factory(ChannelType.SMS))
        adapter = service.get_adapter(ChannelType.SMS, "org-1")

        service.configure_adapter(config_factory(ChannelType.SMS, enabled=False))

        assert adapter.state == AdapterState.SHUTDOWN
        with pytest.raises(AdapterConfigurationError):
            service.get_adapter(ChannelType.SMS, "org-1")

    def test_remove_adapter(self, service, config_factory):
        service.configure_adapter(config_factory(ChannelType.SMS))
        service.get_adapter(ChannelType.SMS, "org-1")

        assert service.remove_adapter("sms", "org-1") is True
        assert service.configurations.get(ChannelType.SMS, "org-1") is None
        assert service.remove_adapter("sms", "org-1") is False


@pytest.mark.unit
class TestDelivery:
    def test_retries_then_delivers_over_whatsapp(
        self,
        service,
        family_member,
        config_factory,
        message_factory,
        session_mock,
        response_factory,
    ):
        service.configure_adapter(config_factory(ChannelType.WHATSAPP))
        session_mock.post.side_effect = [
            response_factory(503),
            response_factory(200, {"messages": [{"id": "wamid.ok"}]}),
        ]

        result = service.send_message(
            DeliveryRequest(message=message_factory(max_retries=2), user_id=family_member)
        )

        assert result.success is True
        assert result.channel_used == ChannelType.WHATSAPP
        assert result.external_message_id == "wamid.ok"
        assert result.attempts[0].attempt_count == 2
        assert result.fallback_attempts == 0

    def test_falls_back_to_sms(
        self,
        service,
        family_member,
        config_factory,
        message_factory,
        session_mock,
        response_factory,
    ):
        service.configure_adapter(config_factory(ChannelType.WHATSAPP))
        service.configure_adapter(config_factory(ChannelType.SMS))
        session_mock.post.side_effect = [
            response_factory(400, {"error": {"code": 131026, "message": "Undeliverable"}}),
            response_factory(201, {"id": "notify-9"}),
        ]

        result = service.send_message(
            DeliveryRequest(message=message_factory(), user_id=family_member)
        )

        assert result.channel_used == ChannelType.SMS
        assert result.fallback_attempts == 1
        assert result.attempts[0].error.code == "RECIPIENT_UNREACHABLE"

    def test_accepted_whatsapp_send_not_repeated_over_sms(
        self,
        service,
        family_member,
        config_factory,
        message_factory,
        session_mock,
        response_factory,
    ):
        service.configure_adapter(config_factory(ChannelType.WHATSAPP))
        service.configure_adapter(config_factory(ChannelType.SMS))
        session_mock.post.return_value = response_factory(200, text="OK")

        result = service.send_message(
            DeliveryRequest(message=message_factory(), user_id=family_member)
        )

        assert result.success is True
        assert result.channel_used == ChannelType.WHATSAPP
        assert result.fallback_attempts == 0
        assert session_mock.post.call_count == 1

    def test_broadcast_and_deferred_pass_through(
        self, service, family_member, config_factory, message_factory, session_mock, response_factory
    ):
        service.configure_adapter(config_factory(ChannelType.WHATSAPP))
        session_mock.post.return_value = response_factory(
            200, {"messages": [{"id": "wamid.b"}]}
        )

        summary = service.broadcast_message(message_factory(), [family_member])

        assert summary.succeeded == 1
        assert service.process_deferred() == []


@pytest.mark.unit
class TestInbound:
    def test_listeners_receive_parsed_events(self, service, config_factory):
        service.configure_adapter(config_factory(ChannelType.WEBHOOK))
        seen = []
        service.add_inbound_listener(lambda adapter, events: seen.append((adapter, events)))

        events = service.receive_webhook(
            "webhook",
            "org-1",
            {"event": "status", "message_id": "m-1", "status": "delivered"},
        )

        assert events.statuses[0].status == DeliveryStatus.DELIVERED
        assert isinstance(seen[0][0], WebhookAdapter)
        assert seen[0][1] is events

    def test_failing_listener_does_not_stop_others(self, service, config_factory):
        service.configure_adapter(config_factory(ChannelType.WEBHOOK))
        calls = []

        def broken(adapter, events):
            raise RuntimeError("listener bug")

        service.add_inbound_listener(broken)
        service.add_inbound_listener(lambda adapter, events: calls.append(events))

        service.receive_webhook(
            ChannelType.WEBHOOK,
            "org-1",
            {"event": "status", "message_id": "m-1", "status": "sent"},
        )

        assert len(calls) == 1

    def test_one_way_channel_rejects_inbound(self, service, config_factory):
        service.configure_adapter(config_factory(ChannelType.SMS))

        with pytest.raises(UnsupportedOperationError):
            service.receive_webhook("sms", "org-1", {"text": "hi"})


@pytest.mark.unit
class TestLifecycle:
    def test_start_runs_health_monitor(self, service, config_factory):
        service.start()

        assert service.factory.health_monitor_running is True
        service.stop(grace_seconds=0)
        assert service.factory.health_monitor_running is False

    def test_start_respects_disabled_monitor(self, settings, session_mock):
        settings = settings.model_copy(
            update={
                "communications": CommunicationsSettings(COMMS_HEALTH_MONITOR_ENABLED=False)
            }
        )
        service = CommunicationsService(settings=settings, session=session_mock)

        service.start()

        assert service.factory.health_monitor_running is False

    def test_stop_drains_adapters(self, service, config_factory):
        service.configure_adapter(config_factory(ChannelType.SMS))
        adapter = service.get_adapter(ChannelType.SMS, "org-1")

        assert service.stop(grace_seconds=0) == {"sms:org-1": True}
        assert adapter.state == AdapterState.SHUTDOWN

    def test_check_health(self, service, config_factory, session_mock, response_factory):
        service.configure_adapter(config_factory(ChannelType.SMS))
        service.get_adapter(ChannelType.SMS, "org-1")
        session_mock.get.return_value = response_factory(200, {"status": "ok"})

        results = service.check_health()

        assert results["sms:org-1"].healthy is True
        assert service.get_health_status() == results
