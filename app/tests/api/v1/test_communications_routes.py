"""Route tests for operator health and inbound provider webhooks."""

import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from api.dependencies.rate_limits import provider_key_func
from api.v1.routes import communications
from infrastructure.communications import CommunicationsService
from infrastructure.communications.models import ChannelType
from infrastructure.communications.signing import sign_payload
from infrastructure.services import get_communications_service
from tests.factories.communications import (
    DEFAULT_CREDENTIALS,
    make_adapter_configuration,
    make_response,
)
from utils.tests import create_test_app

WEBHOOK_URL = "/api/v1/communications/webhooks"


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def service(settings, session):
    service = CommunicationsService(settings=settings, session=session, sleep=MagicMock())
    service.configure_adapter(
        make_adapter_configuration(
            ChannelType.WHATSAPP,
            credentials=dict(DEFAULT_CREDENTIALS[ChannelType.WHATSAPP], verify_token="vt"),
        )
    )
    service.configure_adapter(
        make_adapter_configuration(
            ChannelType.WEBHOOK,
            credentials={"url": "https://family.example.com/in", "signing_secret": "s3cret"},
        )
    )
    service.configure_adapter(make_adapter_configuration(ChannelType.SMS))
    yield service
    service.stop(grace_seconds=0)


@pytest.fixture
def client(service):
    app = create_test_app(
        communications.router,
        dependency_overrides={get_communications_service: lambda: service},
        prefix="/api/v1",
    )
    return TestClient(app)


def signed(payload, secret="s3cret"):
    body = json.dumps(payload).encode()
    headers = {"Content-Type": "application/json", **sign_payload(secret, body)}
    return body, headers


@pytest.mark.unit
class TestHealthEndpoint:
    def test_reports_latest_adapter_health(self, client, service, session):
        service.get_adapter(ChannelType.SMS, "org-1")
        session.get.return_value = make_response(200, {"status": "ok"})
        service.check_health()

        response = client.get("/api/v1/communications/health")

        assert response.status_code == 200
        body = response.json()
        assert body["healthy"] is True
        assert body["adapters"]["sms:org-1"]["state"] == "ready"

    def test_empty_when_no_adapters_polled(self, client):
        response = client.get("/api/v1/communications/health")

        assert response.json() == {"healthy": True, "adapters": {}}


@pytest.mark.unit
class TestWhatsAppVerification:
    def test_echoes_challenge(self, client):
        response = client.get(
            f"{WEBHOOK_URL}/whatsapp/org-1",
            params={"hub.mode": "subscribe", "hub.verify_token": "vt", "hub.challenge": "4242"},
        )

        assert response.status_code == 200
        assert response.text == "4242"

    def test_wrong_token_forbidden(self, client):
        response = client.get(
            f"{WEBHOOK_URL}/whatsapp/org-1",
            params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "1"},
        )

        assert response.status_code == 403

    def test_unconfigured_organization_not_found(self, client):
        response = client.get(
            f"{WEBHOOK_URL}/whatsapp/org-404",
            params={"hub.mode": "subscribe", "hub.verify_token": "vt", "hub.challenge": "1"},
        )

        assert response.status_code == 404


@pytest.mark.unit
class TestInboundWebhook:
    def test_signed_status_receipt_accepted(self, client, service):
        seen = []
        service.add_inbound_listener(lambda adapter, events: seen.append(events))
        body, headers = signed({"event": "status", "message_id": "m-1", "status": "delivered"})

        response = client.post(f"{WEBHOOK_URL}/webhook/org-1", content=body, headers=headers)

        assert response.status_code == 200
        payload = response.json()
        assert payload["status"] == "ok"
        assert payload["messages"] == []
        assert payload["statuses"][0]["status"] == "delivered"
        assert len(seen) == 1

    def test_whatsapp_reply_parsed(self, client):
        payload = {
            "object": "whatsapp_business_account",
            "entry": [
                {
                    "changes": [
                        {
                            "value": {
                                "messages": [
                                    {
                                        "from": "447700900123",
                                        "id": "wamid.in",
                                        "type": "text",
                                        "text": {"body": "See you Sunday"},
                                    }
                                ]
                            }
                        }
                    ]
                }
            ],
        }

        response = client.post(f"{WEBHOOK_URL}/whatsapp/org-1", json=payload)

        assert response.status_code == 200
        message = response.json()["messages"][0]
        assert message["sender"] == "+447700900123"
        assert message["content"]["text"] == "See you Sunday"

    def test_bad_signature_unauthorized(self, client):
        body, headers = signed({"event": "status", "message_id": "m-1", "status": "sent"}, "wrong")

        response = client.post(f"{WEBHOOK_URL}/webhook/org-1", content=body, headers=headers)

        assert response.status_code == 401

    def test_invalid_json_bad_request(self, client):
        response = client.post(
            f"{WEBHOOK_URL}/webhook/org-1",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400

    def test_unknown_event_bad_request(self, client):
        body, headers = signed({"event": "subscribe"})

        response = client.post(f"{WEBHOOK_URL}/webhook/org-1", content=body, headers=headers)

        assert response.status_code == 400

    @pytest.mark.parametrize(
        "payload",
        [
            {"entry": ["oops"]},
            {"entry": [{"changes": [{"value": {"messages": ["oops"]}}]}]},
            {"entry": [{"changes": [{"value": {"statuses": [{"id": "w", "status": "sent", "errors": ["x"]}]}}]}]},
            {"entry": [{"changes": "oops"}]},
        ],
    )
    def test_whatsapp_wrongly_typed_payload_bad_request(self, client, payload):
        response = client.post(f"{WEBHOOK_URL}/whatsapp/org-1", json=payload)

        assert response.status_code == 400

    def test_whatsapp_numeric_sender_normalised(self, client):
        payload = {
            "entry": [
                {
                    "changes": [
                        {
                            "value": {
                                "contacts": [{"wa_id": 447700900123, "profile": {"name": "Ann"}}],
                                "messages": [
                                    {"from": 447700900123, "id": "wamid.n", "text": {"body": "hi"}}
                                ],
                            }
                        }
                    ]
                }
            ]
        }

        response = client.post(f"{WEBHOOK_URL}/whatsapp/org-1", json=payload)

        assert response.status_code == 200
        message = response.json()["messages"][0]
        assert message["sender"] == "+447700900123"
        assert message["sender_name"] == "Ann"

    @pytest.mark.parametrize("sender", ["bob", ["bob"], 7])
    def test_webhook_sender_not_an_object_bad_request(self, client, sender):
        body, headers = signed(
            {"message_id": "m-1", "content": {"text": "hi"}, "sender": sender}
        )

        response = client.post(f"{WEBHOOK_URL}/webhook/org-1", content=body, headers=headers)

        assert response.status_code == 400

    def test_non_ascii_signature_unauthorized(self, client):
        body, headers = signed({"event": "status", "message_id": "m-1", "status": "sent"})
        headers["X-Signature-256"] = "sha256=éabc".encode("latin-1")

        response = client.post(f"{WEBHOOK_URL}/webhook/org-1", content=body, headers=headers)

        assert response.status_code == 401

    @pytest.mark.parametrize("path", ["fax/org-1", "webhook/org-404"])
    def test_unknown_channel_or_organization_not_found(self, client, path):
        response = client.post(f"{WEBHOOK_URL}/{path}", json={"event": "status"})

        assert response.status_code == 404

    def test_one_way_channel_not_allowed(self, client):
        response = client.post(f"{WEBHOOK_URL}/sms/org-1", json={"text": "hi"})

        assert response.status_code == 405


@pytest.mark.unit
class TestProviderKeyFunc:
    def _request(self, path_params):
        return Request(
            {
                "type": "http",
                "method": "POST",
                "path": "/",
                "headers": [],
                "client": ("203.0.113.5", 443),
                "path_params": path_params,
            }
        )

    def test_keys_by_organization(self):
        assert provider_key_func(self._request({"organization_id": "org-1"})) == "org:org-1"

    def test_falls_back_to_remote_address(self):
        assert provider_key_func(self._request({})) == "203.0.113.5"
