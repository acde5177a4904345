"""Fixtures for communication delivery tests."""

import random
import threading
from typing import List
from unittest.mock import MagicMock

import pytest
from pydantic import BaseModel

from infrastructure.communications.adapters.base import ChannelAdapter
from infrastructure.communications.models import (
    AdapterCapabilities,
    ChannelType,
    MessageType,
)
from infrastructure.operations import OperationResult


class ScriptedCredentials(BaseModel):
    token: str


class ScriptedAdapter(ChannelAdapter):
    """Adapter whose provider outcomes are scripted per instance.

    ``outcomes`` is consumed one per provider call; once empty every call
    succeeds. ``initialize_calls`` counts ``_on_initialize`` runs across
    all instances of the class.
    """

    channel_type = ChannelType.PUSH
    credentials_model = ScriptedCredentials

    initialize_calls = 0
    initialize_delay = None
    _counter_lock = threading.Lock()

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.outcomes: List[OperationResult] = []
        self.delivered = []
        self.probe_outcomes: List[OperationResult] = []
        self.release = None

    def _on_initialize(self) -> None:
        with ScriptedAdapter._counter_lock:
            ScriptedAdapter.initialize_calls += 1
        if ScriptedAdapter.initialize_delay is not None:
            ScriptedAdapter.initialize_delay.wait(timeout=5)

    def validate_recipient(self, identifier: str) -> bool:
        return identifier.startswith("device-")

    def get_capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities(
            supported_message_types=[MessageType.TEXT], max_text_length=256
        )

    def _deliver(self, message):
        if self.release is not None:
            self.release.wait(timeout=5)
        self.delivered.append(message)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return OperationResult.success(
            data={"external_message_id": f"push-{len(self.delivered)}"}
        )

    def _probe_health(self):
        if self.probe_outcomes:
            return self.probe_outcomes.pop(0)
        return OperationResult.success(data={"ok": True})


@pytest.fixture
def scripted_adapter_cls():
    ScriptedAdapter.initialize_calls = 0
    ScriptedAdapter.initialize_delay = None
    yield ScriptedAdapter
    ScriptedAdapter.initialize_delay = None


@pytest.fixture
def push_config(config_factory):
    def _factory(organization_id="org-1", **settings):
        return config_factory(
            ChannelType.PUSH,
            organization_id=organization_id,
            credentials={"token": "t"},
            **settings,
        )

    return _factory


@pytest.fixture
def sleep_mock():
    return MagicMock()


@pytest.fixture
def session_mock():
    return MagicMock()


@pytest.fixture
def make_adapter(settings, session_mock, sleep_mock):
    """Build and initialize an adapter with a mocked HTTP session and sleep."""

    def _factory(adapter_cls, config):
        adapter = adapter_cls(
            settings=settings,
            session=session_mock,
            sleep=sleep_mock,
            rng=random.Random(0),
        )
        adapter.initialize(config)
        return adapter

    return _factory
