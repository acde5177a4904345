"""Shared fixtures for the communication delivery test suite."""

import pytest

from infrastructure.configuration import Settings
from tests.factories.communications import (
    make_adapter_configuration,
    make_message,
    make_preference,
    make_response,
)


@pytest.fixture
def settings():
    """Settings built from defaults (no .env in the test environment)."""
    return Settings()


@pytest.fixture
def message_factory():
    return make_message


@pytest.fixture
def preference_factory():
    return make_preference


@pytest.fixture
def config_factory():
    return make_adapter_configuration


@pytest.fixture
def response_factory():
    return make_response
