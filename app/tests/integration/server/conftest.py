"""Fixtures for server integration tests."""

from unittest.mock import MagicMock

import pytest

from infrastructure.communications import CommunicationsService
from infrastructure.communications.factory import AdapterFactory


@pytest.fixture
def mock_service():
    """CommunicationsService double with nothing deferred."""
    service = MagicMock(spec=CommunicationsService)
    service.factory = MagicMock(spec=AdapterFactory)
    service.process_deferred.return_value = []
    service.stop.return_value = {}
    return service


@pytest.fixture
def mock_logger():
    return MagicMock()
