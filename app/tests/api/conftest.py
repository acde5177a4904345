"""Fixtures for HTTP route tests."""

import pytest

from api.dependencies.rate_limits import get_limiter


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Each test starts with empty slowapi counters."""
    get_limiter().reset()
    yield
    get_limiter().reset()
