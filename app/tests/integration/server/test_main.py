"""Integration tests for main module."""

import pytest
from fastapi.testclient import TestClient

from main import server_app

client = TestClient(server_app)


@pytest.mark.integration
def test_main_app_handles_http_requests():
    """Test that the app exported from main can handle HTTP requests."""
    # Act
    response = client.get("/test-unmapped-route")

    # Assert - Should get 404 for unmapped route
    assert response.status_code == 404


@pytest.mark.integration
def test_main_app_serves_version():
    # Act
    response = client.get("/version")

    # Assert
    assert response.status_code == 200
    assert "version" in response.json()
