"""Integration tests for server.lifespan module."""

import sys
import threading
from unittest.mock import MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from infrastructure.communications import CommunicationsService
from server import lifespan as lifespan_module
from server import server
from server.lifespan import (
    _get_logger,
    _is_test_environment,
    _list_configs,
    _start_communications,
    _start_deferred_processing,
    _stop_communications,
    _stop_deferred_processing,
)


@pytest.mark.integration
def test_lifespan_is_test_environment_detects_pytest():
    """Test that _is_test_environment detects pytest environment."""
    # Act
    is_test = _is_test_environment()

    # Assert
    assert is_test is True


@pytest.mark.integration
def test_lifespan_is_test_environment_detects_non_pytest():
    """Test that _is_test_environment returns False when pytest not loaded."""
    # Arrange
    original_modules = sys.modules.copy()
    if "pytest" in sys.modules:
        del sys.modules["pytest"]

    try:
        # Act
        result = lifespan_module._is_test_environment()

        # Assert
        assert result is False
    finally:
        sys.modules.update(original_modules)


@pytest.mark.integration
def test_lifespan_get_logger_returns_logger(settings):
    # Act
    logger = _get_logger(settings)

    # Assert
    assert logger is not None


@pytest.mark.integration
@patch("server.lifespan.configure_logging")
def test_lifespan_get_logger_configures_logging(mock_configure_logging, settings):
    """Test that _get_logger passes log level and environment to configure_logging."""
    # Arrange
    mock_configure_logging.return_value = MagicMock()

    # Act
    _get_logger(settings)

    # Assert
    mock_configure_logging.assert_called_once_with(
        log_level=settings.LOG_LEVEL, is_production=settings.is_production
    )


@pytest.mark.integration
def test_lifespan_list_configs_logs_sections(settings, mock_logger):
    """Test that _list_configs logs base settings and one line per section."""
    # Act
    _list_configs(settings, mock_logger)

    # Assert
    events = [call.args[0] for call in mock_logger.info.call_args_list]
    assert events[0] == "configuration_initialized"
    sections = [
        call.kwargs["config_setting"]
        for call in mock_logger.info.call_args_list
        if call.args[0] == "configuration_loaded"
    ]
    assert "communications" in sections
    assert "retry" in sections


@pytest.mark.integration
def test_lifespan_deferred_processing_runs_until_stopped(mock_service, mock_logger):
    """Test that the deferred thread polls the service until its event is set."""
    # Arrange
    polled = threading.Event()
    mock_service.process_deferred.side_effect = lambda: polled.set() or []

    # Act
    stop_event = _start_deferred_processing(mock_service, 0.01, mock_logger)
    try:
        assert polled.wait(2.0)
    finally:
        _stop_deferred_processing(stop_event)

    # Assert
    assert stop_event.is_set()
    mock_logger.info.assert_any_call("deferred_processing_started", interval_seconds=0.01)


@pytest.mark.integration
def test_lifespan_deferred_processing_survives_errors(mock_service, mock_logger):
    """Test that a failing cycle is logged and the thread keeps polling."""
    # Arrange
    calls = []
    recovered = threading.Event()

    def process_deferred():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("store unavailable")
        recovered.set()
        return [MagicMock()]

    mock_service.process_deferred.side_effect = process_deferred

    # Act
    stop_event = _start_deferred_processing(mock_service, 0.01, mock_logger)
    try:
        assert recovered.wait(2.0)
    finally:
        _stop_deferred_processing(stop_event)

    # Assert
    error_events = [call.args[0] for call in mock_logger.error.call_args_list]
    assert "deferred_processing_failed" in error_events


@pytest.mark.integration
def test_lifespan_stop_deferred_processing_accepts_none():
    # Act / Assert - should not raise
    _stop_deferred_processing(None)


@pytest.mark.integration
@patch("server.lifespan.get_communications_service")
def test_lifespan_start_communications_skips_background_in_tests(
    mock_get_service, settings, mock_service, mock_logger
):
    """Test that no monitor or deferred thread is started under pytest."""
    # Arrange
    mock_get_service.return_value = mock_service
    app = FastAPI()

    # Act
    service = _start_communications(app, settings, mock_logger)

    # Assert
    assert service is mock_service
    assert app.state.communications is mock_service
    assert app.state.deferred_stop_event is None
    mock_service.start.assert_not_called()
    mock_logger.info.assert_any_call(
        "communications_background_skipped", reason="test_environment"
    )


@pytest.mark.integration
@patch("server.lifespan._is_test_environment", return_value=False)
@patch("server.lifespan.get_communications_service")
def test_lifespan_start_communications_starts_background_work(
    mock_get_service, _mock_is_test, settings, mock_service, mock_logger
):
    # Arrange
    mock_get_service.return_value = mock_service
    mock_service.factory.registered_types.return_value = []
    app = FastAPI()

    # Act
    _start_communications(app, settings, mock_logger)

    # Assert
    try:
        mock_service.start.assert_called_once()
        assert isinstance(app.state.deferred_stop_event, threading.Event)
        assert not app.state.deferred_stop_event.is_set()
    finally:
        _stop_deferred_processing(app.state.deferred_stop_event)


@pytest.mark.integration
def test_lifespan_stop_communications_drains_service(settings, mock_service, mock_logger):
    """Test that shutdown stops the deferred thread and drains adapters."""
    # Arrange
    app = FastAPI()
    stop_event = threading.Event()
    app.state.deferred_stop_event = stop_event
    app.state.communications = mock_service
    mock_service.stop.return_value = {"whatsapp:org-1": True, "sms:org-1": False}

    # Act
    _stop_communications(app, settings, mock_logger)

    # Assert
    assert stop_event.is_set()
    mock_service.stop.assert_called_once_with(
        settings.communications.shutdown_grace_seconds
    )
    mock_logger.info.assert_any_call(
        "communications_stopped", adapters=2, forced=["sms:org-1"]
    )


@pytest.mark.integration
def test_lifespan_stop_communications_without_service(settings, mock_logger):
    # Arrange
    app = FastAPI()

    # Act / Assert - should not raise
    _stop_communications(app, settings, mock_logger)
    mock_logger.info.assert_not_called()


@pytest.mark.integration
def test_lifespan_full_startup_and_shutdown():
    """Test that the application starts, serves requests and shuts down."""
    # Act
    with TestClient(server.handler) as client:
        # Assert
        assert isinstance(server.handler.state.communications, CommunicationsService)
        assert server.handler.state.deferred_stop_event is None
        assert client.get("/health").json() == {"status": "ok"}
        response = client.get("/api/v1/communications/health")
        assert response.status_code == 200
        assert "adapters" in response.json()
