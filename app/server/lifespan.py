from contextlib import asynccontextmanager
import sys
import threading
from typing import AsyncIterator, Optional, TYPE_CHECKING

from fastapi import FastAPI
from structlog.stdlib import BoundLogger

from infrastructure.communications import CommunicationsService
from infrastructure.logging.setup import configure_logging
from infrastructure.services import get_communications_service, get_settings

if TYPE_CHECKING:
    from infrastructure.configuration import Settings


def _is_test_environment() -> bool:
    """Detect if running in a test environment."""
    return "pytest" in sys.modules


def _get_logger(settings: "Settings") -> BoundLogger:
    return configure_logging(
        log_level=settings.LOG_LEVEL, is_production=settings.is_production
    )


def _list_configs(settings: "Settings", logger: BoundLogger) -> None:
    config_settings: dict[str, list[object]] = {"settings": []}

    for key, value in settings.model_dump().items():
        if isinstance(value, dict):
            config_settings[key] = list(value.keys())
        else:
            config_settings["settings"].append({key: value})

    logger.info("configuration_initialized", base_settings=config_settings["settings"])
    for key, value in config_settings.items():
        if key != "settings":
            logger.info("configuration_loaded", config_setting=key, keys=value)


def _start_deferred_processing(
    service: CommunicationsService,
    interval_seconds: float,
    logger: BoundLogger,
) -> threading.Event:
    """Re-evaluate quiet-hours deferrals on a daemon thread until the event is set."""
    stop_event = threading.Event()

    def run() -> None:
        while not stop_event.wait(interval_seconds):
            try:
                results = service.process_deferred()
                if results:
                    logger.info("deferred_messages_processed", count=len(results))
            except Exception as exc:  # noqa: BLE001
                logger.error("deferred_processing_failed", error=str(exc), exc_info=True)

    thread = threading.Thread(target=run, daemon=True, name="deferred-delivery")
    thread.start()
    logger.info("deferred_processing_started", interval_seconds=interval_seconds)
    return stop_event


def _stop_deferred_processing(stop_event: Optional[threading.Event]) -> None:
    if stop_event is None:
        return
    stop_event.set()


def _start_communications(
    app: FastAPI,
    settings: "Settings",
    logger: BoundLogger,
) -> CommunicationsService:
    service = get_communications_service()
    app.state.communications = service

    if _is_test_environment():
        logger.info("communications_background_skipped", reason="test_environment")
        app.state.deferred_stop_event = None
        return service

    service.start()
    app.state.deferred_stop_event = _start_deferred_processing(
        service,
        settings.communications.deferred_check_interval_seconds,
        logger,
    )
    logger.info(
        "communications_started",
        adapter_types=[t.value for t in service.factory.registered_types()],
    )
    return service


def _stop_communications(
    app: FastAPI, settings: "Settings", logger: BoundLogger
) -> None:
    _stop_deferred_processing(getattr(app.state, "deferred_stop_event", None))
    service: Optional[CommunicationsService] = getattr(app.state, "communications", None)
    if service is None:
        return
    drained = service.stop(settings.communications.shutdown_grace_seconds)
    logger.info(
        "communications_stopped",
        adapters=len(drained),
        forced=[adapter_id for adapter_id, ok in drained.items() if not ok],
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    logger = _get_logger(settings)

    app.state.settings = settings
    app.state.logger = logger

    logger.info("application_startup")
    _list_configs(settings, logger)

    _start_communications(app, settings, logger)

    yield

    logger.info("application_shutdown")
    _stop_communications(app, settings, logger)
