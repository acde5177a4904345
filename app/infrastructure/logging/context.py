"""Request and delivery context binding for structured logging.

This module provides utilities for binding request-scoped context to logs,
so correlation IDs and message identifiers flow through every log entry
emitted while a webhook is handled or a message is delivered.

Usage:
    from infrastructure.logging import bind_request_context

    # In middleware or request handler
    with bind_request_context(correlation_id="req-123", organization_id="org-1"):
        logger.info("processing_webhook")

Dependencies:
    - structlog.contextvars
"""

import uuid
from contextlib import contextmanager
from typing import Optional, Any, Generator
import structlog


@contextmanager
def bind_request_context(
    correlation_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    request_path: Optional[str] = None,
    request_method: Optional[str] = None,
    **extra_context: Any,
) -> Generator[None, None, None]:
    """Bind request-scoped context to all logs within the context manager.

    Args:
        correlation_id: Unique request identifier. Auto-generated if not provided.
        organization_id: Tenant the request belongs to (if known).
        request_path: HTTP request path (e.g., "/api/v1/communications/health").
        request_method: HTTP method (e.g., "GET", "POST").
        **extra_context: Additional key-value pairs to include in logs.

    Yields:
        None - context is automatically bound to structlog's context vars.

    Example:
        @app.middleware("http")
        async def logging_middleware(request: Request, call_next):
            with bind_request_context(
                correlation_id=request.headers.get("X-Correlation-ID"),
                request_path=request.url.path,
                request_method=request.method,
            ):
                return await call_next(request)
    """
    context: dict[str, Any] = {}
    context["correlation_id"] = correlation_id or str(uuid.uuid4())

    if organization_id is not None:
        context["organization_id"] = organization_id

    if request_path is not None:
        context["request_path"] = request_path

    if request_method is not None:
        context["request_method"] = request_method

    context.update(extra_context)

    structlog.contextvars.bind_contextvars(**context)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*context.keys())


@contextmanager
def bind_delivery_context(
    message_id: str,
    user_id: Optional[str] = None,
    organization_id: Optional[str] = None,
) -> Generator[None, None, None]:
    """Bind message delivery identifiers for the duration of one send.

    Nested bindings restore the outer values on exit, so a broadcast can
    bind per-recipient context inside its own.

    Args:
        message_id: Producer-assigned message identifier.
        user_id: Target user of this delivery.
        organization_id: Organization owning the sender.
    """
    context: dict[str, Any] = {"message_id": message_id}
    if user_id is not None:
        context["user_id"] = user_id
    if organization_id is not None:
        context["organization_id"] = organization_id

    previous = structlog.contextvars.get_contextvars()
    structlog.contextvars.bind_contextvars(**context)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*context.keys())
        restore = {key: previous[key] for key in context if key in previous}
        if restore:
            structlog.contextvars.bind_contextvars(**restore)


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID from the logging context.

    Returns:
        The correlation ID if set, None otherwise.
    """
    ctx = structlog.contextvars.get_contextvars()
    return ctx.get("correlation_id")


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID in the current logging context.

    Args:
        correlation_id: The correlation ID to set.
    """
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def clear_request_context() -> None:
    """Clear all request-scoped context from the logging context.

    Should be called at the end of request processing to prevent
    context leakage between requests.
    """
    structlog.contextvars.clear_contextvars()
