"""Custom exceptions for the communications system.

Sends never raise: every failure of ``ChannelAdapter.send_message`` and of
the orchestrator is reported through a DeliveryError inside the result.
These exceptions cover configuration, registration and inbound webhook
problems, which callers must handle explicitly.
"""


class CommunicationError(Exception):
    """Base exception for all communication-related errors.

    Example:
        try:
            factory.create_adapter("whatsapp", config)
        except CommunicationError as e:
            logger.error("communication_error", error=str(e))
    """


class AdapterConfigurationError(CommunicationError):
    """Raised when an adapter configuration or its credentials are invalid.

    Example:
        >>> adapter.initialize(config_without_access_token)
        Traceback (most recent call last):
        ...
        AdapterConfigurationError: Invalid whatsapp credentials: ...
    """


class AdapterNotRegisteredError(CommunicationError):
    """Raised when no adapter class is registered for an adapter type."""


class InvalidPayloadError(CommunicationError):
    """Raised when an inbound provider payload cannot be parsed."""


class SignatureVerificationError(CommunicationError):
    """Raised when an inbound payload signature is missing, stale or wrong."""


class UnsupportedOperationError(CommunicationError):
    """Raised when an adapter does not support the requested operation.

    Example:
        >>> sms_adapter.receive_message(payload)
        Traceback (most recent call last):
        ...
        UnsupportedOperationError: sms adapter is one-way
    """


class PreferenceNotFoundError(CommunicationError):
    """Raised when a preference record or one of its identifiers does not exist."""
