"""Operation status enumeration.

Status codes for operation results, used to classify outcomes of provider
calls and admission checks so the delivery layer can decide between retry,
fallback and immediate failure.
"""

from enum import Enum


class OperationStatus(Enum):
    """Status codes for operation results.

    Attributes:
        SUCCESS: Operation completed successfully
        TRANSIENT_ERROR: Retryable error (network, timeout, 5xx)
        RATE_LIMITED: Retryable error caused by local or provider throttling
        PERMANENT_ERROR: Non-retryable error (validation, bad request)
        UNAUTHORIZED: Authentication or authorization failure
        NOT_FOUND: Resource not found
    """

    SUCCESS = "success"
    TRANSIENT_ERROR = "transient_error"
    RATE_LIMITED = "rate_limited"
    PERMANENT_ERROR = "permanent_error"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"

    @property
    def is_retryable(self) -> bool:
        """Whether an operation ending in this status may succeed on retry."""
        return self in (OperationStatus.TRANSIENT_ERROR, OperationStatus.RATE_LIMITED)
