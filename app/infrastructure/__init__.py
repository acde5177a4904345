"""Infrastructure modules for the communication delivery core.

Centralized infrastructure components:
- configuration: Settings management (settings, RetrySettings)
- logging: Structured logging (get_module_logger, logger)
- operations: Operation results and error classification
- resilience: Retry policies and token bucket rate limiting
- idempotency: Idempotency cache for delivery results
- communications: Channel adapters, preferences and orchestration
- services: Dependency injection services (SettingsDep, CommunicationsServiceDep)
"""

# Configuration
from infrastructure.configuration import settings

# Logging
from infrastructure.logging import get_module_logger
from infrastructure.logging.setup import logger

# Operations
from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

__all__ = [
    # Configuration
    "settings",
    # Logging
    "get_module_logger",
    "logger",
    # Operations
    "OperationResult",
    "OperationStatus",
]
