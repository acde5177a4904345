"""Idempotency cache abstract base class."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class IdempotencyCache(ABC):
    """Abstract base class for idempotency cache implementations.

    Stores the serialized outcome of an operation under a deterministic key
    so a repeated request returns the earlier outcome instead of repeating
    the side effect (e.g. sending the same message twice).
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Get the cached outcome for an idempotency key.

        Args:
            key: Idempotency key.

        Returns:
            Cached outcome dict or None if not found/expired.
        """

    @abstractmethod
    def set(self, key: str, response: Dict[str, Any], ttl_seconds: int) -> None:
        """Cache an outcome for the given idempotency key.

        Args:
            key: Idempotency key.
            response: Outcome dict to cache.
            ttl_seconds: Time-to-live in seconds.
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Drop the entry for ``key`` if present."""

    @abstractmethod
    def clear(self) -> None:
        """Clear all cached entries (for testing)."""

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
