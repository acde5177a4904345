"""Idempotency key builder for consistent key generation."""

import hashlib
from typing import Any


class IdempotencyKeyBuilder:
    """Build deterministic idempotency keys.

    Keys are namespaced so unrelated operations never collide, and the
    components are hashed so identifiers (phone numbers, user ids) do not
    appear in cache keys or logs.

    Example:
        >>> builder = IdempotencyKeyBuilder(namespace="communications")
        >>> builder.build("deliver", message_id="msg-1", user_id="user-1")
        'communications:deliver:...'
    """

    def __init__(self, namespace: str):
        self.namespace = namespace

    def build(self, operation: str, **components: Any) -> str:
        """Build an idempotency key from keyword components (order-independent)."""
        key_parts = [self.namespace, operation]
        key_parts.extend(f"{k}={v}" for k, v in sorted(components.items()))
        key_string = "|".join(str(part) for part in key_parts)

        key_hash = hashlib.sha256(key_string.encode()).hexdigest()[:16]

        return f"{self.namespace}:{operation}:{key_hash}"
