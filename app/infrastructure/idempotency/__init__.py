"""Infrastructure idempotency cache.

Prevents repeated side effects when a producer retries the same request,
for example delivering one message twice to the same user.

Usage:

    from infrastructure.idempotency import (
        IdempotencyKeyBuilder,
        InMemoryIdempotencyCache,
    )

    cache = InMemoryIdempotencyCache()
    key = IdempotencyKeyBuilder("communications").build(
        "deliver", message_id=message_id, user_id=user_id
    )

    cached = cache.get(key)
    if cached:
        return cached

    response = execute_operation(...)
    cache.set(key, response, ttl_seconds=3600)
"""

from infrastructure.idempotency.cache import IdempotencyCache
from infrastructure.idempotency.key_builder import IdempotencyKeyBuilder
from infrastructure.idempotency.memory import InMemoryIdempotencyCache

__all__ = [
    "IdempotencyCache",
    "IdempotencyKeyBuilder",
    "InMemoryIdempotencyCache",
]
