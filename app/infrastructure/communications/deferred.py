"""Holding queue for messages deferred by quiet hours.

A deferred delivery is kept until ``Orchestrator.process_deferred`` finds
its recipient outside quiet hours (or no longer consenting). Entries are
keyed by (message_id, user_id); deferring the same delivery twice keeps the
original entry.
"""

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from infrastructure.communications.models import DeliveryRequest
from infrastructure.logging import get_module_logger

logger = get_module_logger()

DeferredKey = Tuple[str, str]


class DeferredDelivery(BaseModel):
    request: DeliveryRequest
    deferred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    reason: str = "quiet_hours"

    @property
    def key(self) -> DeferredKey:
        return (self.request.message.message_id, self.request.user_id)


class DeferredMessageQueue:
    """Thread-safe, insertion-ordered queue of deferred deliveries."""

    def __init__(self, max_size: Optional[int] = None):
        self.max_size = max_size
        self._entries: Dict[DeferredKey, DeferredDelivery] = {}
        self._lock = threading.Lock()

    def enqueue(
        self, request: DeliveryRequest, reason: str = "quiet_hours"
    ) -> DeferredDelivery:
        """Hold ``request``. Returns the existing entry if already held.

        Raises:
            OverflowError: Queue is at ``max_size``
        """
        key = (request.message.message_id, request.user_id)
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None:
                return existing
            if self.max_size is not None and len(self._entries) >= self.max_size:
                raise OverflowError("Deferred message queue is full")
            entry = DeferredDelivery(request=request, reason=reason)
            self._entries[key] = entry
            size = len(self._entries)
        logger.info(
            "message_deferred",
            message_id=request.message.message_id,
            user_id=request.user_id,
            reason=reason,
            queue_size=size,
        )
        return entry

    def remove(self, message_id: str, user_id: str) -> Optional[DeferredDelivery]:
        with self._lock:
            return self._entries.pop((message_id, user_id), None)

    def get(self, message_id: str, user_id: str) -> Optional[DeferredDelivery]:
        with self._lock:
            return self._entries.get((message_id, user_id))

    def snapshot(self) -> List[DeferredDelivery]:
        """Entries in deferral order."""
        with self._lock:
            return list(self._entries.values())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
