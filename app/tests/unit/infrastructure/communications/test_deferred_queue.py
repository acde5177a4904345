"""Unit tests for the deferred delivery queue."""

import pytest

from infrastructure.communications.deferred import DeferredMessageQueue
from infrastructure.communications.models import DeliveryRequest


@pytest.fixture
def request_factory(message_factory):
    def _factory(user_id="family-1", message_id="msg-1"):
        return DeliveryRequest(message=message_factory(message_id=message_id), user_id=user_id)

    return _factory


@pytest.mark.unit
class TestDeferredMessageQueue:
    def test_enqueue_and_snapshot_in_order(self, request_factory):
        queue = DeferredMessageQueue()

        queue.enqueue(request_factory(user_id="a"))
        queue.enqueue(request_factory(user_id="b"))

        assert [e.request.user_id for e in queue.snapshot()] == ["a", "b"]
        assert len(queue) == 2

    def test_same_delivery_is_held_once(self, request_factory):
        queue = DeferredMessageQueue()

        first = queue.enqueue(request_factory())
        second = queue.enqueue(request_factory(), reason="again")

        assert second is first
        assert second.reason == "quiet_hours"
        assert len(queue) == 1

    def test_full_queue_raises(self, request_factory):
        queue = DeferredMessageQueue(max_size=1)
        queue.enqueue(request_factory(user_id="a"))

        with pytest.raises(OverflowError):
            queue.enqueue(request_factory(user_id="b"))

    def test_full_queue_still_returns_existing_entry(self, request_factory):
        queue = DeferredMessageQueue(max_size=1)
        entry = queue.enqueue(request_factory())

        assert queue.enqueue(request_factory()) is entry

    def test_remove_and_get(self, request_factory):
        queue = DeferredMessageQueue()
        entry = queue.enqueue(request_factory())

        assert queue.get("msg-1", "family-1") is entry
        assert queue.remove("msg-1", "family-1") is entry
        assert queue.get("msg-1", "family-1") is None
        assert queue.remove("msg-1", "family-1") is None

    def test_clear(self, request_factory):
        queue = DeferredMessageQueue()
        queue.enqueue(request_factory())

        queue.clear()

        assert queue.snapshot() == []
