"""Unit tests for the keyed work queue."""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator

import pytest

from apim_operator.runtime.work_queue import KeyedWorkQueue


@pytest.fixture
def queue() -> Iterator[KeyedWorkQueue]:
    """Fresh work queue."""
    q = KeyedWorkQueue()
    yield q
    q.shutdown()


@pytest.mark.unit
class TestKeyedWorkQueue:
    """Tests for KeyedWorkQueue."""

    def test_fifo(self, queue: KeyedWorkQueue) -> None:
        """Keys come out in insertion order."""
        queue.add("shop/a")
        queue.add("shop/b")

        assert queue.get(timeout=0) == "shop/a"
        assert queue.get(timeout=0) == "shop/b"

    def test_duplicate_add_collapses(self, queue: KeyedWorkQueue) -> None:
        """A key that is already waiting is queued once."""
        queue.add("shop/a")
        queue.add("shop/a")

        assert len(queue) == 1
        assert queue.pending("shop/a")

    def test_get_timeout(self, queue: KeyedWorkQueue) -> None:
        """get returns None when nothing arrives."""
        assert queue.get(timeout=0.01) is None

    def test_key_in_flight_is_deferred(self, queue: KeyedWorkQueue) -> None:
        """A key added while processing is handed out again after done."""
        queue.add("shop/a")
        key = queue.get(timeout=0)

        queue.add("shop/a")
        assert len(queue) == 0
        assert queue.get(timeout=0) is None

        queue.done(key)
        assert queue.get(timeout=0) == "shop/a"

    def test_other_keys_proceed_while_one_in_flight(self, queue: KeyedWorkQueue) -> None:
        """Different keys are processed in parallel."""
        queue.add("shop/a")
        queue.add("shop/b")

        assert queue.get(timeout=0) == "shop/a"
        assert queue.get(timeout=0) == "shop/b"

    def test_done_without_readd(self, queue: KeyedWorkQueue) -> None:
        """done does not requeue a key that was not added again."""
        queue.add("shop/a")
        queue.done(queue.get(timeout=0))

        assert queue.get(timeout=0) is None
        assert not queue.pending("shop/a")

    def test_add_after(self, queue: KeyedWorkQueue) -> None:
        """A delayed key becomes available after the delay."""
        queue.add_after("shop/a", 0.05)

        assert queue.get(timeout=0) is None
        assert queue.get(timeout=2.0) == "shop/a"

    def test_add_after_zero_is_immediate(self, queue: KeyedWorkQueue) -> None:
        """A non-positive delay queues immediately."""
        queue.add_after("shop/a", 0)
        assert queue.get(timeout=0) == "shop/a"

    def test_add_after_replaces_pending_delay(self, queue: KeyedWorkQueue) -> None:
        """Rescheduling a key cancels its earlier timer."""
        queue.add_after("shop/a", 0.05)
        queue.add_after("shop/a", 60)

        time.sleep(0.2)
        assert queue.get(timeout=0) is None

    def test_get_wakes_on_add(self, queue: KeyedWorkQueue) -> None:
        """A blocked get returns as soon as a key is added."""
        result: list[str | None] = []
        worker = threading.Thread(target=lambda: result.append(queue.get(timeout=5.0)))
        worker.start()

        queue.add("shop/a")
        worker.join(5.0)

        assert result == ["shop/a"]

    def test_shutdown(self, queue: KeyedWorkQueue) -> None:
        """After shutdown the queue is empty and rejects keys."""
        queue.add("shop/a")
        queue.add_after("shop/b", 0.01)

        queue.shutdown()
        queue.add("shop/c")
        time.sleep(0.05)

        assert queue.is_shutting_down
        assert queue.get(timeout=0) is None
        assert len(queue) == 0

    def test_shutdown_wakes_waiters(self, queue: KeyedWorkQueue) -> None:
        """Blocked workers return None on shutdown."""
        result: list[str | None] = []
        worker = threading.Thread(target=lambda: result.append(queue.get(timeout=5.0)))
        worker.start()

        queue.shutdown()
        worker.join(5.0)

        assert result == [None]
