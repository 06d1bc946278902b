"""Tests for SendQueue."""

from __future__ import annotations

from tether_ws import SendQueue


class TestSendQueue:
    """Tests for FIFO buffering."""

    def test_empty(self):
        """Test a new queue is empty and falsy."""
        queue = SendQueue()
        assert len(queue) == 0
        assert not queue
        assert queue.drain() == []

    def test_fifo_order(self):
        """Test drain returns messages oldest first and empties the queue."""
        queue = SendQueue()
        queue.append("a")
        queue.append(b"b")
        queue.append("c")

        assert len(queue) == 3
        assert queue
        assert queue.drain() == ["a", b"b", "c"]
        assert len(queue) == 0

    def test_requeue_goes_to_head(self):
        """Test requeued messages come back before newer ones, in order."""
        queue = SendQueue()
        queue.append("newer")
        queue.requeue(["old-1", "old-2"])

        assert queue.drain() == ["old-1", "old-2", "newer"]

    def test_requeue_accepts_iterables(self):
        """Test requeue works with any iterable, including deques."""
        from collections import deque

        queue = SendQueue()
        queue.requeue(deque(["x", "y"]))
        queue.requeue(iter(["w"]))

        assert list(queue) == ["w", "x", "y"]

    def test_iteration_is_a_snapshot(self):
        """Test iterating does not consume and tolerates mutation."""
        queue = SendQueue()
        queue.append("a")
        queue.append("b")

        seen = []
        for message in queue:
            seen.append(message)
            queue.append("late")

        assert seen == ["a", "b"]
        assert len(queue) == 4

    def test_clear(self):
        """Test clear drops everything."""
        queue = SendQueue()
        queue.append("a")
        queue.clear()
        assert not queue
