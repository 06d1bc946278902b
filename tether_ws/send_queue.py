"""FIFO buffer for messages accepted while disconnected."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator

from .transport.base import Message


class SendQueue:
    """Unbounded FIFO queue of outbound messages.

    Callers that may enqueue without limit while disconnected should cap
    their own traffic; the queue never drops anything.
    """

    def __init__(self) -> None:
        self._messages: deque[Message] = deque()

    def append(self, message: Message) -> None:
        """Add ``message`` at the tail."""
        self._messages.append(message)

    def requeue(self, messages: Iterable[Message]) -> None:
        """Put ``messages`` back at the head, keeping their order."""
        self._messages.extendleft(reversed(list(messages)))

    def drain(self) -> list[Message]:
        """Remove and return every queued message, oldest first."""
        messages = list(self._messages)
        self._messages.clear()
        return messages

    def clear(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)

    def __bool__(self) -> bool:
        return bool(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))
