"""A byte FIFO made of queued messages."""

from __future__ import annotations

from collections import deque


class Bio:
    """Queue of byte messages that can be read back in arbitrary sizes."""

    def __init__(self) -> None:
        self._messages: deque[bytes] = deque()
        self._head_offset = 0
        self._available = 0

    def put(self, data: bytes | bytearray | memoryview) -> None:
        """Append a copy of ``data`` to the queue."""
        message = bytes(data)
        self._messages.append(message)
        self._available += len(message)

    def read(self, size: int) -> bytes:
        """Remove and return up to ``size`` bytes from the front of the queue."""
        parts = []
        total = 0
        while self._messages and total < size:
            head = self._messages[0]
            take = min(size - total, len(head) - self._head_offset)
            parts.append(head[self._head_offset:self._head_offset + take])
            self._head_offset += take
            self._available -= take
            total += take
            if self._head_offset == len(head):
                self._messages.popleft()
                self._head_offset = 0
        return b"".join(parts)

    def available(self) -> int:
        """Number of bytes waiting to be read."""
        return self._available

    def queued(self) -> int:
        """Number of messages still (partly) in the queue."""
        return len(self._messages)

    def __len__(self) -> int:
        return self._available