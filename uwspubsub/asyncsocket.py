"""Buffered, corkable writes on top of a byte transport.

Writes go to one of three places, in order of preference: the per-loop cork
buffer, the transport itself, and finally a per-socket backpressure buffer
that is flushed before anything else on the next write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

BytesLike = Union[bytes, bytearray, memoryview, str]

CORK_BUFFER_SIZE = 16 * 1024


def _as_bytes(data: Optional[BytesLike]) -> bytes:
    if data is None:
        return b""
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


class Transport:
    """In-memory byte transport.

    ``capacity`` limits how many more bytes the transport accepts before it
    reports a short write; ``None`` means unlimited. Subclasses may override
    the methods to talk to a real socket.
    """

    def __init__(self, remote: BytesLike = b"", capacity: Optional[int] = None) -> None:
        self.capacity = capacity
        self.sent = bytearray()
        self.writes: list = []
        self.timeout_seconds: Optional[int] = None
        self.shut_down = False
        self.closed = False
        self._remote = _as_bytes(remote)

    def write(self, data: bytes, more: bool = False) -> int:
        """Accept as much of ``data`` as possible; return the byte count."""
        if self.closed:
            return 0
        count = len(data) if self.capacity is None else min(len(data), self.capacity)
        if self.capacity is not None:
            self.capacity -= count
        chunk = bytes(data[:count])
        self.sent += chunk
        self.writes.append(chunk)
        return count

    def is_closed(self) -> bool:
        return self.closed

    def remote_address(self) -> bytes:
        """Binary IPv4 (4 bytes) or IPv6 (16 bytes) address, or empty."""
        return self._remote

    def set_timeout(self, seconds: int) -> None:
        self.timeout_seconds = seconds

    def shutdown(self) -> None:
        self.shut_down = True

    def close(self) -> None:
        self.closed = True


@dataclass(eq=False)
class LoopData:
    """State shared by every socket of one event loop."""

    CORK_BUFFER_SIZE = CORK_BUFFER_SIZE

    no_mark: bool = False
    cork_buffer: bytearray = field(default_factory=bytearray, repr=False)
    corked_socket: Any = field(default=None, repr=False)


def address_as_text(binary: BytesLike) -> str:
    """Text form of a binary IPv4 or IPv6 address; empty input gives ''."""
    raw = _as_bytes(binary)
    if not raw:
        return ""
    if len(raw) == 4:
        return ".".join(str(b) for b in raw)
    if len(raw) == 16:
        return ":".join(raw[i:i + 2].hex() for i in range(0, 16, 2))
    raise ValueError(f"address must be 4 or 16 bytes, got {len(raw)}")


class AsyncSocket:
    """A socket with cork and backpressure handling."""

    def __init__(self, transport: Transport, loop_data: Optional[LoopData] = None) -> None:
        self.transport = transport
        self.loop_data = loop_data if loop_data is not None else LoopData()
        self.buffer = bytearray()

    def timeout(self, seconds: int) -> None:
        self.transport.set_timeout(seconds)

    def shutdown(self) -> None:
        """Shut down without draining the backpressure buffer."""
        self.transport.shutdown()

    def close(self) -> None:
        self.transport.close()

    def cork(self) -> None:
        """Cork this socket; only one socket per loop is corked at a time."""
        self.loop_data.corked_socket = self

    def is_corked(self) -> bool:
        return self.loop_data.corked_socket is self

    def can_cork(self) -> bool:
        return self.loop_data.corked_socket is None

    def buffered_amount(self) -> int:
        """Bytes waiting in the backpressure buffer."""
        return len(self.buffer)

    def remote_address(self) -> bytes:
        return self.transport.remote_address()

    def remote_address_as_text(self) -> str:
        return address_as_text(self.remote_address())

    def write(self, data: BytesLike, optionally: bool = False, next_length: int = 0) -> tuple:
        """Write ``data``; return (bytes accounted for, whether backpressured)."""
        payload = _as_bytes(data)
        length = len(payload)

        # Pretend success on a closed socket so that uncorking it still works
        if self.transport.is_closed():
            return length, False

        if self.buffer:
            pending = bytes(self.buffer)
            written = self.transport.write(pending, bool(length))
            if written < len(pending):
                del self.buffer[:written]
                if optionally:
                    return 0, True
                self.buffer += payload
                return length, True
            self.buffer.clear()

        if not length:
            return length, False

        loop = self.loop_data
        if loop.corked_socket is self:
            if LoopData.CORK_BUFFER_SIZE - len(loop.cork_buffer) >= length:
                loop.cork_buffer += payload
                return length, False
            return self.uncork(payload, optionally)

        written = self.transport.write(payload, next_length != 0)
        if written < length:
            if optionally:
                return written, True
            self.buffer += payload[written:]
            return length, True
        return length, False

    def uncork(self, data: Optional[BytesLike] = None, optionally: bool = False) -> tuple:
        """Flush corked data, then write ``data``.

        Corked bytes are not counted again; the result describes ``data`` only.
        """
        loop = self.loop_data
        if loop.corked_socket is not self:
            return 0, False

        loop.corked_socket = None
        payload = _as_bytes(data)

        if loop.cork_buffer:
            pending = bytes(loop.cork_buffer)
            loop.cork_buffer.clear()
            _, failed = self.write(pending, False, len(payload))
            if failed:
                return 0, True

        return self.write(payload, optionally, 0)