"""Writing HTTP/1.1 responses over an :class:`AsyncSocket`.

A response moves through a small state machine: the status line is written
once, headers follow, and the body is either sent with a Content-Length
(``end``/``try_end``) or streamed with chunked transfer encoding (``write``).
"""

from __future__ import annotations

import enum
from typing import Any, Callable, Optional, Union

from .asyncsocket import AsyncSocket

BytesLike = Union[bytes, bytearray, memoryview, str]

HTTP_200_OK = "200 OK"
HTTP_TIMEOUT_S = 10
MARK_HEADER = ("uWebSockets", "19")


def _to_bytes(data: Optional[BytesLike]) -> bytes:
    if data is None:
        return b""
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


class ResponseState(enum.IntFlag):
    """Progress flags of one response."""

    HTTP_STATUS_CALLED = 1
    HTTP_WRITE_CALLED = 2
    HTTP_END_CALLED = 4
    HTTP_RESPONSE_PENDING = 8
    HTTP_CONNECTION_CLOSE = 16


class HttpResponse:
    """The channel on which a response is sent back to the client."""

    def __init__(self, socket: AsyncSocket) -> None:
        self.socket = socket
        self.state = ResponseState.HTTP_RESPONSE_PENDING
        self.offset = 0
        self.writable_handler: Optional[Callable[[int], bool]] = None
        self.aborted_handler: Optional[Callable[[], Any]] = None
        self.in_stream: Optional[Callable[[bytes, bool], Any]] = None

    def _mark_done(self) -> None:
        self.aborted_handler = None
        self.writable_handler = None
        self.state &= ~ResponseState.HTTP_RESPONSE_PENDING

    def _write_mark(self) -> None:
        if not self.socket.loop_data.no_mark:
            self.write_header(*MARK_HEADER)

    def _write_chunk_header(self, length: int) -> None:
        self.socket.write(b"\r\n")
        self.socket.write(format(length, "x").encode("ascii"))
        self.socket.write(b"\r\n")

    def _internal_end(
        self,
        data: bytes,
        total_size: int,
        optional: bool,
        allow_content_length: bool = True,
        close_connection: bool = False,
    ) -> bool:
        """Return True if everything was written without backpressure."""
        self.write_status(HTTP_200_OK)

        if not total_size:
            total_size = len(data)

        if close_connection:
            if not self.state & ResponseState.HTTP_CONNECTION_CLOSE:
                self.write_header("Connection", "close")
            self.state |= ResponseState.HTTP_CONNECTION_CLOSE

        if self.state & ResponseState.HTTP_WRITE_CALLED:
            # Chunked mode: optional writes are not supported here
            if data:
                self._write_chunk_header(len(data))
                self.socket.write(data)
            self.socket.write(b"\r\n0\r\n\r\n")
            self._mark_done()
            self.socket.timeout(HTTP_TIMEOUT_S)
            return True

        if not self.state & ResponseState.HTTP_END_CALLED:
            self._write_mark()
            if allow_content_length:
                self.socket.write(b"Content-Length: ")
                self.socket.write(str(total_size).encode("ascii"))
                self.socket.write(b"\r\n\r\n")
            else:
                self.socket.write(b"\r\n")
            self.state |= ResponseState.HTTP_END_CALLED

        written = 0
        failed = False
        while written < len(data) and not failed:
            count, failed = self.socket.write(data[written:], optional)
            written += count

        self.offset += written
        success = written == len(data) and not failed

        if not success or self.offset == total_size:
            self.socket.timeout(HTTP_TIMEOUT_S)
        if self.offset == total_size:
            self._mark_done()
        return success

    def close(self) -> None:
        """Immediately terminate this response's connection."""
        self.socket.close()

    def write_continue(self) -> "HttpResponse":
        """Write a 100 Continue interim response; may be repeated."""
        self.socket.write(b"HTTP/1.1 100 Continue\r\n\r\n")
        return self

    def write_status(self, status: BytesLike) -> "HttpResponse":
        """Write the status line; only the first call has any effect."""
        if self.state & ResponseState.HTTP_STATUS_CALLED:
            return self
        self.state |= ResponseState.HTTP_STATUS_CALLED
        self.socket.write(b"HTTP/1.1 ")
        self.socket.write(_to_bytes(status))
        self.socket.write(b"\r\n")
        return self

    def write_header(self, key: BytesLike, value: Union[BytesLike, int]) -> "HttpResponse":
        """Write one header; integer values are written in decimal."""
        self.write_status(HTTP_200_OK)
        if isinstance(value, int):
            if value < 0:
                raise ValueError("header value must not be negative")
            value = str(value)
        self.socket.write(_to_bytes(key))
        self.socket.write(b": ")
        self.socket.write(_to_bytes(value))
        self.socket.write(b"\r\n")
        return self

    def end(self, data: BytesLike = b"", close_connection: bool = False) -> None:
        """End the response with an optional final body."""
        payload = _to_bytes(data)
        self._internal_end(payload, len(payload), False, True, close_connection)

    def try_end(self, data: BytesLike, total_size: int = 0) -> tuple:
        """Try to send ``data`` as part of a ``total_size`` body.

        Returns (ok, has_responded).
        """
        ok = self._internal_end(_to_bytes(data), total_size, True)
        return ok, self.has_responded()

    def write(self, data: BytesLike) -> bool:
        """Send one chunk of a chunked response; False on backpressure."""
        self.write_status(HTTP_200_OK)
        payload = _to_bytes(data)
        # An empty chunk would end the response
        if not payload:
            return True

        if not self.state & ResponseState.HTTP_WRITE_CALLED:
            self._write_mark()
            self.write_header("Transfer-Encoding", "chunked")
            self.state |= ResponseState.HTTP_WRITE_CALLED

        self._write_chunk_header(len(payload))
        _, failed = self.socket.write(payload)
        if failed:
            self.socket.timeout(HTTP_TIMEOUT_S)
        return not failed

    def write_offset(self) -> int:
        """Body bytes written so far by end/try_end."""
        return self.offset

    def has_responded(self) -> bool:
        """Whether the response is complete."""
        return not self.state & ResponseState.HTTP_RESPONSE_PENDING

    def cork(self, handler: Callable[[], Any]) -> "HttpResponse":
        """Run ``handler`` with the socket corked, if it can be corked."""
        if not self.socket.is_corked() and self.socket.can_cork():
            self.socket.cork()
            handler()
            _, failed = self.socket.uncork()
            if failed:
                self.socket.timeout(HTTP_TIMEOUT_S)
        else:
            handler()
        return self

    def on_writable(self, handler: Callable[[int], bool]) -> "HttpResponse":
        self.writable_handler = handler
        return self

    def on_aborted(self, handler: Callable[[], Any]) -> "HttpResponse":
        self.aborted_handler = handler
        return self

    def on_data(self, handler: Callable[[bytes, bool], Any]) -> None:
        """Attach a handler for request body chunks (data, is_last)."""
        self.in_stream = handler