"""A reader that keeps what it read in a fixed-size buffer."""

from __future__ import annotations

from typing import BinaryIO

DEFAULT_BUFFER_SIZE = 1024


class OutOfBufferError(Exception):
    """Raised when a read would not fit in the remaining buffer."""


class BufferedReader:
    """Reads exact amounts from a stream and remembers them until reset."""

    def __init__(self, source: BinaryIO, size: int = DEFAULT_BUFFER_SIZE) -> None:
        self._source = source
        self._buf: bytearray | None = bytearray(size)
        self._left = 0
        self._right = 0

    def _buffer(self) -> bytearray:
        if self._buf is None:
            raise ValueError("reader has been freed")
        return self._buf

    def read(self, size: int = -1) -> bytes:
        """Read straight from the underlying stream, bypassing the buffer."""
        return self._source.read(size)

    def read_n(self, n: int) -> bytes:
        """Read exactly ``n`` bytes into the buffer and return them."""
        buf = self._buffer()
        if n > len(buf) - self._right:
            raise OutOfBufferError("n is bigger than len of buffer")
        self._left = self._right
        remaining = n
        while remaining > 0:
            chunk = self._source.read(remaining)[:remaining]
            if not chunk:
                raise EOFError("unexpected end of stream")
            buf[self._right:self._right + len(chunk)] = chunk
            self._right += len(chunk)
            remaining -= len(chunk)
        return bytes(buf[self._left:self._right])

    def read_byte(self) -> int:
        return self.read_n(1)[0]

    def reset(self) -> None:
        self._left = 0
        self._right = 0

    def cap(self) -> int:
        return 0 if self._buf is None else len(self._buf)

    def all_bytes(self) -> bytes:
        return bytes(self._buffer()[:self._right])

    def last_bytes(self) -> bytes:
        return bytes(self._buffer()[self._left:self._right])

    def free(self) -> None:
        self.reset()
        self._buf = None