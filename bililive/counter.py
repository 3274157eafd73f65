"""Readers and writers that count the bytes passing through them."""

from __future__ import annotations

from typing import BinaryIO


class CountReader:
    """Wraps a binary reader and counts bytes read."""

    def __init__(self, reader: BinaryIO) -> None:
        self._reader = reader
        self.count = 0

    def read(self, size: int = -1) -> bytes:
        data = self._reader.read(size)
        self.count += len(data)
        return data


class CountWriter:
    """Wraps a binary writer and counts bytes written."""

    def __init__(self, writer: BinaryIO) -> None:
        self._writer = writer
        self.count = 0

    def write(self, data: bytes) -> int:
        written = self._writer.write(data)
        if written is None:
            written = len(data)
        self.count += written
        return written