"""Streaming decompression of HTTP content encodings."""

from __future__ import annotations

import zlib
from typing import Callable

_CHUNK_SIZE = 32 * 1024
_ENCODINGS = "gzip, deflate"

DataCallback = Callable[[bytes], None]


class DecompressionError(Exception):
    """Raised when compressed input is corrupt."""


def available_encoding() -> str:
    """Value suitable for an ``Accept-Encoding`` header."""
    return _ENCODINGS


class Inflater:
    """Incremental decompressor that hands output to a callback."""

    def __init__(self, encoding: str, callback: DataCallback) -> None:
        if encoding == "gzip":
            wbits = 16 + zlib.MAX_WBITS
        elif encoding == "deflate":
            wbits = zlib.MAX_WBITS
        else:
            raise ValueError(f"unsupported content encoding: {encoding!r}")
        self.encoding = encoding
        self._callback = callback
        self._decompressor = zlib.decompressobj(wbits)
        self._complete = False
        self._error: str | None = None

    def inflate(self, data: bytes) -> bool:
        """Feed compressed bytes; return True once the stream has ended."""
        if self._complete:
            return True
        pending = bytes(data)
        while pending:
            try:
                out = self._decompressor.decompress(pending, _CHUNK_SIZE)
            except zlib.error as exc:
                self._error = str(exc)
                raise DecompressionError(self._error) from exc
            pending = self._decompressor.unconsumed_tail
            if out:
                self._callback(out)
            if self._decompressor.eof:
                self._complete = True
                return True
        return False

    def state(self) -> int:
        """-1 after a data error, 1 when the stream is complete, 0 otherwise."""
        if self._error is not None:
            return -1
        return 1 if self._complete else 0


def get_inflater(encoding: str, callback: DataCallback) -> Inflater | None:
    """Create an inflater for ``encoding``, or None if it is not supported."""
    try:
        return Inflater(encoding, callback)
    except ValueError:
        return None