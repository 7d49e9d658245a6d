"""HTTP/1.1 requests: header lists, request serialisation and response parsing."""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Callable, Iterator, Optional

from .compression import DecompressionError, Inflater, get_inflater

log = logging.getLogger(__name__)

_UNSAFE = frozenset(b'"<>%{}|\\^`')
_BODY_METHODS = ("POST", "PUT")
_LENGTH_METHODS = ("POST", "PUT", "PATCH")
_STATUS_RE = re.compile(rb"HTTP/(\d)\.(\d) (\d{3})(?: (.*))?")
_LEADING_INT_RE = re.compile(r"\s*[+-]?\d+")

ResponseCallback = Callable[["HttpResponse"], None]
BodyCallback = Callable[["HttpRequest", Optional[bytes], Optional[BaseException]], None]
ChunkCallback = Callable[["HttpRequest", bytes, Optional[BaseException]], None]


class HttpParseError(Exception):
    """Raised when a response cannot be parsed as HTTP."""


def url_encode(text: str) -> str:
    """Percent-encode control characters, spaces, non-ASCII and unsafe characters."""
    out = []
    for byte in text.encode("utf-8"):
        if byte <= 0x20 or byte >= 0x80 or byte in _UNSAFE:
            out.append(f"%{byte:02X}")
        else:
            out.append(chr(byte))
    return "".join(out)


class HeaderList:
    """Ordered header list; new headers go to the front, names match case-insensitively."""

    def __init__(self) -> None:
        self._items: list[tuple[str, str]] = []

    def _find(self, name: str) -> int | None:
        wanted = name.lower()
        for index, (existing, _) in enumerate(self._items):
            if existing.lower() == wanted:
                return index
        return None

    def set(self, name: str, value: str | None) -> None:
        """Replace the value of ``name``, add it, or remove it when ``value`` is None."""
        index = self._find(name)
        if value is None:
            if index is not None:
                del self._items[index]
            return
        if index is None:
            self._items.insert(0, (name, value))
        else:
            self._items[index] = (self._items[index][0], value)

    def add(self, name: str, value: str) -> None:
        """Add a header even if one of that name exists already."""
        self._items.insert(0, (name, value))

    def get(self, name: str) -> str | None:
        """Value of the first header called ``name``, or None."""
        index = self._find(name)
        return None if index is None else self._items[index][1]

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)


class RequestState(IntEnum):
    CREATED = 0
    HEADERS_SENT = 1
    BODY_SENT = 2
    HEADERS_RECEIVED = 3
    COMPLETED = 4


@dataclass
class HttpResponse:
    """Status and headers of a response as they arrive."""

    request: "HttpRequest | None" = None
    code: int = 0
    status: str | None = None
    http_version: str = ""
    headers: HeaderList = field(default_factory=HeaderList)

    def header(self, name: str) -> str | None:
        return self.headers.get(name)


class _Phase(Enum):
    STATUS = "status"
    HEADERS = "headers"
    LENGTH_BODY = "length-body"
    CHUNK_SIZE = "chunk-size"
    CHUNK_DATA = "chunk-data"
    CHUNK_DATA_END = "chunk-data-end"
    TRAILERS = "trailers"
    EOF_BODY = "eof-body"
    DONE = "done"


def _leading_int(value: str) -> int:
    match = _LEADING_INT_RE.match(value)
    return int(match.group()) if match else 0


class HttpRequest:
    """A single request with its queued body and the parser for its response.

    ``on_response(response)`` is called once the response headers are in.
    ``on_body(request, chunk, error)`` receives each body chunk with ``error``
    None, then ``(request, None, None)`` at the end of the message, or
    ``(request, None, exc)`` when the body could not be delivered intact.
    Body chunks are queued in ``body_chunks`` as ``(data, callback)`` pairs;
    an empty ``data`` marks the end of a chunked body.
    """

    def __init__(
        self,
        method: str,
        path: str,
        on_response: ResponseCallback | None = None,
        on_body: BodyCallback | None = None,
    ) -> None:
        self.method = method
        self.path = path
        self.on_response = on_response
        self.on_body = on_body
        self.headers = HeaderList()
        self.body_chunks: deque[tuple[bytes, ChunkCallback | None]] = deque()
        self.chunked = False
        self.body_size = -1
        self.body_sent_size = 0
        self.state = RequestState.CREATED
        self.response = HttpResponse(request=self)
        self.inflater: Inflater | None = None
        self.wakeup: Callable[[], None] | None = None

        self._phase = _Phase.STATUS
        self._buffer = bytearray()
        self._remaining = 0

    def __repr__(self) -> str:
        return f"HttpRequest({self.method!r}, {self.path!r}, state={self.state.name})"

    # request side

    def _notify(self) -> None:
        if self.wakeup is not None:
            self.wakeup()

    def set_header(self, name: str, value: str) -> None:
        """Set a request header; conflicting body framing raises ValueError."""
        if name.lower() == "transfer-encoding" and value == "chunked":
            if self.body_size != -1:
                raise ValueError("Content-Length is already set")
            self.chunked = True
        if name.lower() == "content-length":
            if self.chunked:
                raise ValueError("Transfer-Encoding: chunked is already set")
            self.body_size = _leading_int(value)
            self.chunked = False
        self.headers.set(name, value)

    def add_data(self, body: bytes, callback: ChunkCallback | None = None) -> None:
        """Queue a body chunk; only POST and PUT requests carry a body."""
        if self.method not in _BODY_METHODS:
            raise ValueError(f"{self.method} request cannot carry a body")
        if self.state > RequestState.HEADERS_SENT:
            raise ValueError("request body has already been sent")
        self.body_chunks.append((bytes(body), callback))
        self._notify()

    def end(self) -> None:
        """Mark the end of a chunked body."""
        if self.chunked:
            self.body_chunks.append((b"", None))
            self._notify()

    def write_head(self, prefix: str = "") -> bytes:
        """Serialise the request line and headers."""
        if self.method in _LENGTH_METHODS and not self.chunked and self.body_size == -1:
            self.body_size = sum(len(data) for data, _ in self.body_chunks)
            self.headers.set("Content-Length", str(self.body_size))

        lines = [f"{self.method} {url_encode(prefix or '')}{url_encode(self.path)} HTTP/1.1\r\n"]
        lines.extend(f"{name}: {value}\r\n" for name, value in self.headers)
        lines.append("\r\n")
        return "".join(lines).encode("utf-8")

    # response side

    def process(self, data: bytes) -> int:
        """Feed response bytes; return how many were consumed.

        Fewer than ``len(data)`` are consumed only when the response switches
        protocols; the rest belongs to the new protocol.
        """
        if self._phase is _Phase.DONE:
            raise HttpParseError("response is already complete")
        data = bytes(data)
        log.debug("processing %d bytes", len(data))
        self._buffer += data
        try:
            upgraded = self._parse()
        except HttpParseError as exc:
            log.warning("failed to process: %s", exc)
            raise
        if upgraded:
            leftover = len(self._buffer)
            self._buffer.clear()
            consumed = len(data) - leftover
            log.debug("protocol upgrade: processed %d out of %d", consumed, len(data))
            return consumed
        return len(data)

    def _next_line(self) -> bytes | None:
        end = self._buffer.find(b"\n")
        if end < 0:
            return None
        line = bytes(self._buffer[:end])
        del self._buffer[:end + 1]
        return line[:-1] if line.endswith(b"\r") else line

    def _take(self) -> bytes:
        size = min(self._remaining, len(self._buffer))
        chunk = bytes(self._buffer[:size])
        del self._buffer[:size]
        self._remaining -= size
        return chunk

    def _parse(self) -> bool:
        while True:
            phase = self._phase
            if phase is _Phase.DONE:
                self._buffer.clear()
                return False
            if phase is _Phase.EOF_BODY:
                chunk = bytes(self._buffer)
                self._buffer.clear()
                self._deliver(chunk)
                return False
            if phase in (_Phase.LENGTH_BODY, _Phase.CHUNK_DATA):
                if not self._buffer:
                    return False
                self._deliver(self._take())
                if self._remaining == 0:
                    if phase is _Phase.LENGTH_BODY:
                        self._on_message_complete()
                    else:
                        self._phase = _Phase.CHUNK_DATA_END
                continue

            line = self._next_line()
            if line is None:
                return False
            if phase is _Phase.STATUS:
                if line:
                    self._on_status(line)
                    self._phase = _Phase.HEADERS
            elif phase is _Phase.HEADERS:
                if line:
                    self._on_header(line)
                elif self._on_headers_complete():
                    return True
            elif phase is _Phase.CHUNK_SIZE:
                self._on_chunk_size(line)
            elif phase is _Phase.CHUNK_DATA_END:
                if line:
                    raise HttpParseError("missing CRLF after chunk data")
                self._phase = _Phase.CHUNK_SIZE
            elif phase is _Phase.TRAILERS:
                if not line:
                    self._on_message_complete()

    def _on_status(self, line: bytes) -> None:
        match = _STATUS_RE.fullmatch(line)
        if match is None:
            raise HttpParseError(f"invalid status line: {line[:80]!r}")
        major, minor, code, reason = match.groups()
        response = self.response
        response.code = int(code)
        response.http_version = f"{int(major)}.{int(minor)}"
        response.status = (reason or b"").decode("latin-1")
        log.debug("status = %d %s", response.code, response.status)

    def _on_header(self, line: bytes) -> None:
        name, sep, value = line.partition(b":")
        if not sep or not name or name != name.strip() or b" " in name:
            raise HttpParseError(f"invalid header line: {line[:80]!r}")
        value = value.strip(b" \t")
        if value:
            self.response.headers.add(name.decode("latin-1"), value.decode("latin-1"))

    def _on_headers_complete(self) -> bool:
        headers = self.response.headers
        code = self.response.code
        transfer_encoding = headers.get("transfer-encoding")
        content_length = headers.get("content-length")
        chunked = (
            transfer_encoding is not None
            and transfer_encoding.split(",")[-1].strip().lower() == "chunked"
        )
        if chunked and content_length is not None:
            raise HttpParseError("both Content-Length and chunked Transfer-Encoding")
        length = None
        if content_length is not None and not chunked:
            if not content_length.isdigit():
                raise HttpParseError(f"invalid Content-Length: {content_length!r}")
            length = int(content_length)

        log.debug("headers complete")
        self.state = RequestState.HEADERS_RECEIVED
        compression = headers.get("content-encoding")
        if compression:
            headers.set("content-length", None)
            headers.set("transfer-encoding", "chunked")
        if self.on_response is not None:
            self.on_response(self.response)
        if compression and self.on_body is not None:
            self.inflater = get_inflater(compression, self._emit)

        if code == 101:
            self._on_message_complete()
            return True
        if 100 <= code < 200 or code in (204, 304) or length == 0:
            self._on_message_complete()
        elif chunked:
            self._phase = _Phase.CHUNK_SIZE
        elif length is not None:
            self._remaining = length
            self._phase = _Phase.LENGTH_BODY
        else:
            self._phase = _Phase.EOF_BODY
        return False

    def _on_chunk_size(self, line: bytes) -> None:
        size_text = line.split(b";", 1)[0].strip()
        try:
            size = int(size_text, 16)
        except ValueError:
            raise HttpParseError(f"invalid chunk size: {line[:80]!r}") from None
        if size < 0:
            raise HttpParseError(f"invalid chunk size: {line[:80]!r}")
        if size == 0:
            self._phase = _Phase.TRAILERS
        else:
            self._remaining = size
            self._phase = _Phase.CHUNK_DATA

    def _emit(self, data: bytes) -> None:
        if self.on_body is not None:
            self.on_body(self, data, None)

    def _deliver(self, chunk: bytes) -> None:
        if not chunk:
            return
        if self.inflater is not None:
            try:
                self.inflater.inflate(chunk)
            except DecompressionError as exc:
                log.warning("failed to decompress response body: %s", exc)
        else:
            self._emit(chunk)

    def _on_message_complete(self) -> None:
        log.debug("message complete")
        self._phase = _Phase.DONE
        self.state = RequestState.COMPLETED
        if self.on_body is None:
            return
        if self.inflater is None or self.inflater.state() == 1:
            self.on_body(self, None, None)
        else:
            log.error("incomplete decompression at the end of HTTP message")
            self.on_body(
                self,
                None,
                DecompressionError("incomplete decompression at the end of HTTP message"),
            )