"""Asynchronous HTTP/1.1 client with keep-alive and a request queue."""

from __future__ import annotations

import asyncio
import contextlib
import errno
import logging
import socket
import ssl
from collections import deque
from enum import Enum
from typing import Awaitable, Callable, Optional, Tuple

from .request import (
    BodyCallback,
    HeaderList,
    HttpParseError,
    HttpRequest,
    RequestState,
    ResponseCallback,
)
from .compression import available_encoding
from .url import UrlError, parse_url

log = logging.getLogger(__name__)

ECANCELED = -errno.ECANCELED
ETIMEDOUT = -errno.ETIMEDOUT
ECONNABORTED = -errno.ECONNABORTED
EINVAL = -errno.EINVAL
EOF = -4095

_MESSAGES = {
    ECANCELED: "operation canceled",
    ETIMEDOUT: "connection timed out",
    ECONNABORTED: "software caused connection abort",
    EINVAL: "failed to parse HTTP response",
    EOF: "end of file",
}

_READ_SIZE = 64 * 1024
_ALPN = ["http/1.1"]

Streams = Tuple[asyncio.StreamReader, asyncio.StreamWriter]
Connector = Callable[[str, int, Optional[ssl.SSLContext]], Awaitable[Streams]]


class HttpClientError(Exception):
    """A request failed; ``code`` is a negative errno-style value."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    CONNECTED = "connected"


def _tune_socket(writer: asyncio.StreamWriter) -> None:
    sock = writer.get_extra_info("socket")
    if sock is None:
        return
    with contextlib.suppress(OSError):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)


async def _open_connection(host: str, port: int, context: ssl.SSLContext | None) -> Streams:
    reader, writer = await asyncio.open_connection(
        host, port, ssl=context, server_hostname=host if context is not None else None
    )
    _tune_socket(writer)
    return reader, writer


def _default_tls() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.set_alpn_protocols(_ALPN)
    return context


def _consume_result(task: asyncio.Task) -> None:
    if not task.cancelled():
        task.exception()


class HttpClient:
    """HTTP client for one server that sends queued requests over a shared connection.

    Requests are processed one at a time in the running event loop.
    ``connect_timeout`` (seconds, 0 for none) limits connection setup and
    ``idle_keepalive`` (seconds, negative to keep forever) is how long an idle
    connection stays open.
    """

    def __init__(self, url: str, connector: Connector | None = None) -> None:
        self.headers = HeaderList()
        self.host: str | None = None
        self.port = 0
        self.ssl = False
        self.prefix: str | None = None
        self.tls: ssl.SSLContext | None = None
        self.connect_timeout = 0.0
        self.idle_keepalive = 0.0
        self.state = ConnectionState.DISCONNECTED

        self._connector: Connector = connector or _open_connection
        self._queue: deque[HttpRequest] = deque()
        self._active: HttpRequest | None = None
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._task: asyncio.Task | None = None
        self._idle_handle: asyncio.TimerHandle | None = None
        self._body_event = asyncio.Event()
        self._closed = False

        self.set_url(url)
        self.header("Connection", "keep-alive")
        encoding = available_encoding()
        if encoding:
            self.header("Accept-Encoding", encoding)

    # configuration

    def set_url(self, url: str) -> None:
        """Point the client at the scheme, host, port and path prefix of ``url``."""
        parsed = parse_url(url)
        if parsed.scheme is None:
            raise UrlError(f"invalid URL: no scheme: {url!r}")
        if parsed.hostname is None:
            raise UrlError(f"invalid URL: no host: {url!r}")
        scheme = parsed.scheme.lower()
        if scheme == "http":
            port, secure = 80, False
        elif scheme == "https":
            port, secure = 443, True
        else:
            raise UrlError(f"scheme({parsed.scheme}) is not supported")

        self.ssl = secure
        self.host = parsed.hostname
        self.headers.set("Host", None)
        self.header("Host", self.host)
        self.port = parsed.port or port
        if parsed.path is not None:
            self.prefix = parsed.path

    def set_path_prefix(self, prefix: str) -> None:
        """Set the path prepended to every request path."""
        self.prefix = prefix

    def header(self, name: str, value: str | None) -> None:
        """Set a header sent with every later request; None removes it."""
        self.headers.set(name, value)

    # requests

    def request(
        self,
        method: str,
        path: str,
        on_response: ResponseCallback | None = None,
        on_body: BodyCallback | None = None,
    ) -> HttpRequest:
        """Queue a request; it is sent from the running event loop."""
        if self._closed:
            raise HttpClientError(ECANCELED, "client is closed")
        req = HttpRequest(method, path, on_response, on_body)
        for name, value in self.headers:
            req.headers.set(name, value)
        req.wakeup = self._body_event.set
        self._queue.append(req)
        self._kick()
        return req

    def cancel(self, request: HttpRequest) -> None:
        """Cancel a queued or active request; its callbacks see ECANCELED."""
        if request is self._active:
            self._active = None
            self._stop_worker()
            # what is left on the wire belongs to the cancelled request
            self._close_connection()
        elif request in self._queue:
            self._queue.remove(request)
        else:
            raise ValueError("request is not pending on this client")
        self._fail(request, ECANCELED, _MESSAGES[ECANCELED])
        self._kick()

    def cancel_all(self) -> None:
        """Fail every pending request with ECANCELED and drop the connection."""
        self._stop_worker()
        self._fail_all(ECANCELED, _MESSAGES[ECANCELED])
        self._close_connection()
        self._kick()

    def close(self) -> None:
        """Cancel all requests, drop the connection and refuse new requests."""
        self._closed = True
        self._stop_worker()
        self._fail_all(ECANCELED, _MESSAGES[ECANCELED])
        self._close_connection()
        self.tls = None

    async def wait_idle(self) -> None:
        """Wait until every queued request has been processed."""
        while (task := self._task) is not None and not task.done():
            await asyncio.wait({task})

    # internals

    def _kick(self) -> None:
        if self._closed:
            return
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None
        if self._active is None and not self._queue:
            return
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    def _stop_worker(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    def _close_connection(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None
        if self.state in (ConnectionState.HANDSHAKING, ConnectionState.CONNECTED):
            log.debug("closing connection")
            if self._writer is not None:
                self._writer.close()
        self._reader = None
        self._writer = None
        self.state = ConnectionState.DISCONNECTED

    def _idle_close(self) -> None:
        log.debug("idle timeout triggered")
        self._idle_handle = None
        self._close_connection()

    def _schedule_idle(self) -> None:
        if self._closed or self.state is not ConnectionState.CONNECTED:
            return
        if self.idle_keepalive >= 0:
            log.debug("no more requests, scheduling idle(%s) close", self.idle_keepalive)
            loop = asyncio.get_running_loop()
            self._idle_handle = loop.call_later(self.idle_keepalive, self._idle_close)

    @staticmethod
    def _clear_body(req: HttpRequest, error: BaseException) -> None:
        while req.body_chunks:
            data, callback = req.body_chunks.popleft()
            if callback is not None:
                callback(req, data, error)

    def _fail(self, req: HttpRequest, code: int, message: str) -> None:
        error = HttpClientError(code, message)
        req.response.code = code
        req.response.status = message
        self._clear_body(req, error)
        if req.state < RequestState.HEADERS_RECEIVED:
            if req.on_response is not None:
                req.on_response(req.response)
        elif req.on_body is not None:
            req.on_body(req, None, error)

    def _fail_all(self, code: int, message: str) -> None:
        active, self._active = self._active, None
        if active is not None:
            self._fail(active, code, message)
        while self._queue:
            self._fail(self._queue.popleft(), code, message)

    async def _connect(self) -> bool:
        self.state = ConnectionState.CONNECTING
        log.debug("client not connected, starting connect sequence")
        context = None
        if self.ssl:
            if self.tls is None:
                self.tls = _default_tls()
            context = self.tls
        try:
            attempt = self._connector(self.host, self.port, context)
            if self.connect_timeout > 0:
                reader, writer = await asyncio.wait_for(attempt, self.connect_timeout)
            else:
                reader, writer = await attempt
        except asyncio.TimeoutError:
            self._connect_failed(ETIMEDOUT, _MESSAGES[ETIMEDOUT])
            return False
        except ssl.SSLError as exc:
            log.error("handshake failed: %s", exc)
            self._connect_failed(ECONNABORTED, str(exc))
            return False
        except OSError as exc:
            code = -exc.errno if exc.errno else ECONNABORTED
            self._connect_failed(code, exc.strerror or str(exc) or _MESSAGES[ECONNABORTED])
            return False

        if self.state is not ConnectionState.CONNECTING:
            log.warning("connected in state[%s], dropping connection", self.state.value)
            writer.close()
            return False
        self._reader, self._writer = reader, writer
        self.state = ConnectionState.CONNECTED
        return True

    def _connect_failed(self, code: int, message: str) -> None:
        log.debug("failed to connect: %d(%s)", code, message)
        self.state = ConnectionState.DISCONNECTED
        self._fail_all(code, message)

    async def _run(self) -> None:
        while True:
            if self._active is None:
                if not self._queue:
                    break
                self._active = self._queue.popleft()
            req = self._active

            if self.state is not ConnectionState.CONNECTED:
                if not await self._connect():
                    continue

            try:
                await self._exchange(req)
            except HttpParseError:
                if self._active is req:
                    log.warning("failed to parse HTTP response")
                    self._fail_all(EINVAL, _MESSAGES[EINVAL])
                    self._close_connection()
                continue
            except EOFError:
                if self._active is req:
                    self._connection_error(EOF, _MESSAGES[EOF])
                continue
            except OSError as exc:
                if self._active is req:
                    code = -exc.errno if exc.errno else ECONNABORTED
                    self._connection_error(code, exc.strerror or str(exc))
                continue

            if self._active is not req:
                return
            self._active = None
            if not self._keep_alive(req):
                self._close_connection()
        self._schedule_idle()

    def _connection_error(self, code: int, message: str) -> None:
        log.error("connection error before active request could complete %d (%s)", code, message)
        self._fail_all(code, message)
        self._close_connection()

    @staticmethod
    def _keep_alive(req: HttpRequest) -> bool:
        connection = req.response.header("Connection")
        version = req.response.http_version
        if version == "1.1":
            return not (connection and connection.lower() == "close")
        if version == "1.0":
            return connection is not None and connection.lower() == "keep-alive"
        log.warning("unexpected HTTP version(%s)", version)
        return False

    async def _exchange(self, req: HttpRequest) -> None:
        reader, writer = self._reader, self._writer
        assert reader is not None and writer is not None
        log.debug("processing request[%s] state[%s]", req.path, req.state.name)
        if req.state < RequestState.HEADERS_SENT:
            writer.write(req.write_head(self.prefix or ""))
            req.state = RequestState.HEADERS_SENT

        sender = None
        if req.state < RequestState.BODY_SENT:
            sender = asyncio.get_running_loop().create_task(self._send_body(req, writer))
            sender.add_done_callback(_consume_result)
        try:
            while req.state < RequestState.COMPLETED:
                data = await reader.read(_READ_SIZE)
                if not data:
                    raise EOFError(_MESSAGES[EOF])
                req.process(data)
                if self._active is not req:
                    return
        finally:
            if sender is not None and not sender.done():
                sender.cancel()

    async def _send_body(self, req: HttpRequest, writer: asyncio.StreamWriter) -> None:
        while req.state < RequestState.BODY_SENT:
            if not req.body_chunks:
                self._body_event.clear()
                await self._body_event.wait()
                continue
            data, callback = req.body_chunks.popleft()
            req.body_sent_size += len(data)
            if req.chunked:
                if data:
                    writer.write(f"{len(data):x}\r\n".encode("ascii") + data + b"\r\n")
                else:
                    writer.write(b"0\r\n\r\n")
                    req.state = RequestState.BODY_SENT
            else:
                writer.write(data)
                if req.body_sent_size > req.body_size:
                    log.warning(
                        "Supplied data[%d] is larger than provided Content-Length[%d]",
                        req.body_sent_size,
                        req.body_size,
                    )
                if req.body_sent_size >= req.body_size:
                    req.state = RequestState.BODY_SENT
            try:
                await writer.drain()
            except OSError as exc:
                if callback is not None:
                    callback(req, data, exc)
                return
            if callback is not None:
                callback(req, data, None)