"""Command-line fetcher built on the HTTP client, plus a keep-alive ping helper."""

from __future__ import annotations

import argparse
import asyncio
import logging
import ssl
import sys

from .client import EINVAL, HttpClient
from .request import HttpRequest, HttpResponse

_LOG_LEVELS = {
    1: logging.ERROR,
    2: logging.WARNING,
    3: logging.INFO,
}

_PING_KEEPALIVE = 10.0
_PING_CONNECT_TIMEOUT = 1.0


def split_url(url: str) -> tuple[str, str]:
    """Split ``url`` into the server part and the request path (``/`` if absent)."""
    pos = 0
    for _ in range(3):
        pos = url.find("/", pos + 1)
        if pos < 0:
            return url, "/"
    return url[:pos], url[pos:]


def format_response(response: HttpResponse) -> str:
    """Render the status and headers of a response, or the error it carries."""
    if response.code < 0:
        return f"ERROR: {response.code}({response.status})"
    lines = [f"Response ({response.code}) >>>\nHeaders >>>\n"]
    lines.extend(f"\t{name}: {value}\n" for name, value in response.headers)
    lines.append("\n")
    return "".join(lines)


def format_body(chunk: bytes | None, status: BaseException | None) -> str:
    """Render a body chunk, the end-of-body banner, or a body error."""
    if status is not None:
        code = getattr(status, "code", EINVAL)
        return f"error({code}) {status}"
    if chunk is None:
        return "\n\n====================\nRequest completed\n"
    return chunk.decode("utf-8", errors="replace")


def _write(text: str, error: bool = False) -> None:
    stream = sys.stderr if error else sys.stdout
    stream.write(text)
    stream.flush()


def _on_response(responses: list[HttpResponse]):
    def callback(response: HttpResponse) -> None:
        responses.append(response)
        _write(format_response(response), error=response.code < 0)

    return callback


def _on_body(request: HttpRequest, chunk: bytes | None, error: BaseException | None) -> None:
    _write(format_body(chunk, error), error=error is not None)


async def _fetch(
    url: str, count: int, cycle: float, tls: ssl.SSLContext | None = None
) -> list[HttpResponse]:
    host_url, path = split_url(url)
    client = HttpClient(host_url)
    client.idle_keepalive = -1
    if tls is not None:
        client.tls = tls

    responses: list[HttpResponse] = []
    on_response = _on_response(responses)
    try:
        for index in range(max(count, 0) + 1):
            if index:
                await asyncio.sleep(cycle)
            client.request("GET", path, on_response, _on_body)
        await client.wait_idle()
    finally:
        client.close()
    return responses


async def fetch(url: str, count: int = 1, cycle: float = 10) -> list[HttpResponse]:
    """GET ``url`` once and then ``count`` more times, ``cycle`` seconds apart.

    Response headers and bodies are written to standard output, errors to
    standard error.  Returns the responses in the order they arrived.
    """
    return await _fetch(url, count, cycle)


async def ping(
    base_url: str, path: str = "/json", count: int = 3, delay: float = 2.0
) -> list[tuple[int, str | None]]:
    """Send ``count`` GET requests ``delay`` seconds apart over a kept-alive connection.

    Prints ``<code> <status>`` for every response and returns those pairs.
    """
    client = HttpClient(base_url)
    client.idle_keepalive = _PING_KEEPALIVE
    client.connect_timeout = _PING_CONNECT_TIMEOUT

    results: list[tuple[int, str | None]] = []

    def on_response(response: HttpResponse) -> None:
        results.append((response.code, response.status))
        _write(f"{response.code} {response.status}\n")

    try:
        for index in range(max(count, 1)):
            if index:
                await asyncio.sleep(delay)
            client.request("GET", path, on_response)
        await client.wait_idle()
    finally:
        client.close()
        _write("HTTP is closed\n")
    return results


class _Formatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return f"[{record.created:13.3f}] {record.filename}:{record.lineno} {record.getMessage()}"


def _configure_logging(level: int) -> None:
    logger = logging.getLogger("tlsfetch")
    if level <= 0:
        logger.setLevel(logging.CRITICAL + 1)
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_Formatter())
    logger.handlers[:] = [handler]
    logger.setLevel(_LOG_LEVELS.get(level, logging.DEBUG))


def _tls_context(ca: str | None, cert: str | None, key: str | None) -> ssl.SSLContext:
    context = ssl.create_default_context(cafile=ca)
    context.set_alpn_protocols(["http/1.1"])
    if cert and key:
        context.load_cert_chain(cert, key)
    return context


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tlsfetch", description="Fetch a URL repeatedly.")
    parser.add_argument("-C", dest="ca", metavar="CA", help="CA bundle file")
    parser.add_argument("-c", dest="cert", metavar="CERT", help="client certificate file")
    parser.add_argument("-k", dest="key", metavar="KEY", help="client private key file")
    parser.add_argument("-r", dest="repeat", type=int, default=1, help="number of repeats")
    parser.add_argument("-t", dest="cycle", type=float, default=10, help="seconds between requests")
    parser.add_argument("-d", dest="debug", type=int, help="debug level")
    parser.add_argument("url")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the fetcher from the command line."""
    args = _parser().parse_args(argv)
    if args.debug is not None:
        _configure_logging(args.debug)

    tls = None
    if args.ca or (args.cert and args.key):
        tls = _tls_context(args.ca, args.cert, args.key)

    asyncio.run(_fetch(args.url, args.repeat, args.cycle, tls))
    return 0


if __name__ == "__main__":
    sys.exit(main())