"""Parsing of the URLs accepted by the HTTP client."""

from __future__ import annotations

import re
from dataclasses import dataclass

_HOST_RE = re.compile(r"[^:/]+")
_PORT_RE = re.compile(r"\s*[+-]?\d+")
_MAX_PORT = 0xFFFF


class UrlError(ValueError):
    """Raised for a URL that cannot be parsed."""


@dataclass(frozen=True)
class Url:
    """Components of a parsed URL; absent parts are None and a missing port is 0."""

    scheme: str | None = None
    hostname: str | None = None
    port: int = 0
    path: str | None = None
    query: str | None = None


def parse_url(text: str) -> Url:
    """Split ``text`` into scheme, host, port, path and query.

    Every part is optional, but a port needs a host, and whatever follows
    the host and port must start with ``/``.
    """
    rest = text
    scheme = None
    colon = text.find(":")
    if colon >= 0 and text.startswith("://", colon):
        scheme = text[:colon]
        rest = text[colon + 3:]

    hostname = None
    match = _HOST_RE.match(rest)
    if match:
        hostname = match.group()
        rest = rest[match.end():]

    port = 0
    if rest.startswith(":"):
        if hostname is None:
            raise UrlError(f"port without host in URL: {text!r}")
        match = _PORT_RE.match(rest, 1)
        if match is None:
            raise UrlError(f"invalid port in URL: {text!r}")
        value = int(match.group())
        if not 0 < value <= _MAX_PORT:
            raise UrlError(f"port out of range in URL: {text!r}")
        port = value
        rest = rest[match.end():]

    if not rest:
        return Url(scheme, hostname, port)

    if not rest.startswith("/"):
        raise UrlError(f"invalid URL: {text!r}")

    path, sep, query = rest.partition("?")
    return Url(scheme, hostname, port, path, query if sep else None)