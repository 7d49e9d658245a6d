"""Lenient base64url decoding."""

from __future__ import annotations

import logging
import string

log = logging.getLogger(__name__)

_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
_SEXTETS: dict[int, int] = {ord(ch): value for value, ch in enumerate(_ALPHABET)}
_SEXTETS[ord("-")] = 62
_SEXTETS[ord("_")] = 63
# '/' is accepted as 63 as well; '+' and '=' end the input.
_SEXTETS[ord("/")] = 63


def _valid_prefix(data: bytes) -> list[int]:
    values = []
    for code in data:
        value = _SEXTETS.get(code)
        if value is None:
            break
        values.append(value)
    return values


def base64url_decode(data: str | bytes) -> bytes:
    """Decode base64url text, stopping at the first character outside the alphabet.

    Padding is not required.  A trailing group of a single character carries
    too few bits for a byte and is dropped.
    """
    if isinstance(data, str):
        data = data.encode("latin-1", errors="replace")
    values = _valid_prefix(bytes(data))

    out = bytearray()
    for start in range(0, len(values), 4):
        group = values[start:start + 4]
        a, b, c, d = group + [0] * (4 - len(group))
        decoded = (
            (a << 2 | b >> 4) & 0xFF,
            (b << 4 | c >> 2) & 0xFF,
            (c << 6 | d) & 0xFF,
        )
        out.extend(decoded[:len(group) - 1])

    log.debug("base64url_decode len is: %d", len(out))
    return bytes(out)