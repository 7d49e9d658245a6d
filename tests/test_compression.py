import gzip
import os
import zlib

import pytest

from tlsfetch.compression import (
    DecompressionError,
    Inflater,
    available_encoding,
    get_inflater,
)


def _collector():
    chunks = []
    return chunks, chunks.append


def test_available_encoding():
    assert available_encoding() == "gzip, deflate"


@pytest.mark.parametrize(
    "encoding, compress",
    [("gzip", gzip.compress), ("deflate", zlib.compress)],
)
def test_round_trip(encoding, compress):
    payload = b"some body text " * 100
    chunks, cb = _collector()
    inf = get_inflater(encoding, cb)
    assert inf.state() == 0
    assert inf.inflate(compress(payload)) is True
    assert b"".join(chunks) == payload
    assert inf.state() == 1


def test_byte_by_byte_feeding():
    payload = os.urandom(500) + b"tail"
    data = gzip.compress(payload)
    chunks, cb = _collector()
    inf = Inflater("gzip", cb)
    results = [inf.inflate(data[i:i + 1]) for i in range(len(data))]
    assert results[-1] is True
    assert not any(results[:-1])
    assert b"".join(chunks) == payload


def test_large_output_split_into_bounded_chunks():
    payload = b"x" * (200 * 1024)
    chunks, cb = _collector()
    inf = Inflater("deflate", cb)
    assert inf.inflate(zlib.compress(payload))
    assert b"".join(chunks) == payload
    assert len(chunks) > 1
    assert all(len(c) <= 32 * 1024 for c in chunks)


def test_incomplete_stream_state():
    data = gzip.compress(b"abcdef" * 1000)
    chunks, cb = _collector()
    inf = Inflater("gzip", cb)
    assert inf.inflate(data[: len(data) // 2]) is False
    assert inf.state() == 0


def test_corrupt_input_raises_and_sets_error_state():
    chunks, cb = _collector()
    inf = Inflater("deflate", cb)
    with pytest.raises(DecompressionError):
        inf.inflate(b"\x00\x01not compressed at all")
    assert inf.state() == -1


def test_unsupported_encoding():
    _, cb = _collector()
    assert get_inflater("br", cb) is None
    with pytest.raises(ValueError):
        Inflater("identity", cb)


def test_gzip_data_rejected_by_deflate():
    _, cb = _collector()
    inf = Inflater("deflate", cb)
    with pytest.raises(DecompressionError):
        inf.inflate(gzip.compress(b"payload"))
    assert inf.state() == -1