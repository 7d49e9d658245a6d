import base64

import pytest

from tlsfetch.base64url import base64url_decode


def _encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


@pytest.mark.parametrize(
    "raw",
    [b"", b"a", b"ab", b"abc", b"abcd", b"\xff\xfe\xfd\xfc\xfb", bytes(range(256))],
)
def test_round_trip_unpadded(raw):
    assert base64url_decode(_encode(raw)) == raw


def test_padding_ends_input():
    raw = b"xy"
    padded = base64.urlsafe_b64encode(raw).decode()
    assert padded.endswith("=")
    assert base64url_decode(padded) == raw


def test_bytes_input_accepted():
    raw = b"\x00\x10\x83\x10"
    assert base64url_decode(_encode(raw).encode()) == raw


def test_url_safe_characters_decode():
    raw = b"\xfb\xff\xbf"
    encoded = _encode(raw)
    assert "-" in encoded or "_" in encoded
    assert base64url_decode(encoded) == raw


def test_slash_is_same_as_underscore():
    assert base64url_decode("__8") == base64url_decode("//8")


def test_plus_stops_decoding():
    prefix = _encode(b"abc")
    assert base64url_decode(prefix + "+" + _encode(b"zzz")) == b"abc"


def test_invalid_character_stops_decoding():
    prefix = _encode(b"hello!")
    assert base64url_decode(prefix + ".rest") == b"hello!"


def test_single_trailing_character_yields_nothing():
    assert base64url_decode("Q") == b""
    assert base64url_decode(_encode(b"abc") + "Q") == b"abc"


def test_output_length_matches_groups():
    for n in range(1, 20):
        text = "A" * n
        full, rest = divmod(n, 4)
        expected = full * 3 + max(rest - 1, 0)
        assert len(base64url_decode(text)) == expected