import pytest

from tlsfetch.url import Url, UrlError, parse_url


def test_full_url():
    url = parse_url("https://host.example.com:8443/path/to?x=1&y=2")
    assert url == Url("https", "host.example.com", 8443, "/path/to", "x=1&y=2")


def test_host_only():
    url = parse_url("http://example.com")
    assert url.scheme == "http"
    assert url.hostname == "example.com"
    assert url.port == 0
    assert url.path is None
    assert url.query is None


def test_path_without_query():
    url = parse_url("http://example.com/json")
    assert url.path == "/json"
    assert url.query is None


def test_empty_query_is_kept():
    url = parse_url("http://example.com/a?")
    assert url.path == "/a"
    assert url.query == ""


def test_no_scheme():
    url = parse_url("example.com:8080/api")
    assert url.scheme is None
    assert url.hostname == "example.com"
    assert url.port == 8080
    assert url.path == "/api"


def test_path_only():
    url = parse_url("/just/a/path?q")
    assert url.scheme is None
    assert url.hostname is None
    assert url.path == "/just/a/path"
    assert url.query == "q"


def test_empty_scheme():
    url = parse_url("://example.com")
    assert url.scheme == ""
    assert url.hostname == "example.com"


def test_empty_string():
    assert parse_url("") == Url()


@pytest.mark.parametrize("port", [1, 80, 65535])
def test_valid_ports(port):
    assert parse_url(f"http://example.com:{port}").port == port


@pytest.mark.parametrize(
    "text",
    [
        ":80/path",
        "http://example.com:0",
        "http://example.com:65536",
        "http://example.com:-1",
        "http://example.com:abc",
        "http://example.com:",
        "http://example.com:80abc",
    ],
)
def test_invalid(text):
    with pytest.raises(UrlError):
        parse_url(text)


def test_url_error_is_value_error():
    with pytest.raises(ValueError):
        parse_url("http://example.com:99999")