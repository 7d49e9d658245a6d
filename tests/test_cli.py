import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from tlsfetch.cli import fetch, format_body, format_response, main, ping, split_url
from tlsfetch.client import ECANCELED, HttpClientError
from tlsfetch.request import HttpResponse


class _Handler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def do_GET(self):
        self.server.paths.append(self.path)
        body = b"hello"
        self.send_response(200)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def server():
    srv = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    srv.daemon_threads = True
    srv.paths = []
    thread = threading.Thread(target=srv.serve_forever, daemon=True)
    thread.start()
    yield srv
    srv.shutdown()
    srv.server_close()


def _base(srv):
    host, port = srv.server_address[:2]
    return f"http://{host}:{port}"


def _closed_port():
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


def test_split_url_with_path():
    assert split_url("https://example.com/a/b?c=1") == ("https://example.com", "/a/b?c=1")


def test_split_url_without_path():
    assert split_url("https://example.com") == ("https://example.com", "/")


def test_split_url_with_port_and_root():
    assert split_url("http://localhost:8080/") == ("http://localhost:8080", "/")


def test_split_url_round_trip():
    host, path = split_url("http://localhost:8080/x/y")
    assert host + path == "http://localhost:8080/x/y"


def test_format_response_lists_headers():
    response = HttpResponse(code=200, status="OK")
    response.headers.set("Content-Type", "text/plain")
    assert format_response(response) == (
        "Response (200) >>>\nHeaders >>>\n\tContent-Type: text/plain\n\n"
    )


def test_format_response_error():
    response = HttpResponse(code=ECANCELED, status="operation canceled")
    assert format_response(response) == f"ERROR: {ECANCELED}(operation canceled)"


def test_format_body_chunk():
    assert format_body(b"abc", None) == "abc"


def test_format_body_end():
    assert format_body(None, None) == "\n\n====================\nRequest completed\n"


def test_format_body_error():
    error = HttpClientError(ECANCELED, "operation canceled")
    assert format_body(None, error) == f"error({ECANCELED}) operation canceled"


@pytest.mark.asyncio
async def test_fetch_repeats(server, capsys):
    responses = await fetch(_base(server) + "/hello", 1, 0)
    assert [r.code for r in responses] == [200, 200]
    assert server.paths == ["/hello", "/hello"]
    out = capsys.readouterr().out
    assert out.count("hello") == 2
    assert out.count("Request completed") == 2
    assert "Response (200) >>>" in out


@pytest.mark.asyncio
async def test_fetch_connection_refused(capsys):
    responses = await fetch(f"http://127.0.0.1:{_closed_port()}/", 0, 0)
    assert len(responses) == 1
    assert responses[0].code < 0
    assert "ERROR: " in capsys.readouterr().err


@pytest.mark.asyncio
async def test_ping(server, capsys):
    results = await ping(_base(server), "/json", 2, 0)
    assert results == [(200, "OK"), (200, "OK")]
    assert server.paths == ["/json", "/json"]
    out = capsys.readouterr().out
    assert out.endswith("HTTP is closed\n")
    assert out.count("200 OK\n") == 2


def test_main_fetches_once(server, capsys):
    assert main(["-r", "0", "-t", "0", _base(server) + "/page"]) == 0
    assert server.paths == ["/page"]
    assert "Response (200) >>>" in capsys.readouterr().out


def test_main_requires_url():
    with pytest.raises(SystemExit) as info:
        main([])
    assert info.value.code == 2