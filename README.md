# tlsfetch

`tlsfetch` is a small asyncio HTTP/1.1 client. It queues requests for one
server, sends them one after another over a single connection, keeps that
connection open while the server allows it, and closes it after an idle
period. Responses compressed with `gzip` or `deflate` are decoded as they
arrive.

The pieces the client is built from are usable on their own: a URL parser, a
request writer and response parser, a streaming inflater, a byte queue and a
base64url decoder. It has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Command line

```
tlsfetch https://example.com/index.html
```

The URL is split after its third `/`: the part before is the server, the rest
is the request path (`/` if there is none). The status code and headers of each
response are printed, then the body as it arrives, then a line saying the
request has completed. Errors go to standard error.

Options:

- `-r N` – number of repeats after the first request (default 1, so two
  requests are sent).
- `-t SECONDS` – pause between requests (default 10).
- `-C FILE` – CA bundle used to verify the server.
- `-c FILE` and `-k FILE` – client certificate and private key; both must be
  given.
- `-d LEVEL` – log to standard error: 1 errors, 2 warnings, 3 info, higher
  values debug; 0 or less turns logging off.

The connection is kept open between the repeated requests.

## Library

### Client

`tlsfetch.client.HttpClient(url)` talks to the server named by `url`. Only the
`http` and `https` schemes are accepted; anything else, or a URL without a
scheme or host, raises `tlsfetch.url.UrlError`. A path in the URL becomes a
prefix for every request path.

Requests are run by the event loop that is current when `request()` is called,
so the client is used from inside a coroutine:

```python
import asyncio

from tlsfetch.client import HttpClient


async def main() -> None:
    client = HttpClient("https://example.com")
    body = bytearray()

    def on_response(response):
        print(response.code, response.status)

    def on_body(request, chunk, error):
        if chunk:
            body.extend(chunk)

    client.request("GET", "/", on_response, on_body)
    await client.wait_idle()
    client.close()
    print(body.decode())


asyncio.run(main())
```

- `request(method, path, on_response, on_body)` queues a request and returns
  its `HttpRequest`. `on_response(response)` runs once the headers are in;
  `on_body(request, chunk, error)` gets each body chunk, then
  `(request, None, None)` at the end of the message.
- `header(name, value)` sets a header sent with every later request; `None`
  removes it. `Host`, `Connection: keep-alive` and
  `Accept-Encoding: gzip, deflate` are set by default.
- `set_url(url)` points the client at another server; `set_path_prefix(prefix)`
  replaces the path prefix.
- `connect_timeout` (seconds, 0 for none) limits connection setup;
  `idle_keepalive` (seconds, negative to keep the connection forever) is how
  long an idle connection stays open; `tls` may hold an `ssl.SSLContext` to use
  for `https`.
- `cancel(request)` drops one queued or active request (a request that is not
  pending raises `ValueError`); `cancel_all()` drops them all and closes the
  connection; `close()` does the same and makes later `request()` calls raise
  `HttpClientError`.
- `wait_idle()` waits until every queued request has been processed.
- `state` is a `ConnectionState`: disconnected, connecting, handshaking or
  connected.

A request that fails gets a negative errno-style `code` and a message in
`status` on its response. If its headers had not arrived, `on_response` is
called with that response; otherwise `on_body` is called with an
`HttpClientError` carrying the same `code`. Queued body chunks have their
callbacks called with the error.

For `POST` and `PUT`, add a body to the returned request with
`add_data(body, callback)`. `Content-Length` is computed from the queued data
unless set with `set_header()`; after `set_header("Transfer-Encoding",
"chunked")` the body is sent in chunks and `end()` finishes it.

### URLs

```python
from tlsfetch.url import parse_url

url = parse_url("https://example.com:8443/api/items?limit=10")
# Url(scheme='https', hostname='example.com', port=8443, path='/api/items', query='limit=10')
```

Absent parts are `None`; a missing port is 0. A port without a host, a port
outside 1–65535, or text after the host that does not start with `/` raises
`UrlError`.

### Requests and responses

`tlsfetch.request.HttpRequest` serialises its request line and headers with
`write_head(prefix)` and parses response bytes fed to `process(data)`. It
handles `Content-Length`, chunked and read-until-close bodies, and a
`101 Switching Protocols` response, after which `process()` returns how many
bytes belonged to HTTP. Malformed responses raise `HttpParseError`.

`HttpResponse` holds `code`, `status`, `http_version` and `headers`;
`header(name)` looks a header up. `HeaderList` keeps headers in order, matches
names without regard to case, and removes a header when `set()` is given
`None`.

`url_encode(text)` percent-encodes control characters, spaces, non-ASCII bytes
and the characters `"<>%{}|\^``.

### Decompression

```python
import zlib

from tlsfetch.compression import get_inflater

chunks = []
inflater = get_inflater("deflate", chunks.append)
inflater.inflate(zlib.compress(b"hello"))   # True: the stream has ended
b"".join(chunks)                            # b"hello"
```

`get_inflater` returns `None` for encodings other than `gzip` and `deflate`.
`Inflater.state()` is 1 once the stream has ended, -1 after corrupt input and 0
otherwise; corrupt input also raises `DecompressionError`.
`available_encoding()` gives the `Accept-Encoding` value the client sends.

### Byte queue

```python
from tlsfetch.bio import Bio

bio = Bio()
bio.put(b"hello")
bio.put(b" world")
bio.read(7)        # b"hello w"
bio.available()    # 4
bio.queued()       # 1
```

### base64url

```python
from tlsfetch.base64url import base64url_decode

base64url_decode("aGVsbG8")   # b"hello"
```

Padding is optional; decoding stops at the first character outside the
base64url alphabet.

## What it does not do

The client speaks HTTP/1.1 only, one request at a time per client. It does not
follow redirects, keep cookies, go through proxies or speak HTTP/2 or
WebSocket; there is no separate API for raw TLS streams.