"""Asyncio HTTP/1.1 client with keep-alive, request queueing and gzip/deflate decoding."""

__version__ = "0.1.0"

__all__ = ["base64url", "bio", "cli", "client", "compression", "request", "url"]