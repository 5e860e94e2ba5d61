"""
Exceptions raised while fetching a URL
"""

from typing import Optional


class FetchError(Exception):
    """Base class for every failure surfaced by webfetch."""


class MalformedUrlError(FetchError, ValueError):
    """URL could not be parsed, or uses a scheme other than http/https."""


class HttpStatusError(FetchError):
    def __init__(self, message: str, status_code: int, url: str, body: bytes = b''):
        super().__init__(f"{message}. Status={status_code}, URL={url}")
        self.status_code = status_code
        self.url = url
        self.body = body


class UnsupportedMimeTypeError(FetchError):
    def __init__(self, message: str, mime_type: Optional[str], url: str):
        super().__init__(f"{message}. Mimetype={mime_type}, URL={url}")
        self.mime_type = mime_type
        self.url = url


class TooManyRedirectsError(FetchError):
    def __init__(self, url: str):
        super().__init__(f"Too many redirects occurred trying to load URL {url}")
        self.url = url


class TransportError(FetchError):
    """Any I/O failure while talking to the remote server."""


class FetchTimeoutError(TransportError):
    """Connect or read exceeded the configured timeout."""


class IllegalStateError(FetchError, RuntimeError):
    """Operation not valid in the current state (e.g. body read before execute)."""
