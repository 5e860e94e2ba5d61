"""
Transport layer: one HTTP exchange per connection, backed by httpx.
Redirects are never followed here; the executor owns that loop.
"""

from typing import Dict, Iterator, List, Optional, Protocol

import httpx
import structlog

from .errors import FetchTimeoutError, MalformedUrlError, TransportError

logger = structlog.get_logger(__name__)

CHUNK_SIZE = 8192


class TransportConnection(Protocol):
    def add_header(self, name: str, value: str) -> None: ...

    def write(self, data: bytes) -> None: ...

    @property
    def status_code(self) -> int: ...

    @property
    def status_message(self) -> str: ...

    def header_fields(self) -> Dict[str, List[str]]: ...

    def input_stream(self) -> Iterator[bytes]: ...

    def error_stream(self) -> Optional[Iterator[bytes]]: ...

    def close(self) -> None: ...


class Transport(Protocol):
    def open(self, url: str, method: str, proxy: Optional[str], timeout: int) -> TransportConnection: ...


def _header_bytes(text: str) -> bytes:
    # header values decoded as UTF-8 must go back out as the same bytes
    try:
        return text.encode('ascii')
    except UnicodeEncodeError:
        return text.encode('utf-8')


def _translate(exc: Exception, url: str) -> Exception:
    if isinstance(exc, httpx.TimeoutException):
        return FetchTimeoutError(f"Timeout fetching {url}: {exc}")
    if isinstance(exc, httpx.InvalidURL):
        return MalformedUrlError(f"Malformed URL {url}: {exc}")
    return TransportError(f"Error fetching {url}: {exc}")


class HttpxConnection:
    """Buffers headers and body, then sends lazily on first response access."""

    def __init__(self, client: httpx.Client, url: str, method: str):
        self._client = client
        self.url = url
        self.method = method
        self._headers: List[tuple] = []
        self._body = b''
        self._response: Optional[httpx.Response] = None

    def add_header(self, name: str, value: str) -> None:
        if self._response is not None:
            raise TransportError("Cannot add headers after the request was sent")
        self._headers.append((name, value))

    def write(self, data: bytes) -> None:
        if self._response is not None:
            raise TransportError("Cannot write the body after the request was sent")
        self._body += data

    def _send(self) -> httpx.Response:
        if self._response is None:
            try:
                request = httpx.Request(
                    self.method,
                    self.url,
                    headers=[(_header_bytes(name), _header_bytes(value)) for name, value in self._headers],
                    content=self._body or None,
                )
                self._response = self._client.send(request, stream=True, follow_redirects=False)
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                raise _translate(e, self.url) from e
            except UnicodeEncodeError as e:
                raise TransportError(f"Cannot encode request headers for {self.url}: {e}") from e
        return self._response

    @property
    def status_code(self) -> int:
        return self._send().status_code

    @property
    def status_message(self) -> str:
        return self._send().reason_phrase

    def header_fields(self) -> Dict[str, List[str]]:
        """Response headers in arrival order, original casing, all values per name."""
        response = self._send()
        encoding = response.headers.encoding
        fields: Dict[str, List[str]] = {}
        casing: Dict[str, str] = {}
        for raw_name, raw_value in response.headers.raw:
            name = raw_name.decode(encoding)
            key = casing.setdefault(name.lower(), name)
            fields.setdefault(key, []).append(raw_value.decode(encoding))
        return fields

    def _iter_raw(self, response: httpx.Response) -> Iterator[bytes]:
        try:
            # raw: content decoding (gzip) is done by the body reader
            for chunk in response.iter_raw(CHUNK_SIZE):
                yield chunk
        except httpx.HTTPError as e:
            raise _translate(e, self.url) from e

    def input_stream(self) -> Iterator[bytes]:
        return self._iter_raw(self._send())

    def error_stream(self) -> Optional[Iterator[bytes]]:
        response = self._send()
        if response.status_code >= 400:
            return self._iter_raw(response)
        return None

    def close(self) -> None:
        try:
            if self._response is not None:
                self._response.close()
        finally:
            self._client.close()


class HttpxTransport:
    """Opens a fresh ``httpx.Client`` per exchange (no pooling across hops).

    Args:
        transport: Optional httpx transport, e.g. ``httpx.MockTransport`` in tests
        verify: TLS verification flag passed through to httpx
    """

    def __init__(self, transport: Optional[httpx.BaseTransport] = None, verify: bool = True):
        self._transport = transport
        self.verify = verify

    def open(self, url: str, method: str, proxy: Optional[str], timeout: int) -> HttpxConnection:
        seconds = timeout / 1000 if timeout else None  # 0 means no timeout
        options = {
            'timeout': httpx.Timeout(seconds),
            'follow_redirects': False,
            'verify': self.verify,
        }
        if self._transport is not None:
            options['transport'] = self._transport
        elif proxy:
            options['proxy'] = proxy
        logger.debug("connection_opening", url=url, method=method, proxy=proxy, timeout_millis=timeout)
        return HttpxConnection(httpx.Client(**options), url, method)
