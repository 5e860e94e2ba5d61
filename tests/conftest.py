import sys
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class FakeReply:
    def __init__(
        self,
        status: int = 200,
        headers: Optional[List[Tuple[str, str]]] = None,
        body: bytes = b'',
        message: str = 'OK',
    ):
        self.status = status
        self.headers = headers if headers is not None else [('Content-Type', 'text/html; charset=UTF-8')]
        self.body = body
        self.message = message


class FakeConnection:
    def __init__(self, url: str, method: str, proxy: Optional[str], timeout: int, reply: FakeReply):
        self.url = url
        self.method = method
        self.proxy = proxy
        self.timeout = timeout
        self.reply = reply
        self.sent_headers: List[Tuple[str, str]] = []
        self.sent_body = b''
        self.closed = False

    def add_header(self, name: str, value: str) -> None:
        self.sent_headers.append((name, value))

    def sent_header(self, name: str) -> Optional[str]:
        return next((value for key, value in self.sent_headers if key.lower() == name.lower()), None)

    def write(self, data: bytes) -> None:
        self.sent_body += data

    @property
    def status_code(self) -> int:
        return self.reply.status

    @property
    def status_message(self) -> str:
        return self.reply.message

    def header_fields(self) -> Dict[str, List[str]]:
        fields: Dict[str, List[str]] = {}
        for name, value in self.reply.headers:
            fields.setdefault(name, []).append(value)
        return fields

    def _chunks(self) -> Iterator[bytes]:
        body = self.reply.body
        for start in range(0, len(body), 7):
            yield body[start:start + 7]

    def input_stream(self) -> Iterator[bytes]:
        return self._chunks()

    def error_stream(self) -> Optional[Iterator[bytes]]:
        if self.reply.status >= 400:
            return self._chunks()
        return None

    def close(self) -> None:
        self.closed = True


class FakeTransport:
    """Serves canned replies by URL and records every connection opened."""

    def __init__(self):
        self.routes: Dict[str, FakeReply] = {}
        self.connections: List[FakeConnection] = []

    def add(self, url: str, reply: FakeReply) -> "FakeTransport":
        self.routes[url] = reply
        return self

    def open(self, url: str, method: str, proxy: Optional[str], timeout: int) -> FakeConnection:
        if url not in self.routes:
            raise AssertionError(f"unexpected request to {url}")
        connection = FakeConnection(url, method, proxy, timeout, self.routes[url])
        self.connections.append(connection)
        return connection

    @property
    def urls(self) -> List[str]:
        return [connection.url for connection in self.connections]


def redirect(location: str, status: int = 302, cookies: Tuple[str, ...] = ()) -> FakeReply:
    headers = [('Location', location)] + [('Set-Cookie', cookie) for cookie in cookies]
    return FakeReply(status=status, headers=headers, message='Found')


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
