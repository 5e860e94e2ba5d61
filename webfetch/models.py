"""
Request and response entities
"""

import codecs
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from .errors import IllegalStateError, TooManyRedirectsError
from .headers import HeaderCookieStore
from .parser import DEFAULT_CHARSET, Document, Parser, html_parser

DEFAULT_TIMEOUT_MILLIS = 3000
DEFAULT_MAX_BODY_SIZE = 1024 * 1024  # 1MB
DEFAULT_ENCODING = DEFAULT_CHARSET
MAX_REDIRECTS = 20


class Method(str, Enum):
    GET = 'GET'
    POST = 'POST'
    PUT = 'PUT'
    DELETE = 'DELETE'
    OPTIONS = 'OPTIONS'


class KeyVal:
    """A single form field. Order matters and keys may repeat."""

    def __init__(self, key: str, value: str):
        self.key = key
        self.value = value

    @property
    def key(self) -> str:
        return self._key

    @key.setter
    def key(self, key: str) -> None:
        if not key:
            raise ValueError("Data key must not be empty")
        self._key = key

    @property
    def value(self) -> str:
        return self._value

    @value.setter
    def value(self, value: str) -> None:
        if value is None:
            raise ValueError("Data value must not be null")
        self._value = value

    def __eq__(self, other):
        if not isinstance(other, KeyVal):
            return NotImplemented
        return self.key == other.key and self.value == other.value

    def __repr__(self):
        return f"KeyVal({self.key!r}, {self.value!r})"

    def __str__(self):
        return f"{self.key}={self.value}"


class Request:
    """Mutable request description.

    Setters validate their argument and return the same object, so calls can
    be chained. The executor rewrites ``url``, ``method``, the payload and the
    cookies in place while it follows redirects.
    """

    def __init__(self, url: Optional[str] = None):
        self._store = HeaderCookieStore()
        self.url = url
        self.method = Method.GET
        self.timeout = DEFAULT_TIMEOUT_MILLIS
        self.max_body_size = DEFAULT_MAX_BODY_SIZE
        self.follow_redirects = True
        self.ignore_http_errors = False
        self.ignore_content_type = False
        self.data: List[KeyVal] = []
        self.raw_data: Optional[str] = None
        self.encoding = DEFAULT_ENCODING
        self.proxy: Optional[str] = None
        self.parser: Parser = html_parser()
        self._store.set('Accept-Encoding', 'gzip')

    def set_url(self, url: str) -> "Request":
        if not url:
            raise ValueError("URL must not be empty")
        self.url = url
        return self

    def set_method(self, method) -> "Request":
        if method is None:
            raise ValueError("Method must not be null")
        try:
            self.method = Method(method.upper() if isinstance(method, str) else method)
        except ValueError:
            raise ValueError(f"Unsupported method: {method}") from None
        return self

    def set_timeout(self, millis: int) -> "Request":
        if millis is None or millis < 0:
            raise ValueError("Timeout milliseconds must be 0 (infinite) or greater")
        self.timeout = millis
        return self

    def set_max_body_size(self, size: int) -> "Request":
        if size is None or size < 0:
            raise ValueError("maxSize must be 0 (unlimited) or larger")
        self.max_body_size = size
        return self

    def set_follow_redirects(self, follow_redirects: bool) -> "Request":
        self.follow_redirects = bool(follow_redirects)
        return self

    def set_ignore_http_errors(self, ignore_http_errors: bool) -> "Request":
        self.ignore_http_errors = bool(ignore_http_errors)
        return self

    def set_ignore_content_type(self, ignore_content_type: bool) -> "Request":
        self.ignore_content_type = bool(ignore_content_type)
        return self

    def add_data(self, keyval: KeyVal) -> "Request":
        if keyval is None:
            raise ValueError("Key val must not be null")
        if not isinstance(keyval, KeyVal):
            raise ValueError(f"Expected a KeyVal, got {type(keyval).__name__}")
        self.data.append(keyval)
        return self

    def set_raw_data(self, raw_data: Optional[str]) -> "Request":
        self.raw_data = raw_data
        return self

    @property
    def is_raw_data(self) -> bool:
        return self.raw_data is not None

    def set_encoding(self, charset: str) -> "Request":
        if not charset:
            raise ValueError("Encoding must not be empty")
        try:
            codecs.lookup(charset)
        except LookupError:
            raise ValueError(f"Unsupported encoding: {charset}") from None
        self.encoding = charset
        return self

    def set_proxy(self, proxy: Optional[str]) -> "Request":
        self.proxy = proxy
        return self

    def set_parser(self, parser: Parser) -> "Request":
        if parser is None:
            raise ValueError("Parser must not be null")
        self.parser = parser
        return self

    # headers and cookies

    def header(self, name: str) -> Optional[str]:
        return self._store.get(name)

    def set_header(self, name: str, value: str) -> "Request":
        self._store.set(name, value)
        return self

    def has_header(self, name: str) -> bool:
        return self._store.has(name)

    def remove_header(self, name: str) -> "Request":
        self._store.remove(name)
        return self

    def headers(self) -> Dict[str, str]:
        return self._store.all()

    def cookie(self, name: str) -> Optional[str]:
        return self._store.cookie(name)

    def set_cookie(self, name: str, value: str) -> "Request":
        self._store.set_cookie(name, value)
        return self

    def has_cookie(self, name: str) -> bool:
        return self._store.has_cookie(name)

    def remove_cookie(self, name: str) -> "Request":
        self._store.remove_cookie(name)
        return self

    def cookies(self) -> Dict[str, str]:
        return self._store.all_cookies()

    def cookie_header(self) -> str:
        return self._store.cookie_header()


class Response:
    """Result of one HTTP exchange.

    A response is created per redirect hop; only the final one is returned to
    the caller. Body access requires the response to have been executed.
    """

    def __init__(self, previous: Optional["Response"] = None):
        self._store = HeaderCookieStore()
        self.url: Optional[str] = None
        self.method: Optional[Method] = None
        self.status_code = 0
        self.status_message = ''
        self.content_type: Optional[str] = None
        self.charset: Optional[str] = None
        self.redirect_depth = 0
        self.executed = False
        self.request: Optional[Request] = None
        self._body = b''
        if previous is not None:
            self.redirect_depth = previous.redirect_depth + 1
            if self.redirect_depth >= MAX_REDIRECTS:
                raise TooManyRedirectsError(previous.url)

    def process_response_headers(self, header_fields: Mapping[str, List[str]]) -> None:
        """Store the first value of each header; one cookie per Set-Cookie occurrence."""
        for name, values in header_fields.items():
            if not name:
                continue  # status line
            if name.lower() == 'set-cookie':
                for value in values:
                    if value is None:
                        continue
                    cookie_name, _, rest = value.partition('=')
                    cookie_name = cookie_name.strip()
                    cookie_value = rest.split(';', 1)[0].strip()
                    # path, domain, expiry etc. are ignored
                    if cookie_name:
                        self._store.set_cookie(cookie_name, cookie_value)
            elif values:
                self._store.set(name, values[0])

    def inherit_cookies(self, previous: Optional["Response"]) -> None:
        if previous is None:
            return
        for name, value in previous.cookies().items():
            if not self._store.has_cookie(name):
                self._store.set_cookie(name, value)

    def set_body(self, body: bytes) -> None:
        self._body = body

    def _require_executed(self, action: str) -> None:
        if not self.executed:
            raise IllegalStateError(
                f"Request must be executed (with .execute(), .get(), or .post()) before {action}"
            )

    def parse(self) -> Document:
        self._require_executed("parsing response")
        document = self.request.parser.parse(self._body, self.charset, self.url)
        # the document may declare its own charset (meta / xml declaration)
        self.charset = document.charset
        return document

    def body(self) -> str:
        self._require_executed("getting response body")
        return self._body.decode(self.charset or DEFAULT_CHARSET, errors='replace')

    def body_as_bytes(self) -> bytes:
        self._require_executed("getting response body")
        return self._body

    # read-only header and cookie access

    def header(self, name: str) -> Optional[str]:
        return self._store.get(name)

    def has_header(self, name: str) -> bool:
        return self._store.has(name)

    def headers(self) -> Mapping[str, str]:
        return MappingProxyType(self._store.all())

    def cookie(self, name: str) -> Optional[str]:
        return self._store.cookie(name)

    def has_cookie(self, name: str) -> bool:
        return self._store.has_cookie(name)

    def cookies(self) -> Mapping[str, str]:
        return MappingProxyType(self._store.all_cookies())
