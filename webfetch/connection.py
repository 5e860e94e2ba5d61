"""
Fluent entrypoint: connect(url).user_agent(...).data(...).get()
"""

from typing import Mapping, Optional, Union
from urllib.parse import urlsplit

from .config import Config
from .executor import ConnectionExecutor, encode_url
from .errors import MalformedUrlError
from .models import KeyVal, Method, Request, Response
from .parser import Document, Parser
from .transport import Transport


def _validate_url(url: str) -> str:
    if not url:
        raise ValueError("Must supply a valid URL")
    encoded = encode_url(url)
    try:
        parts = urlsplit(encoded)
        parts.port  # raises on a non-numeric port
    except ValueError as e:
        raise MalformedUrlError(f"Malformed URL: {url}") from e
    if not parts.scheme or not parts.netloc:
        raise MalformedUrlError(f"Malformed URL: {url}")
    return encoded


class Connection:
    """Builds a request and executes it.

    Every setter returns the connection itself. ``get()`` and ``post()``
    execute and parse; ``execute()`` returns the raw :class:`Response`.
    """

    def __init__(self, transport: Optional[Transport] = None):
        self._request = Request()
        self._response: Optional[Response] = None
        self._executor = ConnectionExecutor(transport)

    def url(self, url: str) -> "Connection":
        self._request.set_url(_validate_url(url))
        return self

    def user_agent(self, user_agent: str) -> "Connection":
        if user_agent is None:
            raise ValueError("User agent must not be null")
        self._request.set_header('User-Agent', user_agent)
        return self

    def referrer(self, referrer: str) -> "Connection":
        if referrer is None:
            raise ValueError("Referrer must not be null")
        self._request.set_header('Referer', referrer)
        return self

    def timeout(self, millis: int) -> "Connection":
        self._request.set_timeout(millis)
        return self

    def max_body_size(self, size: int) -> "Connection":
        self._request.set_max_body_size(size)
        return self

    def follow_redirects(self, follow_redirects: bool) -> "Connection":
        self._request.set_follow_redirects(follow_redirects)
        return self

    def method(self, method: Union[Method, str]) -> "Connection":
        self._request.set_method(method)
        return self

    def ignore_http_errors(self, ignore_http_errors: bool) -> "Connection":
        self._request.set_ignore_http_errors(ignore_http_errors)
        return self

    def ignore_content_type(self, ignore_content_type: bool) -> "Connection":
        self._request.set_ignore_content_type(ignore_content_type)
        return self

    def data(self, *args) -> "Connection":
        """Add form fields.

        Accepts ``data(key, value)``, ``data({key: value})``,
        ``data(key1, value1, key2, value2, ...)`` or an iterable of KeyVal.
        """
        if len(args) == 1:
            data = args[0]
            if data is None:
                raise ValueError("Data must not be null")
            if isinstance(data, Mapping):
                for key, value in data.items():
                    self._request.add_data(KeyVal(key, value))
            else:
                for keyval in data:
                    self._request.add_data(keyval)
            return self
        if len(args) % 2 != 0:
            raise ValueError("Must supply an even number of key value pairs")
        for key, value in zip(args[::2], args[1::2]):
            self._request.add_data(KeyVal(key, value))
        return self

    def raw_data(self, raw_data: Optional[str]) -> "Connection":
        self._request.set_raw_data(raw_data)
        return self

    def encoding(self, charset: str) -> "Connection":
        self._request.set_encoding(charset)
        return self

    def header(self, name: str, value: str) -> "Connection":
        self._request.set_header(name, value)
        return self

    def cookie(self, name: str, value: str) -> "Connection":
        self._request.set_cookie(name, value)
        return self

    def cookies(self, cookies: Mapping[str, str]) -> "Connection":
        if cookies is None:
            raise ValueError("Cookie map must not be null")
        for name, value in cookies.items():
            self._request.set_cookie(name, value)
        return self

    def parser(self, parser: Parser) -> "Connection":
        self._request.set_parser(parser)
        return self

    def proxy(self, proxy: Optional[str], port: Optional[int] = None, scheme: str = 'http') -> "Connection":
        """Route through a proxy, given as a URL or as a host plus ``port``."""
        if proxy is not None and port is not None:
            proxy = f"{scheme}://{proxy}:{port}"
        self._request.set_proxy(proxy)
        return self

    def get(self) -> Document:
        self._request.set_method(Method.GET)
        self.execute()
        return self._response.parse()

    def post(self) -> Document:
        self._request.set_method(Method.POST)
        self.execute()
        return self._response.parse()

    def execute(self) -> Response:
        self._response = self._executor.execute(self._request)
        return self._response

    def request(self, request: Optional[Request] = None):
        """Return the current request, or replace it when one is given."""
        if request is None:
            return self._request
        self._request = request
        return self

    def response(self, response: Optional[Response] = None):
        """Return the last response, or replace it when one is given."""
        if response is None:
            return self._response
        self._response = response
        return self

    def apply_config(self, config: Config) -> "Connection":
        """Seed request defaults from the ``fetcher`` section of a Config."""
        fetcher = config.fetcher
        if fetcher.get('user_agent'):
            self.user_agent(fetcher['user_agent'])
        if fetcher.get('timeout') is not None:
            self.timeout(int(fetcher['timeout']))
        if fetcher.get('max_body_size') is not None:
            self.max_body_size(int(fetcher['max_body_size']))
        if fetcher.get('follow_redirects') is not None:
            self.follow_redirects(fetcher['follow_redirects'])
        if fetcher.get('encoding'):
            self.encoding(fetcher['encoding'])
        if fetcher.get('proxy'):
            self.proxy(fetcher['proxy'])
        return self


def connect(url: str, config: Optional[Config] = None, transport: Optional[Transport] = None) -> Connection:
    """Create a connection to ``url``, optionally seeded from a Config."""
    connection = Connection(transport)
    if config is not None:
        connection.apply_config(config)
    return connection.url(url)
