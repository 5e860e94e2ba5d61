"""
HTTP fetch-and-decode: redirects, cookies, content-type and size policies
"""

from .connection import Connection, connect
from .errors import (
    FetchError,
    FetchTimeoutError,
    HttpStatusError,
    IllegalStateError,
    MalformedUrlError,
    TooManyRedirectsError,
    TransportError,
    UnsupportedMimeTypeError,
)
from .executor import ConnectionExecutor, execute
from .models import KeyVal, Method, Request, Response
from .parser import Document, HtmlParser, XmlParser, html_parser, xml_parser
from .transport import HttpxTransport

__all__ = [
    "Connection",
    "ConnectionExecutor",
    "Document",
    "FetchError",
    "FetchTimeoutError",
    "HtmlParser",
    "HttpStatusError",
    "HttpxTransport",
    "IllegalStateError",
    "KeyVal",
    "MalformedUrlError",
    "Method",
    "Request",
    "Response",
    "TooManyRedirectsError",
    "TransportError",
    "UnsupportedMimeTypeError",
    "XmlParser",
    "connect",
    "execute",
    "html_parser",
    "xml_parser",
]
