"""
Redirect-following request executor.

One logical request travels through every hop: the loop sends it, classifies
the status, and on 301/302/303 rewrites the request in place (GET, no payload,
new URL, accumulated cookies) before going round again. Only the terminal
response gets its content type negotiated and its body read.
"""

from typing import Optional, Set
from urllib.parse import urlencode, urljoin, urlsplit, urlunsplit

import structlog

from .body import charset_from_content_type, read_body
from .errors import HttpStatusError, IllegalStateError, MalformedUrlError, TransportError
from .models import Method, Request, Response
from .negotiation import negotiate
from .transport import HttpxTransport, Transport, TransportConnection

logger = structlog.get_logger(__name__)

HTTP_OK = 200
REDIRECT_STATUSES = (301, 302, 303)
FORM_CONTENT_TYPE = 'application/x-www-form-urlencoded'


def encode_url(url: Optional[str]) -> Optional[str]:
    if url is None:
        return None
    return url.replace(' ', '%20')


def serialise_request_url(request: Request) -> None:
    """Fold GET form data into the query string, then drop it from the request."""
    parts = urlsplit(request.url)
    pairs = urlencode([(kv.key, kv.value) for kv in request.data], encoding=request.encoding)
    query = f"{parts.query}&{pairs}" if parts.query else pairs
    request.set_url(urlunsplit((parts.scheme, parts.netloc, parts.path, query, '')))
    request.data.clear()


def form_body(request: Request) -> bytes:
    return urlencode([(kv.key, kv.value) for kv in request.data], encoding=request.encoding).encode(request.encoding)


def redirect_location(location: str, current_url: str) -> str:
    # fix broken Location headers such as "http:/temp/AAG_New/en/index.php"
    if location.startswith('http:/') and len(location) > 6 and location[6] != '/':
        location = location[6:]
    return urljoin(current_url, encode_url(location))


class ConnectionExecutor:
    def __init__(self, transport: Optional[Transport] = None):
        self.transport = transport or HttpxTransport()

    def execute(self, request: Request) -> Response:
        if request is None:
            raise ValueError("Request must not be null")
        explicit_cookies: Set[str] = set(request.cookies())
        previous: Optional[Response] = None

        while True:
            self._validate(request)
            if request.method == Method.GET and request.data:
                serialise_request_url(request)

            connection = self._open(request)
            try:
                self._write_body(request, connection)
                status = connection.status_code
                needs_redirect = False
                if status != HTTP_OK:
                    if status in REDIRECT_STATUSES:
                        needs_redirect = True
                    elif not request.ignore_http_errors:
                        logger.warning("http_error_status", url=request.url, status_code=status)
                        raise HttpStatusError(
                            "HTTP error fetching URL", status, request.url, self._error_body(request, connection)
                        )

                response = Response(previous)
                self._setup_from_connection(response, request, connection, previous)
                logger.debug(
                    "response_received",
                    url=request.url,
                    status_code=status,
                    redirect_depth=response.redirect_depth,
                )

                if needs_redirect and request.follow_redirects:
                    self._prepare_redirect(request, response, explicit_cookies)
                    previous = response
                    continue

                response.request = request
                negotiate(response.content_type, request.ignore_content_type, request.url)
                self._read_body(response, request, connection)
            finally:
                connection.close()

            response.executed = True
            logger.info(
                "fetch_completed",
                url=response.url,
                status_code=response.status_code,
                content_type=response.content_type,
                size=len(response.body_as_bytes()),
                redirects=response.redirect_depth,
            )
            return response

    def _validate(self, request: Request) -> None:
        if not request.url:
            raise MalformedUrlError("URL must be set before executing the request")
        scheme = urlsplit(request.url).scheme
        if scheme not in ('http', 'https'):
            raise MalformedUrlError(f"Only http & https protocols supported: {request.url}")
        if request.is_raw_data and request.method != Method.POST:
            raise IllegalStateError(f"Raw data can only be sent with POST, not {request.method.value}")

    def _open(self, request: Request) -> TransportConnection:
        logger.debug("request_sending", url=request.url, method=request.method.value)
        connection = self.transport.open(request.url, request.method.value, request.proxy, request.timeout)
        try:
            # one Cookie header: the jar first, then any caller-set Cookie value
            cookie_values = [request.cookie_header()] if request.cookies() else []
            for name, value in request.headers().items():
                if name.lower() == 'cookie':
                    cookie_values.append(value)
                else:
                    connection.add_header(name, value)
            if cookie_values:
                connection.add_header('Cookie', '; '.join(cookie_values))
            if request.method == Method.POST and not request.is_raw_data and not request.has_header('Content-Type'):
                connection.add_header('Content-Type', f"{FORM_CONTENT_TYPE}; charset={request.encoding}")
        except BaseException:
            connection.close()
            raise
        return connection

    def _write_body(self, request: Request, connection: TransportConnection) -> None:
        if request.method != Method.POST:
            return
        if request.is_raw_data:
            connection.write(request.raw_data.encode(request.encoding))
        else:
            connection.write(form_body(request))

    def _setup_from_connection(
        self,
        response: Response,
        request: Request,
        connection: TransportConnection,
        previous: Optional[Response],
    ) -> None:
        response.method = request.method
        response.url = request.url
        response.status_code = connection.status_code
        response.status_message = connection.status_message
        response.process_response_headers(connection.header_fields())
        response.content_type = response.header('Content-Type')
        # cookies from earlier hops carry forward unless this hop replaced them
        response.inherit_cookies(previous)

    def _prepare_redirect(self, request: Request, response: Response, explicit_cookies: Set[str]) -> None:
        location = response.header('Location')
        if location is None:
            raise MalformedUrlError(f"Redirect without a Location header from {request.url}")
        target = redirect_location(location, request.url)
        logger.info(
            "redirect_following",
            url=request.url,
            location=target,
            status_code=response.status_code,
            redirect_depth=response.redirect_depth,
        )
        # always redirect with a GET; form data and raw payload are dropped
        request.set_method(Method.GET)
        request.data.clear()
        request.set_raw_data(None)
        request.set_url(target)
        for name, value in response.cookies().items():
            if name not in explicit_cookies:
                request.set_cookie(name, value)

    def _read_body(self, response: Response, request: Request, connection: TransportConnection) -> None:
        stream = connection.error_stream()
        if stream is None:
            stream = connection.input_stream()
        response.set_body(read_body(stream, response.header('Content-Encoding'), request.max_body_size))
        # may be None; a default is applied when the body is decoded
        response.charset = charset_from_content_type(response.content_type)

    def _error_body(self, request: Request, connection: TransportConnection) -> bytes:
        """Best-effort capture of an error page, attached to the raised HttpStatusError."""
        stream = connection.error_stream()
        if stream is None:
            stream = connection.input_stream()
        fields = connection.header_fields()
        content_encoding = next((values[0] for name, values in fields.items() if name.lower() == 'content-encoding'), None)
        try:
            return read_body(stream, content_encoding, request.max_body_size)
        except TransportError:
            logger.warning("error_body_unreadable", url=request.url, exc_info=True)
            return b''


def execute(request: Request, transport: Optional[Transport] = None) -> Response:
    return ConnectionExecutor(transport).execute(request)
