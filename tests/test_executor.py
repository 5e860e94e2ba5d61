import gzip
from urllib.parse import parse_qsl, urlsplit

import pytest

from conftest import FakeReply, redirect
from webfetch.errors import (
    HttpStatusError,
    IllegalStateError,
    MalformedUrlError,
    TooManyRedirectsError,
    UnsupportedMimeTypeError,
)
from webfetch.executor import ConnectionExecutor, redirect_location
from webfetch.models import KeyVal, Method, Request

HTML = b"<html><head><title>Hi</title></head><body>ok</body></html>"


def make_request(url: str = "http://example.com/") -> Request:
    return Request(url)


def test_simple_get(transport):
    transport.add("http://example.com/", FakeReply(body=HTML))
    response = ConnectionExecutor(transport).execute(make_request())

    assert response.executed
    assert response.status_code == 200
    assert response.status_message == "OK"
    assert response.method == Method.GET
    assert response.content_type == "text/html; charset=UTF-8"
    assert response.charset == "UTF-8"
    assert response.body_as_bytes() == HTML
    assert response.body() == HTML.decode()
    assert response.body() == response.body()
    assert response.redirect_depth == 0

    connection = transport.connections[0]
    assert connection.method == "GET"
    assert connection.timeout == 3000
    assert connection.sent_header("Accept-Encoding") == "gzip"
    assert connection.sent_body == b""
    assert connection.closed


def test_get_data_is_folded_into_query_in_order(transport):
    url = "http://example.com/search?lang=en&q=caf%C3%A9&page=1&q=x+y"
    transport.add(url, FakeReply(body=HTML))
    request = make_request("http://example.com/search?lang=en#frag")
    request.add_data(KeyVal("q", "café")).add_data(KeyVal("page", "1")).add_data(KeyVal("q", "x y"))

    response = ConnectionExecutor(transport).execute(request)

    assert response.url == url
    assert request.data == []
    assert parse_qsl(urlsplit(response.url).query) == [("lang", "en"), ("q", "café"), ("page", "1"), ("q", "x y")]


def test_post_writes_form_body(transport):
    transport.add("http://example.com/login", FakeReply(body=HTML))
    request = make_request("http://example.com/login").set_method(Method.POST)
    request.add_data(KeyVal("user", "jo bloggs")).add_data(KeyVal("pass", "a&b=c"))

    ConnectionExecutor(transport).execute(request)

    connection = transport.connections[0]
    assert connection.method == "POST"
    assert connection.sent_body == b"user=jo+bloggs&pass=a%26b%3Dc"
    assert connection.sent_header("Content-Type") == "application/x-www-form-urlencoded; charset=UTF-8"


def test_post_writes_raw_payload_verbatim(transport):
    transport.add("http://example.com/api", FakeReply(headers=[("Content-Type", "application/json")], body=b"{}"))
    request = make_request("http://example.com/api").set_method(Method.POST)
    request.set_header("Content-Type", "application/json")
    request.add_data(KeyVal("ignored", "yes"))
    request.set_raw_data('{"name": "Zoë"}')

    ConnectionExecutor(transport).execute(request)

    connection = transport.connections[0]
    assert connection.sent_body == '{"name": "Zoë"}'.encode("utf-8")
    assert connection.sent_header("Content-Type") == "application/json"


def test_raw_data_on_get_is_illegal(transport):
    request = make_request().set_raw_data("payload")

    with pytest.raises(IllegalStateError):
        ConnectionExecutor(transport).execute(request)
    assert transport.connections == []


def test_cookies_are_sent_as_one_header(transport):
    transport.add("http://example.com/", FakeReply(body=HTML))
    request = make_request().set_cookie("a", "1").set_cookie("b", "2")

    ConnectionExecutor(transport).execute(request)

    cookie_headers = [value for name, value in transport.connections[0].sent_headers if name == "Cookie"]
    assert cookie_headers == ["a=1; b=2"]


def test_caller_cookie_header_is_merged_with_the_jar(transport):
    transport.add("http://example.com/", FakeReply(body=HTML))
    request = make_request().set_cookie("a", "1").set_header("Cookie", "legacy=x")

    ConnectionExecutor(transport).execute(request)

    cookie_headers = [value for name, value in transport.connections[0].sent_headers if name.lower() == "cookie"]
    assert cookie_headers == ["a=1; legacy=x"]


@pytest.mark.parametrize("scheme_url", ["ftp://example.com/file", "file:///etc/passwd", "example.com"])
def test_only_http_and_https_are_supported(transport, scheme_url):
    with pytest.raises(MalformedUrlError):
        ConnectionExecutor(transport).execute(make_request(scheme_url))


def _redirect_chain(transport, hops: int) -> None:
    for hop in range(hops):
        transport.add(f"http://example.com/{hop}", redirect(f"/{hop + 1}"))
    transport.add(f"http://example.com/{hops}", FakeReply(body=HTML))


def test_nineteen_redirects_succeed(transport):
    _redirect_chain(transport, 19)
    response = ConnectionExecutor(transport).execute(make_request("http://example.com/0"))

    assert response.url == "http://example.com/19"
    assert response.redirect_depth == 19
    assert len(transport.connections) == 20
    assert all(connection.closed for connection in transport.connections)


def test_twenty_redirects_fail(transport):
    _redirect_chain(transport, 20)

    with pytest.raises(TooManyRedirectsError):
        ConnectionExecutor(transport).execute(make_request("http://example.com/0"))
    assert all(connection.closed for connection in transport.connections)


def test_redirect_resets_method_and_payload(transport):
    transport.add("http://example.com/form", redirect("http://other.example.com/done", status=303))
    transport.add("http://other.example.com/done", FakeReply(body=HTML))
    request = make_request("http://example.com/form").set_method(Method.POST)
    request.add_data(KeyVal("field", "value"))

    response = ConnectionExecutor(transport).execute(request)

    first, second = transport.connections
    assert first.method == "POST"
    assert first.sent_body == b"field=value"
    assert second.method == "GET"
    assert second.sent_body == b""
    assert request.method == Method.GET
    assert request.data == []
    assert response.url == "http://other.example.com/done"
    assert response.method == Method.GET


def test_cookies_accumulate_across_redirects(transport):
    transport.add("http://example.com/0", redirect("/1", cookies=("session=one; Path=/", "pref=explicit-lost")))
    transport.add("http://example.com/1", redirect("/2", status=301, cookies=("session=two", "tracking=t")))
    transport.add("http://example.com/2", FakeReply(body=HTML, headers=[("Content-Type", "text/html"), ("Set-Cookie", "last=1")]))
    request = make_request("http://example.com/0").set_cookie("pref", "mine")

    response = ConnectionExecutor(transport).execute(request)

    first, second, third = transport.connections
    assert first.sent_header("Cookie") == "pref=mine"
    assert second.sent_header("Cookie") == "pref=mine; session=one"
    assert third.sent_header("Cookie") == "pref=mine; session=two; tracking=t"
    assert dict(response.cookies()) == {
        "last": "1",
        "session": "two",
        "tracking": "t",
        "pref": "explicit-lost",
    }
    assert request.cookie("pref") == "mine"


def test_redirect_not_followed_when_disabled(transport):
    transport.add("http://example.com/", redirect("/elsewhere"))
    request = make_request().set_follow_redirects(False)

    response = ConnectionExecutor(transport).execute(request)

    assert response.status_code == 302
    assert response.header("Location") == "/elsewhere"
    assert transport.urls == ["http://example.com/"]


def test_redirect_without_location_fails(transport):
    transport.add("http://example.com/", FakeReply(status=302, headers=[]))

    with pytest.raises(MalformedUrlError):
        ConnectionExecutor(transport).execute(make_request())


@pytest.mark.parametrize(
    "location, expected",
    [
        ("http:/temp/AAG_New/en/index.php", "http://example.com/dir/temp/AAG_New/en/index.php"),
        ("http://other.com/x", "http://other.com/x"),
        ("/root path", "http://example.com/root%20path"),
        ("next", "http://example.com/dir/next"),
    ],
)
def test_redirect_location_resolution(location, expected):
    assert redirect_location(location, "http://example.com/dir/page") == expected


def test_http_error_raises_with_body(transport):
    transport.add("http://example.com/missing", FakeReply(status=404, body=b"not here", message="Not Found"))

    with pytest.raises(HttpStatusError) as excinfo:
        ConnectionExecutor(transport).execute(make_request("http://example.com/missing"))

    assert excinfo.value.status_code == 404
    assert excinfo.value.url == "http://example.com/missing"
    assert excinfo.value.body == b"not here"
    assert transport.connections[0].closed


def test_ignored_http_error_returns_error_body(transport):
    transport.add("http://example.com/broken", FakeReply(status=500, body=b"<p>oops</p>", message="Server Error"))
    request = make_request("http://example.com/broken").set_ignore_http_errors(True)

    response = ConnectionExecutor(transport).execute(request)

    assert response.status_code == 500
    assert response.status_message == "Server Error"
    assert response.body() == "<p>oops</p>"


def test_binary_content_is_rejected_before_reading(transport):
    transport.add("http://example.com/file.bin", FakeReply(headers=[("Content-Type", "application/octet-stream")], body=b"\x00\x01"))

    with pytest.raises(UnsupportedMimeTypeError):
        ConnectionExecutor(transport).execute(make_request("http://example.com/file.bin"))
    assert transport.connections[0].closed


def test_binary_content_allowed_when_ignored(transport):
    transport.add("http://example.com/file.bin", FakeReply(headers=[("Content-Type", "application/octet-stream")], body=b"\x00\x01"))
    request = make_request("http://example.com/file.bin").set_ignore_content_type(True)

    response = ConnectionExecutor(transport).execute(request)

    assert response.body_as_bytes() == b"\x00\x01"
    assert response.charset is None


def test_gzip_response_matches_plain(transport):
    transport.add("http://example.com/plain", FakeReply(body=HTML))
    transport.add(
        "http://example.com/zipped",
        FakeReply(headers=[("Content-Type", "text/html"), ("Content-Encoding", "gzip")], body=gzip.compress(HTML)),
    )
    executor = ConnectionExecutor(transport)

    plain = executor.execute(make_request("http://example.com/plain"))
    zipped = executor.execute(make_request("http://example.com/zipped"))

    assert zipped.body_as_bytes() == plain.body_as_bytes() == HTML


def test_body_truncated_to_max_size(transport):
    body = b"a" * 5000
    transport.add("http://example.com/big", FakeReply(headers=[("Content-Type", "text/plain")], body=body))

    capped = ConnectionExecutor(transport).execute(make_request("http://example.com/big").set_max_body_size(1000))
    unlimited = ConnectionExecutor(transport).execute(make_request("http://example.com/big").set_max_body_size(0))

    assert len(capped.body_as_bytes()) == 1000
    assert unlimited.body_as_bytes() == body


def test_body_decoded_with_header_charset(transport):
    text = "café crème"
    transport.add(
        "http://example.com/latin",
        FakeReply(headers=[("Content-Type", "text/plain; charset=ISO-8859-1")], body=text.encode("iso-8859-1")),
    )

    response = ConnectionExecutor(transport).execute(make_request("http://example.com/latin"))

    assert response.charset == "ISO-8859-1"
    assert response.body() == text


def test_parse_adopts_document_charset(transport):
    html = '<html><head><meta charset="windows-1252"><title>Caf\xe9</title></head></html>'.encode("windows-1252")
    transport.add("http://example.com/", FakeReply(headers=[("Content-Type", "text/html; charset=UTF-8")], body=html))

    response = ConnectionExecutor(transport).execute(make_request())
    document = response.parse()

    assert document.title == "Café"
    assert response.charset == "windows-1252"
    assert response.body_as_bytes() == html
