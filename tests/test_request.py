"""Unit tests for HTTP request parsing."""

import pytest

from config import MAX_TARGET_LENGTH
from request import HTTPRequest, HTTPRequestParseError


def test_parse_get_strips_query_and_fragment() -> None:
    raw = (
        b"GET /files/report.txt?download=1#top HTTP/1.1\r\n"
        b"Host: localhost\r\n"
        b"User-Agent: pytest\r\n"
        b"\r\n"
    )

    request = HTTPRequest.from_bytes(raw)

    assert request.method == "GET"
    assert request.path == "/files/report.txt"
    assert request.http_version == "HTTP/1.1"
    assert request.headers["host"] == "localhost"
    assert request.body == b""
    assert request.keep_alive is True


def test_parse_post_with_body() -> None:
    raw = (
        b"POST /upload HTTP/1.1\r\n"
        b"Host: localhost\r\n"
        b"Content-Length: 9\r\n"
        b"\r\n"
        b"name=test"
    )

    request = HTTPRequest.from_bytes(raw)

    assert request.method == "POST"
    assert request.body == b"name=test"


def test_parse_chunked_body() -> None:
    raw = (
        b"POST /upload HTTP/1.1\r\n"
        b"Host: localhost\r\n"
        b"Transfer-Encoding: chunked\r\n"
        b"\r\n"
        b"4\r\nWiki\r\n5;ext=1\r\npedia\r\n0\r\nX-Trailer: yes\r\n\r\n"
    )

    request = HTTPRequest.from_bytes(raw)

    assert request.body == b"Wikipedia"


def test_connection_close_disables_keep_alive() -> None:
    raw = b"GET / HTTP/1.1\r\nHost: localhost\r\nConnection: close\r\n\r\n"

    assert HTTPRequest.from_bytes(raw).keep_alive is False


def test_http10_keep_alive_is_opt_in() -> None:
    plain = HTTPRequest.from_bytes(b"GET / HTTP/1.0\r\n\r\n")
    opted_in = HTTPRequest.from_bytes(b"GET / HTTP/1.0\r\nConnection: Keep-Alive\r\n\r\n")

    assert plain.keep_alive is False
    assert opted_in.keep_alive is True


def test_parse_invalid_request_line_raises_value_error() -> None:
    raw = b"BROKEN-LINE\r\nHost: localhost\r\n\r\n"

    with pytest.raises(ValueError, match="Invalid request line"):
        HTTPRequest.from_bytes(raw)


def test_parse_invalid_content_length_raises_value_error() -> None:
    raw = (
        b"POST /upload HTTP/1.1\r\n"
        b"Host: localhost\r\n"
        b"Content-Length: abc\r\n"
        b"\r\n"
        b"name=test"
    )

    with pytest.raises(ValueError, match="Invalid Content-Length"):
        HTTPRequest.from_bytes(raw)


def test_missing_host_for_http11_is_rejected() -> None:
    with pytest.raises(HTTPRequestParseError, match="Host header required") as exc_info:
        HTTPRequest.from_bytes(b"GET / HTTP/1.1\r\n\r\n")

    assert exc_info.value.status_code == 400


@pytest.mark.parametrize(
    ("raw", "status_code"),
    [
        (b"GE(T) /pot HTTP/1.1\r\nHost: localhost\r\n\r\n", 400),
        (b"GET / HTTP/2.0\r\nHost: localhost\r\n\r\n", 505),
        (
            b"GET /" + b"a" * MAX_TARGET_LENGTH + b" HTTP/1.1\r\nHost: localhost\r\n\r\n",
            414,
        ),
        (
            b"POST / HTTP/1.1\r\nHost: localhost\r\n"
            b"Content-Length: 3\r\nTransfer-Encoding: chunked\r\n\r\n",
            400,
        ),
    ],
)
def test_parse_errors_carry_status_codes(raw: bytes, status_code: int) -> None:
    with pytest.raises(HTTPRequestParseError) as exc_info:
        HTTPRequest.from_bytes(raw)

    assert exc_info.value.status_code == status_code


@pytest.mark.parametrize("method", ["PROPFIND", "BREW", "get", "Get", "M-SEARCH"])
def test_extension_and_lowercase_methods_parse_unchanged(method: str) -> None:
    raw = f"{method} /a.txt HTTP/1.1\r\nHost: localhost\r\n\r\n".encode("ascii")

    request = HTTPRequest.from_bytes(raw)

    assert request.method == method


@pytest.mark.parametrize(
    ("target", "path"),
    [
        ("//etc/passwd", "//etc/passwd"),
        ("//dir/file.txt?x=1#frag", "//dir/file.txt"),
        ("/a?b/../c", "/a"),
        ("/plain#only-fragment", "/plain"),
        ("http://example.com/abs/path?q=1", "/abs/path"),
        ("http://example.com", "/"),
    ],
)
def test_target_path_keeps_origin_form_path(target: str, path: str) -> None:
    raw = f"GET {target} HTTP/1.1\r\nHost: localhost\r\n\r\n".encode("ascii")

    assert HTTPRequest.from_bytes(raw).path == path
