"""HTTP request model and parser."""

import re
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from config import MAX_BODY_BYTES, MAX_TARGET_LENGTH

ALLOWED_HTTP_VERSIONS = {"HTTP/1.1", "HTTP/1.0"}
# RFC 9110 token characters; methods are case-sensitive.
METHOD_TOKEN = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")


class HTTPRequestParseError(ValueError):
    """Request parse error carrying an HTTP status code."""

    def __init__(self, message: str, *, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class HTTPRequest:
    method: str
    path: str
    http_version: str = "HTTP/1.1"
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    keep_alive: bool = False

    @classmethod
    def from_bytes(cls, raw: bytes) -> "HTTPRequest":
        """Parse one complete request message into a request object."""
        try:
            header_bytes, body = raw.split(b"\r\n\r\n", 1)
        except ValueError as exc:
            raise HTTPRequestParseError("Missing CRLF CRLF request separator") from exc

        lines = header_bytes.decode("iso-8859-1").split("\r\n")
        method, target, http_version = _parse_request_line(lines[0])
        headers = parse_header_lines(lines[1:])

        if http_version == "HTTP/1.1" and "host" not in headers:
            raise HTTPRequestParseError("Host header required for HTTP/1.1")

        transfer_encoding = headers.get("transfer-encoding", "")
        if "chunked" in transfer_encoding.lower():
            if "content-length" in headers:
                raise HTTPRequestParseError(
                    "Content-Length cannot be combined with chunked transfer"
                )
            body = decode_chunked_body(body)
        elif "content-length" in headers:
            if len(body) != parse_content_length(headers["content-length"]):
                raise HTTPRequestParseError("Body length does not match Content-Length")
        elif body:
            raise HTTPRequestParseError("Unexpected bytes after request head")

        if len(body) > MAX_BODY_BYTES:
            raise HTTPRequestParseError("Body exceeded MAX_BODY_BYTES", status_code=413)

        return cls(
            method=method,
            path=target_path(target),
            http_version=http_version,
            headers=headers,
            body=body,
            keep_alive=_is_keep_alive(http_version, headers.get("connection", "")),
        )


def _parse_request_line(line: str) -> tuple[str, str, str]:
    if not line:
        raise HTTPRequestParseError("Missing request line")

    parts = line.split(" ")
    if len(parts) != 3 or not all(parts):
        raise HTTPRequestParseError("Invalid request line")

    method, target, http_version = parts
    if not METHOD_TOKEN.fullmatch(method):
        raise HTTPRequestParseError("Invalid method token")
    if http_version not in ALLOWED_HTTP_VERSIONS:
        raise HTTPRequestParseError("Unsupported HTTP version", status_code=505)
    if len(target) > MAX_TARGET_LENGTH:
        raise HTTPRequestParseError("Request target too long", status_code=414)
    return method, target, http_version


def target_path(target: str) -> str:
    """Return the path component of a request target.

    Origin-form targets keep every leading slash; only absolute-form targets
    (``http://host/path``) go through URL splitting.
    """
    if "://" in target and not target.startswith("/"):
        return urlsplit(target).path or "/"
    path = target.partition("?")[0].partition("#")[0]
    return path or "/"


def parse_header_lines(lines: list[str]) -> dict[str, str]:
    """Parse ``Name: value`` lines into a dict keyed by lower-cased name."""
    headers: dict[str, str] = {}
    for line in lines:
        if not line:
            continue
        name, sep, value = line.partition(":")
        header_name = name.strip().lower()
        if not sep or not header_name:
            raise HTTPRequestParseError("Malformed header line")
        headers[header_name] = value.strip()
    return headers


def parse_content_length(value: str) -> int:
    try:
        length = int(value)
    except ValueError as exc:
        raise HTTPRequestParseError("Invalid Content-Length") from exc
    if length < 0:
        raise HTTPRequestParseError("Negative Content-Length is invalid")
    return length


def _is_keep_alive(http_version: str, connection_header: str) -> bool:
    token = connection_header.lower()
    if http_version == "HTTP/1.1":
        return "close" not in token
    return "keep-alive" in token


def _scan_chunks(encoded_body: bytes) -> tuple[list[slice], int] | None:
    """Locate chunk payloads in a chunked body.

    Returns the payload slices and the number of bytes the encoded body
    occupies through its final blank line, or None while it is incomplete.
    """
    payloads: list[slice] = []
    decoded_size = 0
    cursor = 0
    while True:
        size_line_end = encoded_body.find(b"\r\n", cursor)
        if size_line_end == -1:
            return None
        size_field = encoded_body[cursor:size_line_end].partition(b";")[0].strip()
        try:
            size = int(size_field, 16)
        except ValueError as exc:
            raise HTTPRequestParseError(f"Bad chunk size {size_field!r}") from exc
        if size < 0:
            raise HTTPRequestParseError(f"Bad chunk size {size_field!r}")
        cursor = size_line_end + 2

        if size == 0:
            break

        data_end = cursor + size
        if len(encoded_body) < data_end + 2:
            return None
        if encoded_body[data_end : data_end + 2] != b"\r\n":
            raise HTTPRequestParseError("Chunk data not followed by CRLF")
        decoded_size += size
        if decoded_size > MAX_BODY_BYTES:
            raise HTTPRequestParseError("Body exceeded MAX_BODY_BYTES", status_code=413)
        payloads.append(slice(cursor, data_end))
        cursor = data_end + 2

    # Trailer fields are skipped up to the terminating blank line.
    while True:
        line_end = encoded_body.find(b"\r\n", cursor)
        if line_end == -1:
            return None
        if line_end == cursor:
            return payloads, line_end + 2
        cursor = line_end + 2


def chunked_body_length(encoded_body: bytes) -> int | None:
    """Return the encoded length of a complete chunked body, or None if partial."""
    scanned = _scan_chunks(encoded_body)
    return None if scanned is None else scanned[1]


def decode_chunked_body(encoded_body: bytes) -> bytes:
    scanned = _scan_chunks(encoded_body)
    if scanned is None or scanned[1] != len(encoded_body):
        raise HTTPRequestParseError("Incomplete or trailing chunked body")
    payloads, _length = scanned
    return b"".join(encoded_body[payload] for payload in payloads)
