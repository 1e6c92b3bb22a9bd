"""Low-level socket read/write utilities."""

from __future__ import annotations

import socket
from dataclasses import dataclass

from config import MAX_BODY_BYTES, MAX_HEADER_BYTES, READ_CHUNK_SIZE
from request import (
    HTTPRequestParseError,
    chunked_body_length,
    parse_content_length,
    parse_header_lines,
)
from response import HTTPResponse, iter_body, prepare_response


class HTTPReadError(Exception):
    """Raised when a client request cannot be safely read from the socket."""


class MalformedRequestError(HTTPReadError):
    """Raised when socket bytes do not form a complete HTTP request."""


class HeaderTooLargeError(HTTPReadError):
    """Raised when HTTP headers exceed configured maximum size."""


class PayloadTooLargeError(HTTPReadError):
    """Raised when request body exceeds configured maximum size."""


class SocketTimeoutError(HTTPReadError):
    """Raised when a client times out while sending request bytes."""


@dataclass(slots=True)
class RequestHeadInfo:
    header_end_index: int
    expected_body_length: int
    uses_chunked_transfer: bool


def inspect_http_request_head(buffer: bytes) -> RequestHeadInfo | None:
    """Inspect request headers from an in-memory buffer, if complete."""
    header_end_index = buffer.find(b"\r\n\r\n")
    if header_end_index == -1:
        if len(buffer) > MAX_HEADER_BYTES:
            raise HeaderTooLargeError("Headers exceeded MAX_HEADER_BYTES")
        return None
    if header_end_index + 4 > MAX_HEADER_BYTES:
        raise HeaderTooLargeError("Headers exceeded MAX_HEADER_BYTES")

    lines = buffer[:header_end_index].decode("iso-8859-1").split("\r\n")
    try:
        headers = parse_header_lines(lines[1:])
        uses_chunked_transfer = "chunked" in headers.get("transfer-encoding", "").lower()
        expected_body_length = 0
        if not uses_chunked_transfer and "content-length" in headers:
            expected_body_length = parse_content_length(headers["content-length"])
    except HTTPRequestParseError as exc:
        raise MalformedRequestError(str(exc)) from exc

    if expected_body_length > MAX_BODY_BYTES:
        raise PayloadTooLargeError("Body exceeded MAX_BODY_BYTES")

    return RequestHeadInfo(
        header_end_index=header_end_index,
        expected_body_length=expected_body_length,
        uses_chunked_transfer=uses_chunked_transfer,
    )


def extract_http_request_message(buffer: bytes) -> tuple[bytes, bytes] | None:
    """Split one complete HTTP request off the front of ``buffer``."""
    head_info = inspect_http_request_head(buffer)
    if head_info is None:
        return None

    body_start = head_info.header_end_index + 4
    if head_info.uses_chunked_transfer:
        try:
            body_length = chunked_body_length(buffer[body_start:])
        except HTTPRequestParseError as exc:
            if exc.status_code == 413:
                raise PayloadTooLargeError(str(exc)) from exc
            raise MalformedRequestError(str(exc)) from exc
        if body_length is None:
            return None
    else:
        body_length = head_info.expected_body_length
        if len(buffer) < body_start + body_length:
            return None

    request_length = body_start + body_length
    return buffer[:request_length], buffer[request_length:]


def read_http_request_message(
    client_socket: socket.socket,
    initial_buffer: bytes = b"",
) -> tuple[bytes, bytes]:
    """Read one HTTP/1.x request and return (request_bytes, leftover_bytes)."""
    buffer = bytearray(initial_buffer)

    while True:
        extracted = extract_http_request_message(bytes(buffer))
        if extracted is not None:
            return extracted

        try:
            chunk = client_socket.recv(READ_CHUNK_SIZE)
        except socket.timeout as exc:
            if not buffer:
                # Idle keep-alive connection, not a stalled request.
                return b"", b""
            raise SocketTimeoutError("Timed out waiting for request bytes") from exc

        if not chunk:
            if not buffer:
                return b"", b""
            raise MalformedRequestError("Connection closed before request completed")

        buffer.extend(chunk)


def write_http_response_message(
    client_socket: socket.socket,
    response: HTTPResponse,
    *,
    chunked: bool = True,
) -> int:
    """Write the response head, then its body one chunk at a time.

    The body stream is closed when writing ends for any reason, so a client
    that disconnects mid-body releases the underlying file immediately.
    """
    try:
        prepared = prepare_response(response, chunked=chunked)
        client_socket.sendall(prepared.head)
        bytes_sent = len(prepared.head)
        for payload in iter_body(prepared):
            client_socket.sendall(payload)
            bytes_sent += len(payload)
        return bytes_sent
    finally:
        response.close()
