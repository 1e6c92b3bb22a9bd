"""HTTP response model and wire framing."""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

REASON_PHRASES: dict[int, str] = {
    200: "OK",
    400: "Bad Request",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    408: "Request Timeout",
    413: "Payload Too Large",
    414: "URI Too Long",
    431: "Request Header Fields Too Large",
    500: "Internal Server Error",
    503: "Service Unavailable",
    505: "HTTP Version Not Supported",
}


@dataclass(slots=True)
class PreparedResponse:
    head: bytes
    stream: Iterator[bytes] | None = None
    chunked: bool = False


@dataclass(slots=True)
class HTTPResponse:
    """A status plus an optional lazily produced body.

    Responses without a ``stream`` carry an empty body.
    """

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    stream: Iterable[bytes] | None = None

    @property
    def reason_phrase(self) -> str:
        return REASON_PHRASES.get(self.status_code, "Unknown")

    def close(self) -> None:
        """Release whatever resource backs the body stream, if any."""
        close_stream = getattr(self.stream, "close", None)
        if close_stream is not None:
            close_stream()


def prepare_response(response: HTTPResponse, *, chunked: bool = True) -> PreparedResponse:
    """Build the status line and framing headers for ``response``.

    With ``chunked`` false a streamed body is sent raw and the caller must
    close the connection to mark its end.
    """
    headers = dict(response.headers)
    stream: Iterator[bytes] | None = None
    if response.stream is None:
        headers["Content-Length"] = "0"
    else:
        stream = iter(response.stream)
        if chunked:
            headers["Transfer-Encoding"] = "chunked"
        else:
            headers["Connection"] = "close"

    header_lines = [f"HTTP/1.1 {response.status_code} {response.reason_phrase}"]
    header_lines.extend(f"{key}: {value}" for key, value in headers.items())
    head = "\r\n".join(header_lines).encode("iso-8859-1") + b"\r\n\r\n"
    return PreparedResponse(head=head, stream=stream, chunked=stream is not None and chunked)


def encode_chunk(chunk: bytes) -> bytes:
    return f"{len(chunk):X}\r\n".encode("ascii") + chunk + b"\r\n"


def iter_chunked_encoded(chunks: Iterable[bytes]) -> Iterator[bytes]:
    for chunk in chunks:
        if chunk:
            yield encode_chunk(chunk)
    yield b"0\r\n\r\n"


def iter_body(prepared: PreparedResponse) -> Iterator[bytes]:
    """Yield the wire bytes of the body following ``prepared.head``."""
    if prepared.stream is None:
        return
    if prepared.chunked:
        yield from iter_chunked_encoded(prepared.stream)
        return
    for chunk in prepared.stream:
        if chunk:
            yield chunk
