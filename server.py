"""Main HTTP server entry point and connection lifecycle orchestration."""

from __future__ import annotations

import argparse
import ipaddress
import json
import logging
import signal
import socket
import sys
import threading
import time
from collections.abc import Callable
from pathlib import Path

from config import (
    DOCUMENT_ROOT,
    HOST,
    KEEPALIVE_TIMEOUT_SECS,
    LOG_FORMAT,
    MAX_KEEPALIVE_REQUESTS,
    PORT,
    REQUEST_QUEUE_SIZE,
    SOCKET_TIMEOUT_SECS,
    VERSION,
    WORKER_COUNT,
    ServerConfig,
)
from handlers.static_files import serve_file
from request import HTTPRequest, HTTPRequestParseError
from response import HTTPResponse
from socket_handler import (
    HeaderTooLargeError,
    HTTPReadError,
    MalformedRequestError,
    PayloadTooLargeError,
    SocketTimeoutError,
    read_http_request_message,
    write_http_response_message,
)
from thread_pool import ThreadPool

logger = logging.getLogger(__name__)

RequestHandler = Callable[[ServerConfig, HTTPRequest], HTTPResponse]

READ_ERROR_STATUS: dict[type[HTTPReadError], int] = {
    MalformedRequestError: 400,
    HeaderTooLargeError: 431,
    PayloadTooLargeError: 413,
    SocketTimeoutError: 408,
}


def format_address(address: tuple[str, int]) -> str:
    host, port = address[0], address[1]
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def parse_bind_address(value: str) -> tuple[str, int]:
    """Parse ``HOST:PORT`` or ``[V6HOST]:PORT`` into a socket address."""
    host, sep, port_text = value.rpartition(":")
    if not sep or not host:
        raise ValueError(f"expected ADDRESS:PORT, got {value!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
        if ipaddress.ip_address(host).version != 6:
            raise ValueError(f"bracketed address must be IPv6: {value!r}")
    elif ipaddress.ip_address(host).version != 4:
        raise ValueError(f"IPv6 addresses must be bracketed: {value!r}")

    port = int(port_text)
    if not 0 <= port <= 65535:
        raise ValueError(f"port out of range: {port}")
    return host, port


class HTTPServer:
    def __init__(
        self,
        config: ServerConfig | None = None,
        worker_count: int = WORKER_COUNT,
        request_queue_size: int = REQUEST_QUEUE_SIZE,
        *,
        handler: RequestHandler = serve_file,
        keepalive_timeout_secs: int = KEEPALIVE_TIMEOUT_SECS,
        log_format: str = LOG_FORMAT,
    ) -> None:
        self.config = config or ServerConfig()
        self.host, self.port = self.config.bind_address
        self.handler = handler
        self.worker_count = worker_count
        self.request_queue_size = request_queue_size
        self.keepalive_timeout_secs = keepalive_timeout_secs
        self.log_format = log_format

        self._server_socket: socket.socket | None = None
        self._pool: ThreadPool | None = None
        self._running = False
        self._connections: set[socket.socket] = set()
        self._connections_lock = threading.Lock()

    @property
    def address(self) -> str:
        return format_address((self.host, self.port))

    def start(self) -> None:
        """Bind the listener and serve connections until ``stop()`` is called.

        Raises ``OSError`` when the listener cannot be bound.
        """
        family = socket.AF_INET6 if ipaddress.ip_address(self.host).version == 6 else socket.AF_INET
        with socket.socket(family, socket.SOCK_STREAM) as server_socket:
            server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            server_socket.bind((self.host, self.port))
            server_socket.listen(128)
            server_socket.settimeout(0.2)
            self._server_socket = server_socket
            self.port = server_socket.getsockname()[1]
            logger.info("Server started on %s", self.address)

            self._pool = ThreadPool(
                worker_count=self.worker_count,
                queue_size=self.request_queue_size,
                handler=self._handle_client,
            )
            self._pool.start()

            self._running = True
            try:
                while self._running:
                    try:
                        client_socket, address = server_socket.accept()
                    except socket.timeout:
                        continue
                    except OSError:
                        break

                    if not self._pool.submit(client_socket, address):
                        self._send_unavailable_response(client_socket, address)
            finally:
                self._running = False
                self._abort_connections()
                self._pool.shutdown()
                self._pool = None
                logger.info("Server on %s stopped", self.address)

    def stop(self) -> None:
        """Stop accepting connections; safe from other threads and signal handlers."""
        self._running = False
        if self._server_socket is not None:
            self._server_socket.close()
            self._server_socket = None

    def _abort_connections(self) -> None:
        # Wakes workers blocked on these sockets so their file streams get closed.
        with self._connections_lock:
            connections = list(self._connections)
        for client_socket in connections:
            try:
                client_socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

    def _send_unavailable_response(self, client_socket: socket.socket, address: tuple) -> None:
        with client_socket:
            self._send_error_and_close(client_socket, address, 503, time.perf_counter())

    def _handle_client(self, client_socket: socket.socket, address: tuple) -> None:
        with self._connections_lock:
            self._connections.add(client_socket)
        try:
            with client_socket:
                client_socket.settimeout(min(SOCKET_TIMEOUT_SECS, self.keepalive_timeout_secs))
                self._serve_connection(client_socket, address)
        finally:
            with self._connections_lock:
                self._connections.discard(client_socket)

    def _serve_connection(self, client_socket: socket.socket, address: tuple) -> None:
        carry = b""
        request_count = 0
        while self._running and request_count < MAX_KEEPALIVE_REQUESTS:
            started_at = time.perf_counter()
            try:
                raw_request, carry = read_http_request_message(client_socket, carry)
                if not raw_request:
                    return
                request = HTTPRequest.from_bytes(raw_request)
            except (HTTPReadError, HTTPRequestParseError) as exc:
                status_code = getattr(exc, "status_code", None) or READ_ERROR_STATUS.get(
                    type(exc), 400
                )
                logger.debug("Rejecting request from %s: %s", address[0], exc)
                self._send_error_and_close(client_socket, address, status_code, started_at)
                return
            except OSError:
                return

            request_count += 1
            response = self._dispatch(request)
            chunked = request.http_version == "HTTP/1.1"
            should_close = (
                not request.keep_alive
                or request_count >= MAX_KEEPALIVE_REQUESTS
                or (response.stream is not None and not chunked)
            )
            if should_close:
                response.headers["Connection"] = "close"
            elif request.http_version == "HTTP/1.0":
                response.headers["Connection"] = "keep-alive"

            try:
                bytes_sent = write_http_response_message(client_socket, response, chunked=chunked)
            except OSError as exc:
                logger.warning(
                    "Response to %s %s for %s aborted: %s",
                    request.method,
                    request.path,
                    address[0],
                    exc,
                )
                return

            self._record_and_log(
                address=address,
                method=request.method,
                path=request.path,
                response=response,
                bytes_out=bytes_sent,
                bytes_in=len(raw_request),
                started_at=started_at,
                request_id=request_count,
            )
            if should_close:
                return

    def _send_error_and_close(
        self,
        client_socket: socket.socket,
        address: tuple,
        status_code: int,
        started_at: float,
    ) -> None:
        response = HTTPResponse(status_code=status_code, headers={"Connection": "close"})
        try:
            bytes_sent = write_http_response_message(client_socket, response)
        except OSError:
            return
        self._record_and_log(
            address=address,
            method="-",
            path="-",
            response=response,
            bytes_out=bytes_sent,
            bytes_in=0,
            started_at=started_at,
            request_id=0,
        )

    def _dispatch(self, request: HTTPRequest) -> HTTPResponse:
        try:
            return self.handler(self.config, request)
        except Exception:
            logger.exception("Unhandled error serving %s %s", request.method, request.path)
            return HTTPResponse(status_code=500)

    def _record_and_log(
        self,
        *,
        address: tuple,
        method: str,
        path: str,
        response: HTTPResponse,
        bytes_out: int,
        bytes_in: int,
        started_at: float,
        request_id: int,
    ) -> None:
        duration_ms = (time.perf_counter() - started_at) * 1000
        event = {
            "client": address[0],
            "method": method,
            "path": path,
            "status": response.status_code,
            "request_id": request_id,
            "bytes_in": bytes_in,
            "bytes_out": bytes_out,
            "latency_ms": round(duration_ms, 3),
            "connection_reused": request_id > 1,
        }
        if self.log_format == "json":
            logger.info(json.dumps(event, sort_keys=True))
            return

        logger.info(
            (
                "client=%s method=%s path=%s status=%s request_id=%s "
                "bytes_in=%s bytes_out=%s duration_ms=%.2f connection_reused=%s"
            ),
            event["client"],
            event["method"],
            event["path"],
            event["status"],
            event["request_id"],
            event["bytes_in"],
            event["bytes_out"],
            duration_ms,
            event["connection_reused"],
        )


def _bind_address_arg(value: str) -> tuple[str, int]:
    try:
        return parse_bind_address(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _document_root_arg(value: str) -> Path:
    path = Path(value)
    if not path.is_dir():
        raise argparse.ArgumentTypeError(f"not a directory: {value}")
    return path


def _positive_int_arg(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value}")
    return number


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="docroot-server",
        description="Serve files beneath a document root over HTTP/1.1",
    )
    parser.add_argument(
        "-b",
        "--bind",
        metavar="ADDRESS:PORT",
        type=_bind_address_arg,
        default=(HOST, PORT),
        help="bind to this address:port (default: [::1]:0)",
    )
    parser.add_argument(
        "-r",
        "--document-root",
        metavar="PATH",
        type=_document_root_arg,
        default=Path(DOCUMENT_ROOT),
        help="set the path of the document root (default: .)",
    )
    parser.add_argument("--workers", type=_positive_int_arg, default=WORKER_COUNT)
    parser.add_argument("--keepalive-timeout", type=_positive_int_arg, default=KEEPALIVE_TIMEOUT_SECS)
    parser.add_argument("--log-format", choices=["plain", "json"], default=LOG_FORMAT)
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {VERSION}")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    config = ServerConfig(bind_address=args.bind, document_root=args.document_root)
    server = HTTPServer(
        config,
        worker_count=args.workers,
        keepalive_timeout_secs=args.keepalive_timeout,
        log_format=args.log_format,
    )

    def _shutdown(signum: int, _frame: object) -> None:
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        server.stop()

    previous_handlers = {
        signum: signal.signal(signum, _shutdown) for signum in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        server.start()
    except OSError as exc:
        logger.error("Failed to bind %s: %s", format_address(config.bind_address), exc)
        return 1
    finally:
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)
    return 0


if __name__ == "__main__":
    sys.exit(main())
