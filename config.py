"""Configuration constants for the document-root file server."""

from dataclasses import dataclass
from pathlib import Path

VERSION: str = "0.1.0"

HOST: str = "::1"
PORT: int = 0
DOCUMENT_ROOT: str = "."

READ_CHUNK_SIZE: int = 8192
FILE_CHUNK_SIZE: int = 8192
SOCKET_TIMEOUT_SECS: int = 5
KEEPALIVE_TIMEOUT_SECS: int = 5
MAX_KEEPALIVE_REQUESTS: int = 100
MAX_HEADER_BYTES: int = 16_384
MAX_BODY_BYTES: int = 524_288
MAX_TARGET_LENGTH: int = 8192

WORKER_COUNT: int = 32
REQUEST_QUEUE_SIZE: int = 128
LOG_FORMAT: str = "plain"


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Startup configuration shared read-only by every connection worker."""

    bind_address: tuple[str, int] = (HOST, PORT)
    document_root: Path = Path(DOCUMENT_ROOT)
