"""GET handler that streams files from beneath the document root."""

from __future__ import annotations

import logging
import os
import stat
from typing import BinaryIO

from config import FILE_CHUNK_SIZE, ServerConfig
from request import HTTPRequest
from resolver import resolve_request_path
from response import HTTPResponse

logger = logging.getLogger(__name__)


class FileStream:
    """Lazy, single-pass iterator over the bytes of an open file.

    The stream owns ``file_obj``. It is closed at end of file, when a read
    fails, or when ``close()`` is called by whoever abandons the stream.
    """

    def __init__(self, file_obj: BinaryIO, chunk_size: int = FILE_CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._file_obj: BinaryIO | None = file_obj
        self._chunk_size = chunk_size

    @property
    def closed(self) -> bool:
        return self._file_obj is None

    def __iter__(self) -> FileStream:
        return self

    def __next__(self) -> bytes:
        if self._file_obj is None:
            raise StopIteration
        try:
            chunk = self._file_obj.read(self._chunk_size)
        except OSError:
            self.close()
            raise
        if not chunk:
            self.close()
            raise StopIteration
        return chunk

    def close(self) -> None:
        if self._file_obj is not None:
            file_obj, self._file_obj = self._file_obj, None
            file_obj.close()


def open_regular_file(path: os.PathLike[str] | str) -> BinaryIO:
    """Open ``path`` for reading, refusing anything but a regular file.

    The descriptor is opened non-blocking so a FIFO without a writer cannot
    stall the caller; the flag has no effect on regular file reads.
    """
    flags = os.O_RDONLY | getattr(os, "O_NONBLOCK", 0) | getattr(os, "O_BINARY", 0)
    fd = os.open(path, flags)
    try:
        if not stat.S_ISREG(os.fstat(fd).st_mode):
            raise OSError(f"not a regular file: {path}")
    except BaseException:
        os.close(fd)
        raise
    return os.fdopen(fd, "rb")


def serve_file(config: ServerConfig, request: HTTPRequest) -> HTTPResponse:
    """Map a request onto a file under ``config.document_root``.

    Directories are refused with 403; there is no index file fallback.
    Any failure to open the file, permission errors included, is reported
    as 404 so the response does not reveal whether the path exists.
    Paths that are not regular files (FIFOs, sockets, devices) are 404 too.
    """
    if request.method != "GET":
        return HTTPResponse(status_code=405)

    file_path = resolve_request_path(request.path, config.document_root)
    if os.path.isdir(file_path):
        return HTTPResponse(status_code=403)

    try:
        file_obj = open_regular_file(file_path)
    except (OSError, ValueError) as exc:
        logger.debug("Cannot open %s: %s", file_path, exc)
        return HTTPResponse(status_code=404)

    return HTTPResponse(status_code=200, stream=FileStream(file_obj))
