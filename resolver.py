"""Map request paths onto files confined to the document root.

Resolution is purely lexical. Symbolic links are not resolved, so a symlink
placed inside the document root that points outside of it will be followed
when the file is opened. Operators who need a hard boundary must keep such
links out of the served tree.
"""

from pathlib import Path, PurePosixPath
from urllib.parse import unquote

PARENT_SEGMENT = ".."
CURRENT_SEGMENT = "."


def normalize_segments(request_path: str) -> list[str]:
    """Return the literal name segments left after applying ``..`` pops."""
    segments: list[str] = []
    for part in PurePosixPath(unquote(request_path)).parts:
        if part == PARENT_SEGMENT:
            if segments:
                segments.pop()
            continue
        # PurePosixPath keeps a leading "//" as its own anchor part.
        if part == CURRENT_SEGMENT or not part.strip("/"):
            continue
        segments.append(part)
    return segments


def resolve_request_path(request_path: str, document_root: Path | str) -> Path:
    """Join ``document_root`` with the sandboxed form of ``request_path``.

    The result is always ``document_root`` itself or a lexical descendant of
    it, however many ``..`` segments or absolute prefixes the input carries.
    """
    return Path(document_root).joinpath(*normalize_segments(request_path))
