"""File handler module: path containment, encoding-aware read/write.

Provides the file I/O used by the pipelines and the state store.
All sync functions are plain blocking I/O; the async wrappers compose
validation + I/O via run_sync().
"""

import os
import tempfile
from pathlib import Path, PurePosixPath

from charset_normalizer import from_bytes

from .core.async_utils import run_sync

# =============================================================================
# Path Validation
# =============================================================================


def to_relative_posix(path: Path, root: Path) -> str | None:
    """Return *path* relative to *root* with forward slashes.

    Returns:
        The relative POSIX path, or ``None`` if *path* is not inside
        *root*.
    """
    try:
        rel = path.resolve().relative_to(root.resolve())
    except ValueError:
        return None
    return rel.as_posix()


def resolve_inside(root: Path, rel_path: str) -> Path:
    """Resolve a content-root relative path to an absolute path.

    Args:
        root: Content root directory.
        rel_path: POSIX path relative to *root*.

    Returns:
        Resolved absolute Path.

    Raises:
        ValueError: If *rel_path* is absolute or escapes *root*.
    """
    pure = PurePosixPath(rel_path)
    if pure.is_absolute():
        raise ValueError(f"Path must be relative: {rel_path}")
    root_resolved = root.resolve()
    resolved = (root_resolved / pure).resolve()
    if not resolved.is_relative_to(root_resolved):
        raise ValueError(
            f"Path is outside content root: {resolved} not under {root_resolved}"
        )
    return resolved


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    # Front matter files are nearly always UTF-8; skip detection then.
    try:
        return (raw.decode("utf-8"), "utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content, encoding)


def write_file(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Write content to a file, creating parent directories as needed.

    Args:
        path: Path to the output file.
        content: String content to write.
        encoding: Encoding to use (default: utf-8).

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    path.write_bytes(encoded)
    return len(encoded)


def atomic_write_text(path: Path, content: str) -> None:
    """Replace *path* with *content* without ever exposing partial data.

    Writes to a temporary file in the same directory then calls
    ``os.replace()``.  On any failure the temporary file is removed and
    the previous file is left untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


# =============================================================================
# Async Wrappers
# =============================================================================


async def read_file_async(path: Path) -> str:
    """Async wrapper: read a file with encoding detection.

    Raises:
        OSError: If the file cannot be read.
    """
    content, _ = await run_sync(read_file_with_encoding, path)
    return content


async def write_file_async(
    root: Path, rel_path: str, content: str
) -> Path:
    """Async wrapper: validate containment, then write the file.

    Args:
        root: Content root the file must live under.
        rel_path: POSIX path relative to *root*.
        content: Text to write (UTF-8).

    Returns:
        The resolved absolute path that was written.

    Raises:
        ValueError: If *rel_path* escapes *root*.
        OSError: If the write fails.
    """
    resolved = resolve_inside(root, rel_path)
    await run_sync(write_file, resolved, content)
    return resolved
