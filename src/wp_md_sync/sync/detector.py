"""Change detection by content digest.

A digest is an equality fingerprint only: two texts that differ solely in
BOM, line endings, trailing whitespace or trailing blank lines produce the
same digest, so a file re-saved by an editor on another platform does not
look modified.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from ..file_handler import read_file_with_encoding

logger = logging.getLogger(__name__)


def normalize_text(content: str) -> str:
    """Return *content* in the canonical form used for digesting.

    Normalisation steps (applied in order):

    1. Strip BOM (``\\ufeff``).
    2. Replace ``\\r\\n`` with ``\\n``.
    3. Right-strip each line.
    4. Strip trailing empty lines.
    """
    text = content.lstrip("\ufeff")
    text = text.replace("\r\n", "\n")
    lines = [line.rstrip() for line in text.split("\n")]
    while lines and lines[-1] == "":
        lines.pop()
    return "\n".join(lines)


def content_digest(content: str) -> str:
    """Return the SHA-256 hex digest (64 chars) of normalised *content*."""
    return hashlib.sha256(
        normalize_text(content).encode("utf-8")
    ).hexdigest()


def digests_match(observed: str | None, recorded: str | None) -> bool:
    """Compare two digests.  A missing digest never matches anything."""
    if observed is None or recorded is None:
        return False
    return observed == recorded


def read_local_digest(path: Path) -> str | None:
    """Digest the file at *path*, or ``None`` if it cannot be read."""
    try:
        text, _ = read_file_with_encoding(path)
    except (OSError, ValueError) as exc:
        logger.debug("Cannot digest %s: %s", path, exc)
        return None
    return content_digest(text)
