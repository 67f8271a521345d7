"""Path mapper between local files and WordPress content types.

Translates between paths relative to a site's content root and the
content types of the path-prefix table (``content_types.CONTENT_TYPES``).

Mapping resolution:

1. **Extension check** -- only ``*.md`` files are content files.
2. **Longest prefix** -- the content type whose folder is the longest
   prefix of the path wins.
3. **Tracked path first** -- a remote item already tracked under some path
   keeps that path even if its slug changed; otherwise the path is
   ``<folder>/<slug>.md``.
4. **Id suffix on collision** -- when ``<slug>.md`` already belongs to
   another item (two pages may share a slug under different parents) the
   path becomes ``<folder>/<slug>-<id>.md``.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath

from ..content_types import CONTENT_TYPES, ContentType
from ..converters import generate_filename
from ..file_handler import resolve_inside, to_relative_posix
from .models import SyncState


class PathMapper:
    """Map local file paths to content types and remote items to paths.

    Args:
        content_root: Absolute path of the site's content root.
        content_types: Path-prefix table; defaults to ``CONTENT_TYPES``.
    """

    def __init__(
        self,
        content_root: Path,
        content_types: dict[str, ContentType] | None = None,
    ) -> None:
        self.content_root = content_root
        self._types = dict(content_types or CONTENT_TYPES)
        # Longest folder first so nested folders win over their parents.
        self._by_prefix = sorted(
            self._types.values(),
            key=lambda ct: len(ct.folder),
            reverse=True,
        )

    @property
    def content_types(self) -> dict[str, ContentType]:
        return self._types

    # ------------------------------------------------------------------
    # Local -> type
    # ------------------------------------------------------------------

    def content_type_for(self, rel_path: str) -> ContentType | None:
        """Return the content type a local path belongs to.

        Args:
            rel_path: POSIX path relative to the content root.

        Returns:
            The matching ``ContentType``, or ``None`` if the path is not a
            Markdown file under any known folder.
        """
        pure = PurePosixPath(rel_path)
        if pure.suffix != ".md":
            return None
        for ct in self._by_prefix:
            folder = PurePosixPath(ct.folder)
            if pure.parent == folder or folder in pure.parents:
                return ct
        return None

    def relative(self, path: Path) -> str | None:
        """Return *path* relative to the content root, or ``None`` if outside."""
        return to_relative_posix(path, self.content_root)

    def absolute(self, rel_path: str) -> Path:
        """Resolve a content-root relative path.

        Raises:
            ValueError: If *rel_path* escapes the content root.
        """
        return resolve_inside(self.content_root, rel_path)

    # ------------------------------------------------------------------
    # Remote -> local
    # ------------------------------------------------------------------

    def path_for_item(
        self,
        item: dict,
        content_type: str,
        state: SyncState | None = None,
        claimed: set[str] | None = None,
        avoid_existing: bool = False,
    ) -> str:
        """Return the local path for a remote item.

        An item already tracked (same type and id) keeps its tracked path.
        Otherwise the slug path is used unless it is tracked for another
        item, listed in *claimed*, or (with *avoid_existing*) already a
        file on disk; then the item id is appended to the file name.

        Args:
            item: Remote item JSON.
            content_type: Content type name of the item.
            state: Sync state used to look up tracked paths.
            claimed: Paths already handed out in the current batch.
            avoid_existing: Never return the path of an existing file.
        """
        remote_id = item.get("id")
        if state is not None and remote_id is not None:
            tracked = state.find_by_remote(content_type, remote_id)
            if tracked is not None:
                return tracked.path
        folder = self._types[content_type].folder
        candidate = f"{folder}/{generate_filename(item)}"
        if remote_id is None:
            return candidate

        taken = (
            (claimed is not None and candidate in claimed)
            or (state is not None and state.get(candidate) is not None)
            or (avoid_existing and self.absolute(candidate).exists())
        )
        if not taken:
            return candidate
        stem = PurePosixPath(candidate).stem
        return f"{folder}/{stem}-{remote_id}.md"

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover_local_files(
        self, types: list[str] | None = None
    ) -> list[str]:
        """Scan the content root for Markdown files of the given types.

        Args:
            types: Content type names to include; ``None`` means all.

        Returns:
            Sorted list of relative POSIX paths.
        """
        if not self.content_root.is_dir():
            return []

        wanted = set(types) if types is not None else None
        result: list[str] = []
        for path in self.content_root.rglob("*.md"):
            if not path.is_file():
                continue
            rel = self.relative(path)
            if rel is None:
                continue
            ct = self.content_type_for(rel)
            if ct is None:
                continue
            if wanted is not None and ct.name not in wanted:
                continue
            result.append(rel)
        return sorted(result)
