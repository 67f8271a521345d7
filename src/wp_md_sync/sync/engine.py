"""Batch sync engine behind the one-shot CLI commands.

The ``SyncEngine`` drives a ``SiteSession`` through complete batches:

1. ``pull`` polls the requested types once through the reconciler.
2. ``push`` sends local files that changed since their last sync (and,
   because the command is explicit, untracked files too).
3. ``force_push`` sends every file of the creatable types, creating
   items that no longer exist remotely.
4. ``new`` creates a remote item first and then pulls it, which is the
   only way a brand-new local file becomes tracked.
   ``upload`` does the same for a media library file.
5. ``status`` classifies every local and tracked path.
6. ``resolve`` settles one conflict in favour of one side.

Error handling is per-path: a single file failure never aborts a batch.
Each push runs in its own locked transaction, so paths pushed before a
crash stay recorded.
"""

from __future__ import annotations

import difflib
import logging
from datetime import datetime, timezone
from pathlib import Path

from ..content_types import get_content_type
from ..converters import build_create_data, item_to_text, slugify
from ..core.async_utils import gather_limited, run_sync, run_sync_limited
from ..exceptions import TransportError
from ..file_handler import read_file_with_encoding
from ..validators import validate_relative_path, validate_title
from .detector import read_local_digest
from .models import (
    FileStatus,
    StatusEntry,
    StatusReport,
    SyncAction,
    SyncReport,
    SyncResult,
)
from .resolver import create_resolver
from .session import SiteSession

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncEngine:
    """Run one-shot batches against a single site.

    Args:
        session: The site session; its lock and state store are shared
            with a running watcher, if any.
    """

    def __init__(self, session: SiteSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _local_digests(
        self, paths: list[str]
    ) -> dict[str, str | None]:
        mapper = self.session.mapper
        digests = await gather_limited(
            [
                run_sync_limited(
                    self.session.semaphore,
                    read_local_digest,
                    mapper.absolute(p),
                )
                for p in paths
            ]
        )
        return dict(zip(paths, digests))

    def _report(
        self,
        operation: str,
        results: list[SyncResult],
        started_at: str,
        dry_run: bool = False,
    ) -> SyncReport:
        return SyncReport(
            site=self.session.name,
            operation=operation,
            dry_run=dry_run,
            results=results,
            started_at=started_at,
            completed_at=_now(),
        )

    def normalize_path(self, path: str) -> str:
        """Turn a user-supplied path into a content-root relative one.

        Accepts a path relative to the working directory, an absolute
        path, or a path already relative to the content root.

        Raises:
            ValueError: If the path is outside the content root or not a
                Markdown file.
        """
        candidate = Path(path)
        if candidate.is_absolute() or candidate.exists():
            rel = self.session.mapper.relative(candidate.resolve())
            if rel is None:
                raise ValueError(
                    f"{path} is outside {self.session.content_root}"
                )
            path = rel
        valid, error = validate_relative_path(path)
        if not valid:
            raise ValueError(error)
        return path.replace("\\", "/")

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    async def pull(
        self, types: list[str] | None = None, force: bool = False
    ) -> SyncReport:
        """Pull remote changes for *types* (all types by default).

        Args:
            types: Content type names.
            force: Overwrite local edits (remote wins on conflict).
        """
        return await self.session.poll(
            types or list(self.session.mapper.content_types),
            force=force,
            operation="pull",
        )

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    async def push(
        self,
        types: list[str] | None = None,
        file_filter: str | None = None,
        dry_run: bool = False,
    ) -> SyncReport:
        """Push local files that changed since their last sync.

        Args:
            types: Content type names; ``None`` means all.
            file_filter: Only paths containing this substring.
            dry_run: Report what would be pushed without pushing.
        """
        started_at = _now()
        paths = self.session.mapper.discover_local_files(types)
        if file_filter:
            paths = [p for p in paths if file_filter in p]

        state = await run_sync(self.session.store.load)
        digests = await self._local_digests(paths)

        results: list[SyncResult] = []
        for path in paths:
            tracked = state.get(path)
            if (
                tracked is not None
                and digests[path] is not None
                and digests[path] == tracked.local_digest
            ):
                results.append(
                    SyncResult(
                        path=path,
                        action=SyncAction.IGNORE,
                        content_type=tracked.content_type,
                        remote_id=tracked.remote_id,
                    )
                )
                continue
            results.append(
                await self.session.push_path(path, dry_run=dry_run)
            )
        return self._report("push", results, started_at, dry_run)

    async def force_push(self, dry_run: bool = False) -> SyncReport:
        """Push every file of the creatable types, changed or not.

        Items deleted in WordPress are re-created and the local file is
        rewritten with the new id.
        """
        started_at = _now()
        types = [
            ct.name
            for ct in self.session.mapper.content_types.values()
            if ct.creatable
        ]
        results: list[SyncResult] = []
        for path in self.session.mapper.discover_local_files(types):
            results.append(
                await self.session.push_path(
                    path, create_fallback=True, dry_run=dry_run
                )
            )
        return self._report("force-push", results, started_at, dry_run)

    # ------------------------------------------------------------------
    # New
    # ------------------------------------------------------------------

    async def new(
        self,
        content_type: str,
        title: str,
        publish: bool = False,
        content: str | None = None,
        area: str | None = None,
        parent: int | None = None,
    ) -> SyncResult:
        """Create a remote item, then pull it into a tracked local file.

        Raises:
            ValueError: If the title is invalid or the type cannot be
                created.
        """
        valid, error = validate_title(title)
        if not valid:
            raise ValueError(error)
        ct = get_content_type(content_type)
        if not ct.creatable:
            raise ValueError(f"Cannot create content type: {content_type}")

        data = build_create_data(
            ct.name,
            title,
            slugify(title),
            publish=publish,
            content=content,
            area=area,
            parent=parent,
        )
        client = self.session.client
        session = self.session
        try:
            created = await run_sync(
                client.create, ct.name, data, executor=session.executor
            )
            remote_id = created["id"]
            item = await run_sync(
                client.fetch_one,
                ct.name,
                remote_id,
                executor=session.executor,
            )
        except (TransportError, KeyError, TypeError) as exc:
            logger.error("Failed to create %s '%s': %s", ct.name, title, exc)
            return SyncResult(
                path="",
                action=SyncAction.CREATE_REMOTE,
                success=False,
                content_type=ct.name,
                error=str(exc),
            )

        async with session.lock:
            async with session.store.atransaction() as state:
                path = session.mapper.path_for_item(
                    item, ct.name, state, avoid_existing=True
                )
                pulled = await session.pull_pipeline.pull_item(
                    item, ct.name, state, path=path
                )
        if not pulled.success:
            return pulled.model_copy(
                update={"action": SyncAction.CREATE_REMOTE}
            )
        logger.info("Created %s (ID: %s)", pulled.path, remote_id)
        return SyncResult(
            path=pulled.path,
            action=SyncAction.CREATE_REMOTE,
            content_type=ct.name,
            remote_id=remote_id,
        )

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload(
        self,
        file: Path,
        title: str | None = None,
        alt_text: str | None = None,
        caption: str | None = None,
    ) -> SyncResult:
        """Upload a file to the media library and track its metadata file.

        The result's ``message`` carries the attachment's source URL.

        Raises:
            ValueError: If *file* is not a readable file.
        """
        if not file.is_file():
            raise ValueError(f"File not found: {file}")
        session = self.session
        try:
            uploaded = await run_sync(
                session.client.upload_media,
                file,
                title=title,
                alt_text=alt_text,
                caption=caption,
                executor=session.executor,
            )
            remote_id = uploaded["id"]
            item = await run_sync(
                session.client.fetch_one,
                "attachment",
                remote_id,
                executor=session.executor,
            )
        except (TransportError, OSError, KeyError, TypeError) as exc:
            logger.error("Failed to upload %s: %s", file, exc)
            return SyncResult(
                path="",
                action=SyncAction.CREATE_REMOTE,
                success=False,
                content_type="attachment",
                error=str(exc),
            )

        async with session.lock:
            async with session.store.atransaction() as state:
                path = session.mapper.path_for_item(
                    item, "attachment", state, avoid_existing=True
                )
                pulled = await session.pull_pipeline.pull_item(
                    item, "attachment", state, path=path
                )
        if not pulled.success:
            return pulled.model_copy(
                update={"action": SyncAction.CREATE_REMOTE}
            )
        logger.info("Uploaded %s (ID: %s)", file.name, remote_id)
        return SyncResult(
            path=pulled.path,
            action=SyncAction.CREATE_REMOTE,
            content_type="attachment",
            remote_id=remote_id,
            message=item.get("source_url"),
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def status(self, remote: bool = False) -> StatusReport:
        """Classify every local and tracked path.

        Args:
            remote: Also poll WordPress (read-only) to find remote
                changes, new remote items and conflicts.
        """
        state = await run_sync(self.session.store.load)
        local = self.session.mapper.discover_local_files()
        digests = await self._local_digests(local)

        statuses: dict[str, StatusEntry] = {}
        for path in local:
            tracked = state.get(path)
            if tracked is None:
                status = FileStatus.NEW_LOCAL
            elif digests[path] == tracked.local_digest:
                status = FileStatus.SYNCED
            else:
                status = FileStatus.MODIFIED
            ct = self.session.mapper.content_type_for(path)
            statuses[path] = StatusEntry(
                path=path,
                status=status,
                content_type=(
                    tracked.content_type if tracked else ct.name
                ),
                remote_id=tracked.remote_id if tracked else None,
            )
        for path, tracked in state.files.items():
            if path not in statuses:
                statuses[path] = StatusEntry(
                    path=path,
                    status=FileStatus.MISSING,
                    content_type=tracked.content_type,
                    remote_id=tracked.remote_id,
                )

        errors: list[str] = []
        if remote:
            report = await self.session.poll(
                list(self.session.mapper.content_types),
                dry_run=True,
                operation="status",
            )
            for result in report.results:
                if not result.success:
                    errors.append(f"{result.path}: {result.error}")
                    continue
                match result.action:
                    case SyncAction.CONFLICT:
                        status = FileStatus.CONFLICT
                    case SyncAction.PULL if result.path in state.files:
                        status = FileStatus.REMOTE_CHANGED
                    case SyncAction.PULL:
                        status = FileStatus.REMOTE_NEW
                    case _:
                        continue
                statuses[result.path] = StatusEntry(
                    path=result.path,
                    status=status,
                    content_type=result.content_type,
                    remote_id=result.remote_id,
                )

        return StatusReport(
            site=self.session.name,
            site_url=self.session.config.site_url,
            last_sync=state.last_sync,
            remote_checked=remote,
            entries=sorted(statuses.values(), key=lambda e: e.path),
            errors=errors,
        )

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    async def resolve(self, path: str, side: str) -> SyncResult:
        """Settle a conflict on *path*.

        Args:
            path: Path of the conflicting file.
            side: ``"local"`` (push) or ``"remote"`` (overwrite the file).

        Raises:
            ValueError: If the path or side is invalid.
        """
        resolver = create_resolver(side)
        return await resolver.resolve(self.session, self.normalize_path(path))

    async def conflict_diff(self, path: str) -> list[str]:
        """Unified diff between the local file and the remote item.

        Returns an empty list when both sides render identically.

        Raises:
            ValueError: If the path is invalid or not tracked.
            TransportError: If the remote item cannot be fetched.
        """
        rel = self.normalize_path(path)
        state = await run_sync(self.session.store.load)
        tracked = state.get(rel)
        if tracked is None or tracked.remote_id is None:
            raise ValueError(f"{rel} is not tracked")
        item = await run_sync(
            self.session.client.fetch_one,
            tracked.content_type,
            tracked.remote_id,
            executor=self.session.executor,
        )
        remote_text = item_to_text(item, tracked.content_type)
        absolute = self.session.mapper.absolute(rel)
        try:
            local_text, _ = await run_sync(read_file_with_encoding, absolute)
        except OSError:
            local_text = ""
        return list(
            difflib.unified_diff(
                local_text.splitlines(keepends=True),
                remote_text.splitlines(keepends=True),
                fromfile=f"local: {rel}",
                tofile=f"remote: {tracked.content_type} {tracked.remote_id}",
            )
        )
