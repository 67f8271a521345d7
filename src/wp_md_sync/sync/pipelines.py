"""Push and pull pipelines.

Each pipeline applies one decision for one path against a ``SyncState``
that the caller holds open in a transaction.  The state is only mutated
after the remote call or local write succeeded, so a failure leaves the
path exactly as it was and never affects other paths.

Error handling is per-path: transport, codec and file errors become a
failed ``SyncResult`` plus an ``error`` event.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from typing import Any

from ..converters import item_to_text, text_to_payload
from ..core.async_utils import run_sync
from ..core.client import WordPressClient
from ..exceptions import CodecError, NotFoundError, TransportError
from ..file_handler import read_file_async, write_file_async
from ..notifier import Notifier, NullNotifier, event
from .detector import content_digest
from .mapper import PathMapper
from .models import Decision, SyncAction, SyncResult, SyncState, TrackedFile
from .scheduler import SuppressionSet
from .state import utc_now

logger = logging.getLogger(__name__)


class PullPipeline:
    """Write remote content to local files and record it as synced.

    Args:
        site: Site name used in events.
        client: Remote client (for ``pull_item`` by id).
        mapper: Path mapper of the site.
        suppression: Watcher suppression set; paths are added *before*
            they are written.
        notifier: Event sink.
        executor: Pool for remote calls; the loop default when omitted.
    """

    def __init__(
        self,
        site: str,
        client: WordPressClient,
        mapper: PathMapper,
        suppression: SuppressionSet | None = None,
        notifier: Notifier | None = None,
        executor: Executor | None = None,
    ) -> None:
        self.site = site
        self.client = client
        self.mapper = mapper
        self.suppression = suppression
        self.notifier = notifier or NullNotifier()
        self.executor = executor

    async def apply(
        self, decision: Decision, state: SyncState
    ) -> SyncResult:
        """Write ``decision.text`` to ``decision.path`` and track it."""
        path = decision.path
        if self.suppression is not None:
            self.suppression.add(path)
        try:
            await write_file_async(
                self.mapper.content_root, path, decision.text or ""
            )
        except (OSError, ValueError) as exc:
            logger.error("Failed to write %s: %s", path, exc)
            self.notifier.notify(
                event("error", self.site, path, message=str(exc))
            )
            return SyncResult(
                path=path,
                action=SyncAction.PULL,
                success=False,
                content_type=decision.content_type,
                remote_id=decision.remote_id,
                error=str(exc),
            )

        now = utc_now()
        state.put(
            TrackedFile(
                path=path,
                remote_id=decision.remote_id,
                content_type=decision.content_type or "",
                local_digest=decision.remote_digest,
                remote_digest=decision.remote_digest,
                last_sync_at=now,
            )
        )
        state.last_sync = now
        logger.info("Pulled %s", path)
        return SyncResult(
            path=path,
            action=SyncAction.PULL,
            content_type=decision.content_type,
            remote_id=decision.remote_id,
            message=decision.reason,
        )

    async def pull_item(
        self,
        item: dict[str, Any],
        content_type: str,
        state: SyncState,
        path: str | None = None,
    ) -> SyncResult:
        """Render *item* and write it unconditionally (remote wins)."""
        text = item_to_text(item, content_type)
        target = path or self.mapper.path_for_item(item, content_type, state)
        decision = Decision(
            path=target,
            action=SyncAction.PULL,
            content_type=content_type,
            remote_id=item.get("id"),
            text=text,
            remote_digest=content_digest(text),
        )
        return await self.apply(decision, state)

    async def pull_by_id(
        self,
        content_type: str,
        remote_id: int | str,
        state: SyncState,
        path: str | None = None,
    ) -> SyncResult:
        """Fetch one item and write it over its local file."""
        try:
            item = await run_sync(
                self.client.fetch_one,
                content_type,
                remote_id,
                executor=self.executor,
            )
        except TransportError as exc:
            logger.error(
                "Failed to fetch %s %s: %s", content_type, remote_id, exc
            )
            return SyncResult(
                path=path or "",
                action=SyncAction.PULL,
                success=False,
                content_type=content_type,
                remote_id=remote_id,
                error=str(exc),
            )
        return await self.pull_item(item, content_type, state, path=path)


class PushPipeline:
    """Send local files to WordPress and record them as synced.

    Args:
        site: Site name used in events.
        site_url: Site URL, included in ``pushed`` events.
        client: Remote client.
        mapper: Path mapper of the site.
        pull: Pull pipeline used to rewrite a file after a forced create.
        notifier: Event sink.
        executor: Pool for remote calls; the loop default when omitted.
    """

    def __init__(
        self,
        site: str,
        site_url: str,
        client: WordPressClient,
        mapper: PathMapper,
        pull: PullPipeline,
        notifier: Notifier | None = None,
        executor: Executor | None = None,
    ) -> None:
        self.site = site
        self.site_url = site_url
        self.client = client
        self.mapper = mapper
        self.pull = pull
        self.notifier = notifier or NullNotifier()
        self.executor = executor

    def _resolve_type(
        self, path: str, tracked: TrackedFile | None, declared: str | None
    ) -> str:
        if tracked is not None and tracked.content_type:
            return tracked.content_type
        ct = self.mapper.content_type_for(path)
        if ct is not None:
            return ct.name
        if declared:
            return declared
        raise CodecError(f"Cannot determine content type of {path}")

    async def push(
        self,
        path: str,
        state: SyncState,
        *,
        allow_create: bool = True,
        create_fallback: bool = False,
        dry_run: bool = False,
    ) -> SyncResult:
        """Push one local file.

        The tracked remote id (or, for an untracked file, the ``id`` in its
        front matter) selects update; without one the item is created.

        Args:
            path: Content-root relative path.
            state: Open state; updated on success only.
            allow_create: Whether a file without a remote id may be
                created.  The watcher passes ``False``.
            create_fallback: On update ``NotFoundError``, create instead,
                then rewrite the local file from the created item so it
                carries its new id (``force-push``).
            dry_run: Plan only; no remote call, no state change.
        """
        tracked = state.get(path)
        if not dry_run:
            self.notifier.notify(event("pushing", self.site, path))

        try:
            text = await read_file_async(self.mapper.absolute(path))
            payload = text_to_payload(text)
            content_type = self._resolve_type(
                path, tracked, payload.content_type
            )
            ct = self.mapper.content_types.get(content_type)
            if ct is not None and ct.media:
                return SyncResult(
                    path=path,
                    action=SyncAction.ADVISORY,
                    content_type=content_type,
                    remote_id=tracked.remote_id if tracked else None,
                    message="Media metadata is read-only; edit it in WordPress",
                )
            remote_id = (
                tracked.remote_id
                if tracked is not None and tracked.remote_id is not None
                else payload.remote_id
            )

            if remote_id is None and not allow_create:
                return SyncResult(
                    path=path,
                    action=SyncAction.ADVISORY,
                    content_type=content_type,
                    message="Untracked file; create it with wp-md new",
                )

            if dry_run:
                return SyncResult(
                    path=path,
                    action=(
                        SyncAction.PUSH
                        if remote_id is not None
                        else SyncAction.CREATE_REMOTE
                    ),
                    content_type=content_type,
                    remote_id=remote_id,
                    message="dry run",
                )

            created = False
            response: dict[str, Any]
            if remote_id is not None:
                try:
                    response = await run_sync(
                        self.client.update,
                        content_type,
                        remote_id,
                        payload.data,
                        executor=self.executor,
                    )
                except NotFoundError:
                    if not create_fallback:
                        raise
                    logger.info(
                        "%s %s no longer exists, creating %s",
                        content_type,
                        remote_id,
                        path,
                    )
                    response = await run_sync(
                        self.client.create,
                        content_type,
                        payload.data,
                        executor=self.executor,
                    )
                    created = True
            else:
                response = await run_sync(
                    self.client.create,
                    content_type,
                    payload.data,
                    executor=self.executor,
                )
                created = True
        except (TransportError, CodecError, OSError, ValueError) as exc:
            logger.error("Failed to push %s: %s", path, exc)
            self.notifier.notify(
                event("error", self.site, path, message=str(exc))
            )
            return SyncResult(
                path=path,
                action=SyncAction.PUSH,
                success=False,
                content_type=tracked.content_type if tracked else None,
                remote_id=tracked.remote_id if tracked else None,
                error=str(exc),
            )

        if not isinstance(response, dict):
            response = {}
        new_id = response.get("id", remote_id) if created else remote_id
        action = SyncAction.CREATE_REMOTE if created else SyncAction.PUSH

        rewritten = False
        if created and create_fallback and new_id is not None:
            result = await self.pull.pull_by_id(
                content_type, new_id, state, path=path
            )
            rewritten = result.success
            if not rewritten:
                logger.warning(
                    "Created %s (ID: %s) but could not rewrite %s: %s",
                    content_type,
                    new_id,
                    path,
                    result.error,
                )

        if not rewritten:
            digest = content_digest(text)
            now = utc_now()
            state.put(
                TrackedFile(
                    path=path,
                    remote_id=new_id,
                    content_type=content_type,
                    local_digest=digest,
                    remote_digest=digest,
                    last_sync_at=now,
                )
            )
            state.last_sync = now

        logger.info(
            "%s %s (ID: %s)",
            "Created" if created else "Pushed",
            path,
            new_id,
        )
        self.notifier.notify(
            event(
                "pushed",
                self.site,
                path,
                content_type=content_type,
                remote_id=new_id,
                slug=response.get("slug"),
                url=self.site_url,
            )
        )
        return SyncResult(
            path=path,
            action=action,
            content_type=content_type,
            remote_id=new_id,
        )
