"""Per-site sync session.

A ``SiteSession`` owns everything one site needs: its remote client,
state store, path mapper, reconciler, pipelines, debounce timers,
suppression set, notifier and a lock.  Sites never share any of it, so
``watch --all`` can run sessions side by side.

Every reconciliation operation (one push of a path, one poll of one
content type including its remote listing, one untrack) runs under the
site lock and performs a single state transaction.  A stale listing can
therefore never overwrite a file that was pushed while it was fetched.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

from ..config import SiteConfig
from ..config_schema import SyncSection
from ..content_types import ContentType
from ..converters import item_to_text
from ..core.async_utils import DaemonThreadPool, run_sync, run_sync_limited
from ..core.client import WordPressClient
from ..exceptions import CodecError, TransportError
from ..notifier import LoggingNotifier, Notifier, event
from .detector import content_digest, read_local_digest
from .mapper import PathMapper
from .models import (
    Decision,
    SyncAction,
    SyncReport,
    SyncResult,
    SyncState,
)
from .pipelines import PullPipeline, PushPipeline
from .reconciler import LocalEvent, Reconciler
from .scheduler import SuppressionSet, TimerMap
from .state import StateStore

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SiteSession:
    """All sync machinery for one site.

    Args:
        config: Site connection settings.
        sync: Timing settings; defaults apply when omitted.
        client: Remote client; built from *config* when omitted.
        notifier: Event sink; defaults to logging.
        content_types: Path-prefix table override.
    """

    def __init__(
        self,
        config: SiteConfig,
        sync: SyncSection | None = None,
        client: WordPressClient | None = None,
        notifier: Notifier | None = None,
        content_types: dict[str, ContentType] | None = None,
    ) -> None:
        self.config = config
        self.name = config.name
        self.settings = sync or SyncSection()
        self.client = client or WordPressClient(config)
        self.notifier = notifier or LoggingNotifier()
        self.store = StateStore(
            config.site_dir, legacy_prefix=config.content_dir
        )
        self.mapper = PathMapper(config.content_root, content_types)
        self.reconciler = Reconciler()
        self.timers = TimerMap()
        self.suppression = SuppressionSet(self.settings.suppression_ms)
        self.lock = asyncio.Lock()
        self.semaphore = asyncio.Semaphore(
            self.settings.max_parallel_requests
        )
        self.executor = DaemonThreadPool(
            self.settings.max_parallel_requests,
            thread_name_prefix=f"wp-md-{self.name}",
        )
        self.pull_pipeline = PullPipeline(
            self.name,
            self.client,
            self.mapper,
            suppression=self.suppression,
            notifier=self.notifier,
            executor=self.executor,
        )
        self.push_pipeline = PushPipeline(
            self.name,
            config.site_url,
            self.client,
            self.mapper,
            pull=self.pull_pipeline,
            notifier=self.notifier,
            executor=self.executor,
        )

    @property
    def content_root(self) -> Path:
        return self.mapper.content_root

    # ------------------------------------------------------------------
    # Local side
    # ------------------------------------------------------------------

    async def push_path(
        self,
        path: str,
        *,
        allow_create: bool = True,
        create_fallback: bool = False,
        dry_run: bool = False,
    ) -> SyncResult:
        """Push one path in its own locked transaction."""
        async with self.lock:
            async with self.store.atransaction() as state:
                return await self.push_pipeline.push(
                    path,
                    state,
                    allow_create=allow_create,
                    create_fallback=create_fallback,
                    dry_run=dry_run,
                )

    async def handle_local(
        self, path: str, kind: LocalEvent
    ) -> SyncResult:
        """Reconcile one (debounced) local file event and act on it."""
        ct = self.mapper.content_type_for(path)
        async with self.lock:
            async with self.store.atransaction() as state:
                decision = self.reconciler.decide_local(
                    path,
                    kind,
                    state.get(path),
                    content_type=ct.name if ct else None,
                )
                match decision.action:
                    case SyncAction.PUSH:
                        return await self.push_pipeline.push(
                            path, state, allow_create=False
                        )
                    case SyncAction.UNTRACK:
                        state.remove(path)
                        logger.warning(
                            "[%s] Deleted: %s. %s",
                            self.name,
                            path,
                            decision.reason,
                        )
                    case SyncAction.ADVISORY:
                        logger.warning(
                            "[%s] New file: %s. %s",
                            self.name,
                            path,
                            decision.reason,
                        )
                    case _:
                        logger.debug("[%s] Ignoring %s", self.name, path)
                return SyncResult(
                    path=path,
                    action=decision.action,
                    content_type=decision.content_type,
                    remote_id=decision.remote_id,
                    message=decision.reason,
                )

    # ------------------------------------------------------------------
    # Remote side
    # ------------------------------------------------------------------

    def _decide_items(
        self,
        items: list[dict],
        content_type: str,
        state: SyncState,
        force: bool,
    ) -> list[Decision | SyncResult]:
        """Render, digest and reconcile every item of one type.

        Blocking (reads local files); run it through ``run_sync``.
        """
        out: list[Decision | SyncResult] = []
        claimed: set[str] = set()
        for item in items:
            path = self.mapper.path_for_item(
                item, content_type, state, claimed=claimed
            )
            claimed.add(path)
            try:
                text = item_to_text(item, content_type)
                absolute = self.mapper.absolute(path)
            except (CodecError, ValueError) as exc:
                logger.error("[%s] Skipping %s: %s", self.name, path, exc)
                out.append(
                    SyncResult(
                        path=path,
                        action=SyncAction.PULL,
                        success=False,
                        content_type=content_type,
                        remote_id=item.get("id"),
                        error=str(exc),
                    )
                )
                continue
            out.append(
                self.reconciler.decide_remote(
                    path,
                    content_type,
                    item.get("id"),
                    text,
                    content_digest(text),
                    state.get(path),
                    lambda p=absolute: read_local_digest(p),
                    force=force,
                )
            )
        return out

    async def poll_type(
        self,
        content_type: str,
        force: bool = False,
        dry_run: bool = False,
    ) -> list[SyncResult]:
        """List one content type remotely and reconcile every item.

        A remote failure yields a single failed result for the type's
        folder; it never raises.
        """
        folder = self.mapper.content_types[content_type].folder
        async with self.lock:
            try:
                items = await run_sync_limited(
                    self.semaphore,
                    self.client.list_all,
                    content_type,
                    executor=self.executor,
                )
            except TransportError as exc:
                logger.error(
                    "[%s] Failed to list %s: %s", self.name, content_type, exc
                )
                return [
                    SyncResult(
                        path=folder,
                        action=SyncAction.PULL,
                        success=False,
                        content_type=content_type,
                        error=str(exc),
                    )
                ]

            results: list[SyncResult] = []
            async with self.store.atransaction() as state:
                decided = await run_sync(
                    self._decide_items, items, content_type, state, force
                )
                for outcome in decided:
                    if isinstance(outcome, SyncResult):
                        results.append(outcome)
                        continue
                    results.append(
                        await self._apply_remote(outcome, state, dry_run)
                    )
            return results

    async def _apply_remote(
        self, decision: Decision, state: SyncState, dry_run: bool
    ) -> SyncResult:
        match decision.action:
            case SyncAction.PULL if not dry_run:
                return await self.pull_pipeline.apply(decision, state)
            case SyncAction.CONFLICT:
                logger.warning(
                    "[%s] Conflict: %s", self.name, decision.path
                )
        return SyncResult(
            path=decision.path,
            action=decision.action,
            content_type=decision.content_type,
            remote_id=decision.remote_id,
            message=decision.reason,
        )

    async def poll(
        self,
        types: list[str] | None = None,
        force: bool = False,
        dry_run: bool = False,
        operation: str = "poll",
    ) -> SyncReport:
        """Poll the given content types one after another.

        Args:
            types: Type names; defaults to the configured ``poll_types``.
            force: Remote wins over local edits.
            dry_run: Decide only; write nothing.
            operation: Label for the report.
        """
        started_at = _now()
        results: list[SyncResult] = []
        for content_type in types or self.settings.poll_types:
            results.extend(
                await self.poll_type(content_type, force, dry_run)
            )
        report = SyncReport(
            site=self.name,
            operation=operation,
            dry_run=dry_run,
            results=results,
            started_at=started_at,
            completed_at=_now(),
        )
        if report.pulled or report.conflicts or report.errors:
            self.notifier.notify(
                event(
                    "status",
                    self.name,
                    message=(
                        f"pulled={len(report.pulled)} "
                        f"conflicts={len(report.conflicts)} "
                        f"errors={len(report.errors)}"
                    ),
                )
            )
        return report

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> str:
        """Validate the connection and announce it.

        Raises:
            TransportError: If the site is unreachable or rejects the
                credentials.
        """
        user = await run_sync(
            self.client.validate_connection, executor=self.executor
        )
        self.notifier.notify(
            event("connected", self.name, url=self.config.site_url)
        )
        return user

    def close(self) -> None:
        """Cancel pending timers and abandon in-flight remote calls."""
        self.timers.cancel_all()
        self.suppression.clear()
        self.executor.shutdown(wait=False, cancel_futures=True)
