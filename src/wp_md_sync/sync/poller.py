"""Remote poller.

Polls one site every ``interval`` seconds.  The first poll runs after a
short start delay so the local watcher is up before the first pulls are
written.  Each tick polls the configured content types one after another;
a failing type is logged and reported and the tick goes on with the next.
"""

from __future__ import annotations

import asyncio
import logging

from .models import SyncReport
from .session import SiteSession

logger = logging.getLogger(__name__)


class RemotePoller:
    """Periodic remote polling for one site.

    Args:
        session: The site session.
        interval: Seconds between ticks; 0 disables polling.
        start_delay: Seconds before the first tick.
        types: Content types to poll; defaults to the session's
            ``poll_types``.
    """

    def __init__(
        self,
        session: SiteSession,
        interval: float,
        start_delay: float = 2.0,
        types: list[str] | None = None,
    ) -> None:
        self.session = session
        self.interval = interval
        self.start_delay = start_delay
        self.types = types
        self._task: asyncio.Task | None = None

    @property
    def enabled(self) -> bool:
        return self.interval > 0

    async def tick(self) -> SyncReport:
        """Run one poll over all configured types."""
        report = await self.session.poll(self.types)
        if report.pulled or report.conflicts or report.errors:
            logger.info(
                "[%s] Poll: %d pulled, %d conflicts, %d errors",
                self.session.name,
                len(report.pulled),
                len(report.conflicts),
                len(report.errors),
            )
        return report

    async def run(self) -> None:
        """Poll forever (until cancelled)."""
        if not self.enabled:
            return
        await asyncio.sleep(self.start_delay)
        while True:
            await self.tick()
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task | None:
        """Start polling in a background task; ``None`` when disabled."""
        if not self.enabled:
            logger.info("[%s] Remote polling disabled", self.session.name)
            return None
        self._task = asyncio.get_running_loop().create_task(self.run())
        self._task.add_done_callback(self._on_done)
        logger.info(
            "[%s] Polling every %ss", self.session.name, self.interval
        )
        return self._task

    def _on_done(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "[%s] Polling stopped: %s",
                self.session.name,
                task.exception(),
            )

    def stop(self) -> None:
        """Cancel the polling task without waiting for it."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
