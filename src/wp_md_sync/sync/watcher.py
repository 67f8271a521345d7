"""Local file watcher.

A watchdog observer thread reports file system events for the content
root; ``_EventBridge`` hands each one to the event loop with
``call_soon_threadsafe``.  From there ``LocalWatcher``:

1. drops anything that is not a ``*.md`` file under a known folder,
2. drops paths in the suppression set (files the pull pipeline just
   wrote),
3. debounces per path, so a burst of saves becomes one firing after
   ``debounce_ms`` of quiet,
4. hands the event to ``SiteSession.handle_local``.

A move is split into a remove of the source and an add of the target.
Because editors often save by delete + create or by renaming a temp
file, the event kind is re-checked against the file's presence when the
timer fires.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .reconciler import LocalEvent
from .session import SiteSession

logger = logging.getLogger(__name__)

_KINDS = {
    EVENT_TYPE_CREATED: LocalEvent.ADD,
    EVENT_TYPE_MODIFIED: LocalEvent.CHANGE,
    EVENT_TYPE_DELETED: LocalEvent.REMOVE,
}


def _as_str(path: str | bytes) -> str:
    return os.fsdecode(path)


class _EventBridge(FileSystemEventHandler):
    """Forward watchdog events from the observer thread to the loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, watcher: LocalWatcher):
        super().__init__()
        self._loop = loop
        self._watcher = watcher

    def _post(self, kind: LocalEvent, path: str | bytes) -> None:
        self._loop.call_soon_threadsafe(
            self._watcher.on_event, kind, _as_str(path)
        )

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if event.event_type == EVENT_TYPE_MOVED:
            self._post(LocalEvent.REMOVE, event.src_path)
            self._post(LocalEvent.ADD, event.dest_path)
            return
        kind = _KINDS.get(event.event_type)
        if kind is not None:
            self._post(kind, event.src_path)


class LocalWatcher:
    """Watch one site's content root and feed changes to its session.

    Args:
        session: The site session.
        debounce_ms: Quiet period per path before an event is handled.
    """

    def __init__(self, session: SiteSession, debounce_ms: int = 1000) -> None:
        self.session = session
        self.debounce = debounce_ms / 1000
        self._observer: Observer | None = None

    def start(self) -> None:
        """Start the observer thread.  Must be called from the event loop."""
        root = self.session.content_root
        root.mkdir(parents=True, exist_ok=True)
        loop = asyncio.get_running_loop()
        observer = Observer()
        observer.schedule(_EventBridge(loop, self), str(root), recursive=True)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info("[%s] Watching %s", self.session.name, root)

    def stop(self) -> None:
        """Stop the observer and cancel every pending debounce timer."""
        if self._observer is not None:
            self._observer.stop()
            self._observer = None
        self.session.timers.cancel_all()

    # ------------------------------------------------------------------
    # Event handling (event loop thread)
    # ------------------------------------------------------------------

    def on_event(self, kind: LocalEvent, abs_path: str) -> None:
        """Filter, suppress and debounce one file event."""
        rel = self.session.mapper.relative(Path(abs_path))
        if rel is None or self.session.mapper.content_type_for(rel) is None:
            return
        if rel in self.session.suppression:
            logger.debug("Suppressed %s event for %s", kind.value, rel)
            return
        self.session.timers.schedule(
            rel, self.debounce, lambda: self._fire(rel, kind)
        )

    async def _fire(self, rel: str, kind: LocalEvent) -> None:
        if rel in self.session.suppression:
            logger.debug("Suppressed debounced %s for %s", kind.value, rel)
            return
        exists = self.session.mapper.absolute(rel).is_file()
        if kind == LocalEvent.REMOVE and exists:
            kind = LocalEvent.CHANGE
        elif kind != LocalEvent.REMOVE and not exists:
            kind = LocalEvent.REMOVE
        await self.session.handle_local(rel, kind)
