"""Per-path timers on the asyncio event loop.

``TimerMap`` debounces local changes: scheduling a key that already has a
pending timer cancels it first, so only the last event within the quiet
period fires.  ``SuppressionSet`` hides paths the pull pipeline has just
written from the watcher for a fixed window.

Both must be used from the event loop thread.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class TimerMap:
    """Cancellable, resettable one-shot timers keyed by path.

    When a timer fires its callback is run as a task; callback failures are
    logged, never raised into the loop.
    """

    def __init__(self) -> None:
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()

    def schedule(
        self,
        key: str,
        delay: float,
        callback: Callable[[], Awaitable[None]],
    ) -> None:
        """(Re)start the timer for *key*; *callback* runs after *delay* s."""
        self.cancel(key)
        loop = asyncio.get_running_loop()
        self._handles[key] = loop.call_later(
            delay, self._fire, key, callback
        )

    def _fire(
        self, key: str, callback: Callable[[], Awaitable[None]]
    ) -> None:
        self._handles.pop(key, None)
        task = asyncio.get_running_loop().create_task(
            self._run(key, callback)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _run(
        key: str, callback: Callable[[], Awaitable[None]]
    ) -> None:
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduled task for %s failed", key)

    def pending(self, key: str) -> bool:
        """Return True if *key* has a timer that has not fired yet."""
        return key in self._handles

    def cancel(self, key: str) -> bool:
        """Cancel the timer for *key*.  Returns True if one was pending."""
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        """Cancel every pending timer and every running callback task."""
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        for task in list(self._tasks):
            task.cancel()

    def __len__(self) -> int:
        return len(self._handles)


class SuppressionSet:
    """Paths hidden from the local watcher for a fixed window.

    Args:
        window_ms: How long a suppressed path stays hidden.
    """

    def __init__(self, window_ms: int = 2000) -> None:
        self.window = window_ms / 1000
        self._handles: dict[str, asyncio.TimerHandle] = {}

    def add(self, path: str) -> None:
        """Suppress *path*; re-adding restarts its window."""
        old = self._handles.pop(path, None)
        if old is not None:
            old.cancel()
        loop = asyncio.get_running_loop()
        self._handles[path] = loop.call_later(
            self.window, self._handles.pop, path, None
        )

    def discard(self, path: str) -> None:
        """Lift suppression of *path* immediately."""
        handle = self._handles.pop(path, None)
        if handle is not None:
            handle.cancel()

    def clear(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def __contains__(self, path: object) -> bool:
        return path in self._handles

    def __len__(self) -> int:
        return len(self._handles)
