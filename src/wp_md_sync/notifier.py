"""Sync event notification.

The pipelines report what they do as ``SyncEvent`` objects.  Delivery is
best-effort and at-most-once: a sink that fails is logged and skipped,
it never affects a sync.

Sinks:

- ``LoggingNotifier`` -- one log line per event.
- ``JsonLinesNotifier`` -- appends one JSON object per line to a file for
  other processes to tail.
- ``MultiNotifier`` -- forwards to several sinks.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

EventType = Literal["connected", "status", "pushing", "pushed", "error"]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncEvent(BaseModel):
    """One notification.

    Attributes:
        type: Event kind.
        site: Site name.
        file: Content-root relative path, when the event concerns a file.
        timestamp: ISO 8601 UTC time the event was created.
        content_type: WordPress post type (``pushed``).
        remote_id: Remote item id (``pushed``).
        slug: Remote slug (``pushed``).
        url: Site URL (``pushed``, ``connected``).
        message: Error text (``error``) or status text (``status``).
    """

    type: EventType
    site: str
    file: str | None = None
    timestamp: str = Field(default_factory=_now)
    content_type: str | None = None
    remote_id: int | str | None = None
    slug: str | None = None
    url: str | None = None
    message: str | None = None

    model_config = {"frozen": True}

    def to_json(self) -> str:
        return json.dumps(
            self.model_dump(mode="json", exclude_none=True), default=str
        )


class Notifier(Protocol):
    """Protocol that all event sinks satisfy."""

    def notify(self, event: SyncEvent) -> None:
        """Deliver *event*; must not raise."""
        ...  # pragma: no cover


class NullNotifier:
    """Discard every event."""

    def notify(self, event: SyncEvent) -> None:
        return None


class LoggingNotifier:
    """Log each event at INFO (``error`` events at WARNING)."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def notify(self, event: SyncEvent) -> None:
        level = logging.WARNING if event.type == "error" else logging.INFO
        detail = event.message or ""
        if event.remote_id is not None:
            detail = f"(ID: {event.remote_id}) {detail}".strip()
        self._log.log(
            level,
            "[%s] %s %s %s",
            event.site,
            event.type,
            event.file or "",
            detail,
        )


class JsonLinesNotifier:
    """Append events as JSON lines to *path*."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def notify(self, event: SyncEvent) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as fh:
                fh.write(event.to_json() + "\n")
        except OSError as exc:
            logger.warning("Cannot write event to %s: %s", self.path, exc)


class MultiNotifier:
    """Forward each event to every wrapped sink."""

    def __init__(self, *sinks: Notifier) -> None:
        self.sinks = list(sinks)

    def notify(self, event: SyncEvent) -> None:
        for sink in self.sinks:
            try:
                sink.notify(event)
            except Exception:
                logger.exception(
                    "Notifier %s failed", type(sink).__name__
                )


def event(
    type: EventType, site: str, file: str | None = None, **fields: Any
) -> SyncEvent:
    """Shorthand constructor used by the pipelines."""
    return SyncEvent(type=type, site=site, file=file, **fields)
