"""Bidirectional WordPress <-> Markdown sync engine.

Keeps a site's local content tree and its WordPress content consistent in
both directions without a central server.

Architecture
------------
Every synced file has a ``TrackedFile`` entry recording the digest of its
content on each side at the last successful sync.  An observation on one
side (a local file event, a remote item seen by a poll) is compared with
that record by the ``Reconciler``, which decides whether the change came
from the local side, the remote side, both (conflict) or neither.
Conflicts are detected and reported, never merged.

Modules:

- ``models``     -- ``SyncAction``, ``TrackedFile``, ``SyncState``,
  ``Decision``, ``SyncResult``, ``SyncReport``, ``StatusReport``.
- ``state``      -- ``StateStore``: atomic JSON persistence, transactions.
- ``detector``   -- content digests.
- ``mapper``     -- ``PathMapper``: path prefix <-> content type.
- ``reconciler`` -- ``Reconciler``: the decision tables.
- ``pipelines``  -- ``PushPipeline`` / ``PullPipeline``.
- ``scheduler``  -- per-path debounce timers and the suppression set.
- ``session``    -- ``SiteSession``: all machinery of one site.
- ``watcher``    -- ``LocalWatcher`` (watchdog).
- ``poller``     -- ``RemotePoller``.
- ``resolver``   -- explicit conflict resolution (local / remote wins).
- ``engine``     -- ``SyncEngine``: one-shot CLI batches.
- ``reporter``   -- human-readable and JSON report formatting.

Usage example
-------------
::

    from wp_md_sync.config import load_site_config
    from wp_md_sync.sync import SiteSession, SyncEngine, format_sync_report

    session = SiteSession(load_site_config("./mysite"))
    engine = SyncEngine(session)

    report = await engine.pull()
    print(format_sync_report(report))
"""

from .engine import SyncEngine
from .mapper import PathMapper
from .models import (
    FileStatus,
    StatusReport,
    SyncAction,
    SyncReport,
    SyncResult,
    SyncState,
    TrackedFile,
)
from .poller import RemotePoller
from .reconciler import LocalEvent, Reconciler
from .reporter import (
    format_status,
    format_sync_report,
    report_to_json,
    status_to_json,
)
from .session import SiteSession
from .state import StateStore
from .watcher import LocalWatcher

__all__ = [
    "FileStatus",
    "LocalEvent",
    "LocalWatcher",
    "PathMapper",
    "Reconciler",
    "RemotePoller",
    "SiteSession",
    "StateStore",
    "StatusReport",
    "SyncAction",
    "SyncEngine",
    "SyncReport",
    "SyncResult",
    "SyncState",
    "TrackedFile",
    "format_status",
    "format_sync_report",
    "report_to_json",
    "status_to_json",
]
