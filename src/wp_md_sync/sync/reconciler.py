"""Reconciliation decisions.

The ``Reconciler`` compares an observation (a remote item seen by the
poller, or a local file event seen by the watcher) with the last-synced
``TrackedFile`` and decides what should happen.  It performs no I/O of its
own; the local digest is supplied lazily so the file is only read when the
remote side actually changed.

Remote observations:

============  ==================  ==================  ===========
tracked?      remote vs recorded  local vs recorded   decision
============  ==================  ==================  ===========
no            --                  --                  PULL
yes           equal               --                  IGNORE
yes           different           equal               PULL
yes           different           different           CONFLICT
yes           different           unreadable          PULL
============  ==================  ==================  ===========

Local observations: a change to a tracked file is pushed, an untracked
file gets an advisory, a removed tracked file is untracked.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from .detector import digests_match
from .models import Decision, SyncAction, TrackedFile

logger = logging.getLogger(__name__)

NEW_FILE_ADVISORY = 'Create via CLI: wp-md new <type> "Title"'
DELETED_ADVISORY = "Content still exists in WordPress. Run: wp-md pull"
CONFLICT_REASON = (
    "Changed locally and in WordPress since the last sync. "
    "Resolve with: wp-md resolve {path} --local|--remote"
)


class LocalEvent(str, Enum):
    """Kinds of local file events, after move splitting."""

    ADD = "add"
    CHANGE = "change"
    REMOVE = "remove"


class Reconciler:
    """Decide pull/push/conflict/ignore for one observation at a time."""

    def decide_remote(
        self,
        path: str,
        content_type: str,
        remote_id: int | str | None,
        remote_text: str,
        remote_digest: str,
        tracked: TrackedFile | None,
        local_digest: Callable[[], str | None],
        force: bool = False,
    ) -> Decision:
        """Decide what to do about a remote item seen by the poller.

        Args:
            path: Local path the item maps to.
            content_type: Post type of the item.
            remote_id: Item id.
            remote_text: Item rendered through the codec.
            remote_digest: Digest of *remote_text*.
            tracked: Current state entry for *path*, if any.
            local_digest: Returns the digest of the local file, or
                ``None`` if it cannot be read.  Only called when the
                remote digest differs from the recorded one.
            force: Remote wins over local edits (``pull --force``).
        """

        def pull(reason: str | None = None) -> Decision:
            return Decision(
                path=path,
                action=SyncAction.PULL,
                content_type=content_type,
                remote_id=remote_id,
                text=remote_text,
                remote_digest=remote_digest,
                reason=reason,
            )

        if tracked is None:
            return pull("new remote item")

        if digests_match(remote_digest, tracked.remote_digest):
            return Decision(
                path=path,
                action=SyncAction.IGNORE,
                content_type=content_type,
                remote_id=remote_id,
                remote_digest=remote_digest,
            )

        observed_local = local_digest()
        if observed_local is None:
            return pull("local file missing")
        if digests_match(observed_local, tracked.local_digest):
            return pull()
        if force:
            logger.info("Overwriting local edits to %s (forced)", path)
            return pull("forced over local edits")

        return Decision(
            path=path,
            action=SyncAction.CONFLICT,
            content_type=content_type,
            remote_id=remote_id,
            remote_digest=remote_digest,
            reason=CONFLICT_REASON.format(path=path),
        )

    def decide_local(
        self,
        path: str,
        kind: LocalEvent,
        tracked: TrackedFile | None,
        content_type: str | None = None,
    ) -> Decision:
        """Decide what to do about a local file event.

        An ``ADD`` of a tracked path is treated as a change (an editor
        that saves by delete + create).  Untracked files are never pushed
        from here; creating remote content takes an explicit command.
        """
        ct = tracked.content_type if tracked is not None else content_type
        remote_id = tracked.remote_id if tracked is not None else None

        match kind, tracked is not None:
            case (LocalEvent.CHANGE | LocalEvent.ADD), True:
                action, reason = SyncAction.PUSH, None
            case (LocalEvent.CHANGE | LocalEvent.ADD), False:
                action, reason = SyncAction.ADVISORY, NEW_FILE_ADVISORY
            case LocalEvent.REMOVE, True:
                action, reason = SyncAction.UNTRACK, DELETED_ADVISORY
            case _:
                action, reason = SyncAction.IGNORE, None

        return Decision(
            path=path,
            action=action,
            content_type=ct,
            remote_id=remote_id,
            reason=reason,
        )
