"""Pydantic models for the sync engine.

Defines the data contracts shared by all sync modules:

- ``SyncAction``: Enum of reconciliation outcomes.
- ``TrackedFile``: Last-synced state of one local path.
- ``SyncState``: The persisted map of tracked files.
- ``Decision``: What the reconciler wants done for one observation.
- ``SyncResult``: Outcome of handling one path.
- ``SyncReport``: Aggregate results for a batch or a poll tick.
- ``StatusReport``: Per-path classification for ``wp-md status``.

``TrackedFile`` is frozen; ``SyncState`` is mutable so a transaction can
replace entries and persist once at the end.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator


class SyncAction(str, Enum):
    """Possible reconciliation outcomes for one path."""

    IGNORE = "ignore"
    PULL = "pull"
    PUSH = "push"
    CREATE_REMOTE = "create_remote"
    CONFLICT = "conflict"
    UNTRACK = "untrack"
    ADVISORY = "advisory"


class TrackedFile(BaseModel):
    """Reconciliation state for one local path.

    On disk the entry is keyed by its path and uses the short camelCase
    keys ``id``, ``type``, ``localDigest``, ``remoteDigest`` and
    ``lastSync``.  Older state files wrote ``localHash``/``remoteHash``;
    both spellings are accepted when loading.

    Attributes:
        path: POSIX path relative to the site content root.
        remote_id: WordPress item id, ``None`` until created remotely.
            Template ids are strings (``theme//slug``).
        content_type: WordPress post type of the item.
        local_digest: Digest of the file content at last sync.
        remote_digest: Digest of the remote rendering at last sync.
        last_sync_at: ISO 8601 timestamp of the last successful sync.
    """

    path: str = Field(exclude=True)
    remote_id: int | str | None = Field(
        default=None,
        validation_alias=AliasChoices("id", "remote_id"),
        serialization_alias="id",
    )
    content_type: str = Field(
        validation_alias=AliasChoices("type", "content_type"),
        serialization_alias="type",
    )
    local_digest: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "localDigest", "localHash", "local_digest"
        ),
        serialization_alias="localDigest",
    )
    remote_digest: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "remoteDigest", "remoteHash", "remote_digest"
        ),
        serialization_alias="remoteDigest",
    )
    last_sync_at: str | None = Field(
        default=None,
        validation_alias=AliasChoices("lastSync", "last_sync_at"),
        serialization_alias="lastSync",
    )

    model_config = {"frozen": True, "extra": "ignore"}


class SyncState(BaseModel):
    """All tracked files of one site plus the global last-sync time."""

    files: dict[str, TrackedFile] = {}
    last_sync: str | None = Field(
        default=None,
        validation_alias=AliasChoices("lastSync", "last_sync"),
        serialization_alias="lastSync",
    )

    model_config = {"extra": "ignore"}

    @field_validator("files", mode="before")
    @classmethod
    def _inject_paths(cls, value: Any) -> Any:
        # Entries are stored without their own path; the map key is it.
        if not isinstance(value, dict):
            return value
        return {
            key: (
                {**entry, "path": key}
                if isinstance(entry, dict)
                else entry
            )
            for key, entry in value.items()
        }

    def get(self, path: str) -> TrackedFile | None:
        """Return the tracked entry for *path*, or ``None``."""
        return self.files.get(path)

    def put(self, entry: TrackedFile) -> None:
        """Insert or replace the entry keyed by ``entry.path``."""
        self.files[entry.path] = entry

    def remove(self, path: str) -> TrackedFile | None:
        """Drop *path* from the state.  No-op if it is not tracked."""
        return self.files.pop(path, None)

    def find_by_remote(
        self, content_type: str, remote_id: int | str
    ) -> TrackedFile | None:
        """Return the entry tracking remote item *remote_id*, if any."""
        for entry in self.files.values():
            if (
                entry.content_type == content_type
                and entry.remote_id is not None
                and str(entry.remote_id) == str(remote_id)
            ):
                return entry
        return None

    def to_json_dict(self) -> dict:
        """Return the on-disk JSON representation."""
        return self.model_dump(mode="json", by_alias=True)


class Decision(BaseModel):
    """Reconciler output for one observation.

    Attributes:
        path: Local path the decision applies to.
        action: What to do.
        content_type: WordPress post type.
        remote_id: Remote item id when known.
        text: Rendered remote text to write (``PULL`` only).
        remote_digest: Digest of the observed remote rendering.
        reason: Human-readable explanation, shown for advisories and
            conflicts.
    """

    path: str
    action: SyncAction
    content_type: str | None = None
    remote_id: int | str | None = None
    text: str | None = None
    remote_digest: str | None = None
    reason: str | None = None

    model_config = {"frozen": True}


class SyncResult(BaseModel):
    """Result of handling one path.

    Attributes:
        path: Local path relative to the content root.
        action: Action that was performed (or planned, in dry-run mode).
        success: Whether the action succeeded.
        content_type: WordPress post type, when known.
        remote_id: Remote item id, when known.
        message: Advisory or conflict explanation.
        error: Error message if the action failed.
    """

    path: str
    action: SyncAction
    success: bool = True
    content_type: str | None = None
    remote_id: int | str | None = None
    message: str | None = None
    error: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for a batch command or a single poll tick.

    Attributes:
        site: Name of the site the report belongs to.
        operation: ``pull``, ``push``, ``poll``, ``force-push`` ...
        dry_run: Whether this was a dry-run (no changes applied).
        results: Individual results, in processing order.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run finished.
    """

    site: str
    operation: str
    dry_run: bool = False
    results: list[SyncResult] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    def _with_action(self, action: SyncAction) -> list[SyncResult]:
        return [
            r for r in self.results if r.action == action and r.success
        ]

    @property
    def pulled(self) -> list[SyncResult]:
        """Successful pulls."""
        return self._with_action(SyncAction.PULL)

    @property
    def pushed(self) -> list[SyncResult]:
        """Successful updates of existing remote items."""
        return self._with_action(SyncAction.PUSH)

    @property
    def created_remote(self) -> list[SyncResult]:
        """Successful remote creations."""
        return self._with_action(SyncAction.CREATE_REMOTE)

    @property
    def ignored(self) -> list[SyncResult]:
        """Paths that needed no action."""
        return self._with_action(SyncAction.IGNORE)

    @property
    def conflicts(self) -> list[SyncResult]:
        """Paths changed on both sides since the last sync."""
        return [
            r for r in self.results if r.action == SyncAction.CONFLICT
        ]

    @property
    def advisories(self) -> list[SyncResult]:
        """Paths that need a manual step from the user."""
        return self._with_action(SyncAction.ADVISORY)

    @property
    def untracked(self) -> list[SyncResult]:
        """Paths dropped from tracking after a local delete."""
        return self._with_action(SyncAction.UNTRACK)

    @property
    def errors(self) -> list[SyncResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def ok(self) -> bool:
        """``True`` when nothing failed."""
        return not self.errors

    def summary(self) -> str:
        """Format a human-readable summary of the run.

        Returns:
            Multi-line summary string with counts by action.
        """
        lines = [
            f"{self.operation.capitalize()} report for site '{self.site}'"
            + (" (dry run)" if self.dry_run else ""),
            f"  Pulled:         {len(self.pulled)}",
            f"  Pushed:         {len(self.pushed)}",
            f"  Created remote: {len(self.created_remote)}",
            f"  Unchanged:      {len(self.ignored)}",
            f"  Conflicts:      {len(self.conflicts)}",
            f"  Advisories:     {len(self.advisories)}",
            f"  Errors:         {len(self.errors)}",
            f"  Total:          {len(self.results)}",
        ]
        return "\n".join(lines)


class FileStatus(str, Enum):
    """Sync status of one path, as shown by ``wp-md status``."""

    SYNCED = "synced"
    MODIFIED = "modified"
    NEW_LOCAL = "new_local"
    MISSING = "missing"
    REMOTE_CHANGED = "remote_changed"
    REMOTE_NEW = "remote_new"
    CONFLICT = "conflict"


class StatusEntry(BaseModel):
    """Status of one path."""

    path: str
    status: FileStatus
    content_type: str | None = None
    remote_id: int | str | None = None

    model_config = {"frozen": True}


class StatusReport(BaseModel):
    """Result of ``wp-md status`` for one site.

    Attributes:
        site: Site name.
        site_url: WordPress URL.
        last_sync: Global last-sync timestamp from the state file.
        remote_checked: Whether the remote side was polled.
        entries: One entry per local or tracked path.
        errors: Per-type remote errors (``--remote`` only).
    """

    site: str
    site_url: str
    last_sync: str | None = None
    remote_checked: bool = False
    entries: list[StatusEntry] = []
    errors: list[str] = []

    model_config = {"frozen": True}

    def with_status(self, status: FileStatus) -> list[StatusEntry]:
        return [e for e in self.entries if e.status == status]

    @property
    def in_sync(self) -> bool:
        """``True`` when every entry is synced and nothing failed."""
        return not self.errors and all(
            e.status == FileStatus.SYNCED for e in self.entries
        )
