"""Sync state persistence layer.

Manages the JSON state file that tracks per-path sync metadata for one
site (``<site_dir>/.wpmd-state.json``)::

    {
      "files": {
        "post-types/page/about.md": {
          "id": 7, "type": "page",
          "localDigest": "...", "remoteDigest": "...",
          "lastSync": "2024-05-01T10:00:00+00:00"
        }
      },
      "lastSync": "2024-05-01T10:00:00+00:00"
    }

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Transactions** -- every mutation goes through ``transaction()`` (or
  ``atransaction()`` from async code): load, mutate, save once.  Nothing
  is written when the state did not change.
* **Corruption is fatal** -- a file that exists but cannot be parsed
  raises ``StateStoreError`` instead of being silently reset, which would
  lose every tracked id.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from ..core.async_utils import run_sync
from ..exceptions import StateStoreError
from ..file_handler import atomic_write_text
from .models import SyncState

logger = logging.getLogger(__name__)

STATE_FILE = ".wpmd-state.json"


def utc_now() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


class StateStore:
    """Load and save the sync state of one site.

    Args:
        site_dir: Directory holding the state file (the site directory,
            not the content root).
        filename: State file name.
        legacy_prefix: Content dir name that older state files put in
            front of every key (``content/post-types/...``).  Such keys
            are rewritten relative to the content root on load.
    """

    def __init__(
        self,
        site_dir: Path,
        filename: str = STATE_FILE,
        legacy_prefix: str | None = None,
    ) -> None:
        self._path = Path(site_dir) / filename
        self._legacy_prefix = (
            legacy_prefix.strip("/") + "/" if legacy_prefix else None
        )

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> SyncState:
        """Load sync state from disk.

        Returns:
            The persisted state.  If the file does not exist an empty
            state is returned.

        Raises:
            StateStoreError: If the file exists but is not a valid state
                document.
        """
        if not self._path.exists():
            return SyncState()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StateStoreError(
                f"Cannot read sync state {self._path}: {exc}"
            ) from exc
        if not isinstance(raw, dict):
            raise StateStoreError(
                f"Corrupt sync state {self._path}: expected a JSON object"
            )
        files = raw.get("files")
        if self._legacy_prefix and isinstance(files, dict):
            raw["files"] = self._strip_legacy_prefix(files)
        try:
            return SyncState.model_validate(raw)
        except ValidationError as exc:
            raise StateStoreError(
                f"Corrupt sync state {self._path}: {exc}"
            ) from exc

    def _strip_legacy_prefix(self, files: dict) -> dict:
        prefix = self._legacy_prefix or ""
        migrated: dict = {}
        for key, entry in files.items():
            new_key = key
            if key.startswith(prefix) and key[len(prefix) :] not in files:
                new_key = key[len(prefix) :]
                logger.debug("Migrating state key %s -> %s", key, new_key)
            migrated[new_key] = entry
        return migrated

    def save(self, state: SyncState) -> None:
        """Persist sync state to disk atomically.

        A failed write leaves the previous file intact.
        """
        atomic_write_text(
            self._path, json.dumps(state.to_json_dict(), indent=2) + "\n"
        )
        logger.debug(
            "Saved sync state (%d files) to %s",
            len(state.files),
            self._path,
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[SyncState]:
        """Yield the loaded state and save it on clean exit if it changed.

        An exception inside the block discards all mutations.
        """
        state = self.load()
        before = state.to_json_dict()
        yield state
        if state.to_json_dict() != before:
            self.save(state)

    @asynccontextmanager
    async def atransaction(self) -> AsyncIterator[SyncState]:
        """Async variant of ``transaction()``; file I/O runs off-loop."""
        state = await run_sync(self.load)
        before = state.to_json_dict()
        yield state
        if state.to_json_dict() != before:
            await run_sync(self.save, state)
