"""Explicit conflict resolution strategies.

A conflict is never merged and never resolved automatically; it stays
reported until the user picks a side:

- ``LocalWinsResolver``: push the local file over the remote item.
- ``RemoteWinsResolver``: fetch the remote item and overwrite the file.

The ``create_resolver()`` factory maps the CLI side (``"local"`` /
``"remote"``) to a resolver instance.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from .models import SyncAction, SyncResult

if TYPE_CHECKING:
    from .session import SiteSession

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ConflictResolver(Protocol):
    """Protocol that all conflict resolvers must satisfy."""

    async def resolve(self, session: SiteSession, path: str) -> SyncResult:
        """Resolve the conflict on *path* in favour of one side.

        Args:
            session: Session of the site the path belongs to.
            path: Content-root relative path.

        Returns:
            The result of the push or pull that settled the conflict.
        """
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


class LocalWinsResolver:
    """Resolve a conflict in favour of the local file."""

    async def resolve(self, session: SiteSession, path: str) -> SyncResult:
        """Push the local file; an untracked file with an ``id`` updates it."""
        logger.info("Resolving %s: local wins", path)
        return await session.push_path(path, allow_create=False)


class RemoteWinsResolver:
    """Resolve a conflict in favour of the WordPress item."""

    async def resolve(self, session: SiteSession, path: str) -> SyncResult:
        """Fetch the tracked remote item and overwrite the local file."""
        logger.info("Resolving %s: remote wins", path)
        async with session.lock:
            async with session.store.atransaction() as state:
                tracked = state.get(path)
                if tracked is None or tracked.remote_id is None:
                    return SyncResult(
                        path=path,
                        action=SyncAction.PULL,
                        success=False,
                        error=f"{path} is not tracked",
                    )
                return await session.pull_pipeline.pull_by_id(
                    tracked.content_type,
                    tracked.remote_id,
                    state,
                    path=path,
                )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[str, type] = {
    "local": LocalWinsResolver,
    "remote": RemoteWinsResolver,
}


def create_resolver(side: str) -> ConflictResolver:
    """Create a conflict resolver for the winning side.

    Args:
        side: ``"local"`` or ``"remote"``.

    Returns:
        A ``ConflictResolver`` implementation instance.

    Raises:
        ValueError: If the side is not recognised.
    """
    cls = _STRATEGY_MAP.get(side)
    if cls is None:
        raise ValueError(
            f"Unknown conflict side: '{side}'. Valid sides: {sorted(_STRATEGY_MAP.keys())}"
        )
    return cls()  # type: ignore[return-value]
