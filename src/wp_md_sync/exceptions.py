"""Exception types shared across wp-md-sync.

Convention:
- ``TransportError`` / ``NotFoundError`` -- raised by the remote client.
  Caught per item or per content type; they never abort a batch.
- ``CodecError`` -- a local file cannot be turned into a remote payload.
  The file is excluded from the current run.
- ``StateStoreError`` and ``ConfigError`` -- the only errors that abort a
  whole command invocation.

A sync conflict is not an exception; it is a ``SyncAction.CONFLICT``
result.
"""

from __future__ import annotations


class WpMdError(Exception):
    """Base class for all wp-md-sync errors."""


class TransportError(WpMdError):
    """The remote site was unreachable or answered with a non-2xx status.

    Attributes:
        status_code: HTTP status code, or ``None`` for connection-level
            failures (DNS, refused connection, timeout).
    """

    def __init__(
        self, message: str, status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(TransportError):
    """A referenced remote item no longer exists."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=404)


class CodecError(WpMdError):
    """A local file is malformed (missing or invalid front matter)."""


class StateStoreError(WpMdError):
    """The persisted sync state could not be read."""


class ConfigError(WpMdError, ValueError):
    """Site configuration is missing or invalid."""
