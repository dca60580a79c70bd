"""Custom exception hierarchy for junctionsync."""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for all junctionsync errors."""


class SyncConfigError(SyncError):
    """Invalid or missing configuration."""


class SyncTransportError(SyncError):
    """Request to the authoritative endpoint failed (network, non-200 status, bad body)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class SyncPersistenceError(SyncError):
    """The persistence backend could not read or write the document."""


class SyncMalformedStateError(SyncError, ValueError):
    """A candidate document (or edit) is not a well-formed state document.

    Raised at the authoritative endpoint for request bodies that are not a
    JSON object or do not validate, and by ``SyncEngine.publish`` for edits
    with unknown keys or invalid values.  Never mutates stored state.
    """
