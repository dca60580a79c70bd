"""Deterministic last-writer-wins admission policy.

Admission is a single scalar comparison on ``last_updated``. A candidate
replaces the held document only when its stamp is strictly greater, so
re-submitting the current document is a no-op.

The authoritative endpoint compares using the stamp the client
submitted, then persists the accepted document with its own stamp from
:func:`next_timestamp`. Client clocks therefore only decide "is this newer
than what I last saw"; the server decides the canonical ordering that
every later reader observes.
"""

from __future__ import annotations

import time

from junctionsync.models.state import StateDocument


def now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


def is_newer(candidate: StateDocument, authoritative: StateDocument | None) -> bool:
    """Whether *candidate* should replace *authoritative*."""
    if authoritative is None:
        return True
    return candidate.last_updated > authoritative.last_updated


def resolve(candidate: StateDocument, authoritative: StateDocument) -> StateDocument:
    """Return the winner of *candidate* against *authoritative*."""
    if is_newer(candidate, authoritative):
        return candidate
    return authoritative


def next_timestamp(previous: int | None, now: int) -> int:
    """Stamp for a new write that follows a document stamped *previous*.

    Uses the clock, but never returns a value that is not strictly greater
    than *previous*, so stamps stay increasing across a clock step back.
    """
    if previous is None:
        return now
    return max(now, previous + 1)
