"""Admission of candidate documents against the stored copy."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from junctionsync.exceptions import SyncMalformedStateError, SyncPersistenceError
from junctionsync.models.state import StateDocument, default_state
from junctionsync.persistence import StateAdapter
from junctionsync.state.policy import is_newer, next_timestamp, now_ms

_logger = logging.getLogger(__name__)

AcceptedCallback = Callable[[StateDocument], Awaitable[None]]


@dataclass(frozen=True)
class AdmissionResult:
    """Authoritative document after a submission, and whether it changed."""

    state: StateDocument
    accepted: bool


class AuthoritativeEndpoint:
    """Read/write surface over a :class:`StateAdapter`.

    Submissions are serialized by a lock, which makes the
    read-compare-write atomic within one process. Several processes sharing
    one backend are not serialized against each other; that needs a
    backend with a single logical writer or compare-and-set.
    """

    def __init__(
        self,
        adapter: StateAdapter,
        *,
        clock: Callable[[], int] = now_ms,
        on_accepted: AcceptedCallback | None = None,
    ) -> None:
        self._adapter = adapter
        self._clock = clock
        self._on_accepted = on_accepted
        self._lock = asyncio.Lock()

    @property
    def adapter(self) -> StateAdapter:
        return self._adapter

    async def read(self) -> StateDocument | None:
        return await self._adapter.get_state()

    def _candidate(self, payload: dict[str, Any], current: StateDocument | None) -> StateDocument:
        # Fill top-level keys the writer left out from the stored copy.
        base = current if current is not None else default_state()
        completed = base.to_wire()
        completed["lastUpdated"] = 0
        completed.update(payload)
        try:
            return StateDocument.model_validate(completed)
        except ValidationError as exc:
            raise SyncMalformedStateError(f"Invalid state data: {exc}") from exc

    async def submit(self, payload: Any) -> AdmissionResult:
        """Admit *payload* if it is newer than the stored document.

        Raises :class:`SyncMalformedStateError` when *payload* is not a
        well-formed document and :class:`SyncPersistenceError` when the
        backend fails. A stale payload is not an error: the unchanged
        stored document is returned with ``accepted=False``.
        """
        if not isinstance(payload, dict):
            raise SyncMalformedStateError("Invalid state data: expected a JSON object")

        async with self._lock:
            current = await self._adapter.get_state()
            candidate = self._candidate(payload, current)

            if current is not None and not is_newer(candidate, current):
                _logger.debug(
                    "Stale write from %s ignored (%s <= %s)",
                    candidate.last_updated_by,
                    candidate.last_updated,
                    current.last_updated,
                )
                return AdmissionResult(state=current, accepted=False)

            previous = current.last_updated if current is not None else None
            accepted = candidate.stamped(next_timestamp(previous, self._clock()))
            result = await self._adapter.save_state(accepted)
            if not result.ok:
                raise SyncPersistenceError(f"Failed to save state: {result.error}")
            stored = result.state if result.state is not None else accepted

        _logger.info("Accepted write from %s at %s", stored.last_updated_by, stored.last_updated)
        if self._on_accepted is not None:
            await self._on_accepted(stored)
        return AdmissionResult(state=stored, accepted=True)
