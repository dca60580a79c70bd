"""Common interface of the transport strategies."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from junctionsync.config import SyncMethod
from junctionsync.models.state import StateDocument
from junctionsync.state.events import ConnectionStatus, UpdateSource

StateCallback = Callable[[StateDocument, UpdateSource], None]
StatusCallback = Callable[[ConnectionStatus], None]


class SyncStrategy(Protocol):
    """A mechanism that delivers "the document changed" to this participant.

    Strategies never decide whether a received document is adopted; they
    hand every document to ``on_state`` and the engine applies the conflict
    rule. Connection problems are recovered inside the strategy and only
    surface through ``on_status``.
    """

    method: SyncMethod

    @property
    def status(self) -> ConnectionStatus: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def broadcast(self, doc: StateDocument) -> None: ...


class _StatusMixin:
    """Tracks the current status and reports transitions once."""

    _status: ConnectionStatus = ConnectionStatus.IDLE
    _on_status: StatusCallback

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self._status:
            return
        self._status = status
        self._on_status(status)
