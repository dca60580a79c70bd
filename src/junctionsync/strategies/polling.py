"""Interval polling of the authoritative endpoint."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

from junctionsync.config import SyncMethod
from junctionsync.exceptions import SyncError
from junctionsync.models.state import StateDocument
from junctionsync.state.events import ConnectionStatus, UpdateSource
from junctionsync.strategies.base import StateCallback, StatusCallback, _StatusMixin

_logger = logging.getLogger(__name__)


class PollingStrategy(_StatusMixin):
    """Fetch the document once on start and then once per interval.

    There is no connection state: a failed fetch is logged and retried on
    the next tick. Latency is bounded by the interval.
    """

    method = SyncMethod.POLLING

    def __init__(
        self,
        *,
        fetch: Callable[[], Awaitable[StateDocument | None]],
        interval: float,
        on_state: StateCallback,
        on_status: StatusCallback,
    ) -> None:
        self._fetch = fetch
        self._interval = interval
        self._on_state = on_state
        self._on_status = on_status
        self._task: asyncio.Task[None] | None = None

    @property
    def interval(self) -> float:
        return self._interval

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._set_status(ConnectionStatus.POLLING)
        self._task = asyncio.create_task(self._run(), name="junctionsync-polling")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._set_status(ConnectionStatus.IDLE)

    async def broadcast(self, doc: StateDocument) -> None:
        return None

    async def poll_once(self) -> None:
        try:
            doc = await self._fetch()
        except SyncError as exc:
            _logger.debug("Polling fetch failed: %s", exc)
            return
        except Exception:
            _logger.exception("Unexpected polling failure")
            return
        if doc is not None:
            self._on_state(doc, UpdateSource.POLLING)

    async def _run(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self._interval)
