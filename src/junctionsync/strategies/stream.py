"""Server-push-stream (server-sent events) strategy."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging

import aiohttp
from pydantic import ValidationError

from junctionsync.config import SyncMethod
from junctionsync.models.state import StateDocument
from junctionsync.state.events import ConnectionStatus, UpdateSource
from junctionsync.strategies.base import StateCallback, StatusCallback, _StatusMixin

_logger = logging.getLogger(__name__)


class SseDecoder:
    """Incremental decoder for a ``text/event-stream`` body.

    Feed it lines as received; it returns the joined ``data`` payload each
    time a blank line terminates an event. Comment lines (``:``) and other
    fields are ignored.
    """

    def __init__(self) -> None:
        self._data: list[str] = []

    def feed(self, raw_line: bytes | str) -> str | None:
        line = raw_line.decode("utf-8", errors="replace") if isinstance(raw_line, bytes) else raw_line
        line = line.rstrip("\r\n")

        if not line:
            if not self._data:
                return None
            payload = "\n".join(self._data)
            self._data = []
            return payload
        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            self._data.append(value)
        return None


class StreamStrategy(_StatusMixin):
    """One-way event stream from the endpoint, keyed by ``clientId``.

    Every event carries the full wire document. On a stream error or end
    of stream the connection is closed and re-opened after
    ``reconnect_delay`` seconds, indefinitely.
    """

    method = SyncMethod.SSE

    def __init__(
        self,
        *,
        url: str,
        client_id: str,
        http_session: aiohttp.ClientSession,
        on_state: StateCallback,
        on_status: StatusCallback,
        reconnect_delay: float = 5.0,
    ) -> None:
        self._url = url
        self._client_id = client_id
        self._http = http_session
        self._on_state = on_state
        self._on_status = on_status
        self._reconnect_delay = reconnect_delay
        self._task: asyncio.Task[None] | None = None
        self._stopping = False
        self._connections = 0

    @property
    def connections(self) -> int:
        """Number of successful connects so far (reconnects included)."""
        return self._connections

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._stopping = False
        self._task = asyncio.create_task(self._run(), name="junctionsync-sse")

    async def stop(self) -> None:
        self._stopping = True
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._set_status(ConnectionStatus.IDLE)

    async def broadcast(self, doc: StateDocument) -> None:
        # Server-to-client only; writes travel through the endpoint.
        return None

    async def _run(self) -> None:
        while not self._stopping:
            self._set_status(ConnectionStatus.CONNECTING)
            try:
                await self._listen()
            except (aiohttp.ClientError, ConnectionError, TimeoutError) as exc:
                _logger.warning("SSE error: %s", exc)
            except Exception:
                _logger.exception("Unexpected SSE failure")

            if self._stopping:
                break
            self._set_status(ConnectionStatus.DISCONNECTED)
            _logger.info("SSE stream ended; reconnecting in %.1fs", self._reconnect_delay)
            await asyncio.sleep(self._reconnect_delay)

    async def _listen(self) -> None:
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=10.0)
        async with self._http.get(
            self._url,
            params={"clientId": self._client_id},
            headers={"accept": "text/event-stream", "cache-control": "no-cache"},
            timeout=timeout,
        ) as resp:
            if resp.status != 200:
                raise aiohttp.ClientResponseError(
                    resp.request_info,
                    resp.history,
                    status=resp.status,
                    message=f"unexpected status from {self._url}",
                )
            self._connections += 1
            self._set_status(ConnectionStatus.CONNECTED)
            _logger.info("SSE stream established for state sync")

            decoder = SseDecoder()
            async for line in resp.content:
                payload = decoder.feed(line)
                if payload is not None:
                    self._handle_event(payload)

    def _handle_event(self, payload: str) -> None:
        try:
            data = json.loads(payload)
            doc = StateDocument.model_validate(data)
        except (json.JSONDecodeError, ValidationError):
            _logger.debug("Error parsing SSE message: %.200s", payload)
            return
        self._on_state(doc, UpdateSource.SSE)
