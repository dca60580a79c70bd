"""Push-socket (websocket) strategy."""

from __future__ import annotations

import asyncio
import contextlib
import logging

import aiohttp
from pydantic import ValidationError

from junctionsync.config import SyncMethod
from junctionsync.models.messages import IdentifyMessage, StateUpdateMessage, parse_socket_message
from junctionsync.models.state import StateDocument
from junctionsync.state.events import ConnectionStatus, UpdateSource
from junctionsync.strategies.base import StateCallback, StatusCallback, _StatusMixin

_logger = logging.getLogger(__name__)


class SocketStrategy(_StatusMixin):
    """Persistent websocket to the endpoint.

    On connect the participant identifies itself. Every ``state_update``
    frame is handed to the engine. When the socket closes for any reason
    other than :meth:`stop`, a reconnect is attempted after
    ``reconnect_delay`` seconds, indefinitely.
    """

    method = SyncMethod.WEBSOCKET

    def __init__(
        self,
        *,
        url: str,
        client_id: str,
        http_session: aiohttp.ClientSession,
        on_state: StateCallback,
        on_status: StatusCallback,
        reconnect_delay: float = 5.0,
        heartbeat: float | None = 30.0,
    ) -> None:
        self._url = url
        self._client_id = client_id
        self._http = http_session
        self._on_state = on_state
        self._on_status = on_status
        self._reconnect_delay = reconnect_delay
        self._heartbeat = heartbeat
        self._ws: aiohttp.ClientWebSocketResponse | None = None
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
        self._task = asyncio.create_task(self._run(), name="junctionsync-websocket")

    async def stop(self) -> None:
        self._stopping = True
        ws = self._ws
        if ws is not None and not ws.closed:
            await ws.close()
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._ws = None
        self._set_status(ConnectionStatus.IDLE)

    async def broadcast(self, doc: StateDocument) -> None:
        ws = self._ws
        if ws is None or ws.closed:
            _logger.debug("Websocket not open; skipping state_update broadcast")
            return
        message = StateUpdateMessage(state=doc, client_id=self._client_id)
        try:
            await ws.send_json(message.to_wire())
        except (aiohttp.ClientError, ConnectionError) as exc:
            _logger.warning("Sending state_update over websocket failed: %s", exc)

    async def _run(self) -> None:
        while not self._stopping:
            self._set_status(ConnectionStatus.CONNECTING)
            try:
                await self._connect_and_listen()
            except (aiohttp.ClientError, ConnectionError, TimeoutError) as exc:
                _logger.warning("Websocket connection to %s failed: %s", self._url, exc)
            except Exception:
                _logger.exception("Unexpected websocket failure")
            finally:
                self._ws = None

            if self._stopping:
                break
            self._set_status(ConnectionStatus.DISCONNECTED)
            _logger.info("Websocket closed; reconnecting in %.1fs", self._reconnect_delay)
            await asyncio.sleep(self._reconnect_delay)

    async def _connect_and_listen(self) -> None:
        async with self._http.ws_connect(
            self._url,
            params={"clientId": self._client_id},
            heartbeat=self._heartbeat,
        ) as ws:
            self._ws = ws
            self._connections += 1
            await ws.send_json(IdentifyMessage(client_id=self._client_id).to_wire())
            self._set_status(ConnectionStatus.CONNECTED)
            _logger.info("Websocket connection established for state sync")

            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_text(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    _logger.warning("Websocket error: %s", ws.exception())
                    break

    def _handle_text(self, data: str) -> None:
        try:
            message = parse_socket_message(data)
        except ValidationError:
            _logger.debug("Ignoring unparseable websocket frame: %.200s", data)
            return
        if isinstance(message, StateUpdateMessage):
            self._on_state(message.state, UpdateSource.WEBSOCKET)
