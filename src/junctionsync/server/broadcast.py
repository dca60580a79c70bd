"""Registry of connected push participants."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from aiohttp import WSCloseCode, web

from junctionsync.models.messages import StateUpdateMessage
from junctionsync.models.state import StateDocument

_logger = logging.getLogger(__name__)

StreamQueue = asyncio.Queue[StateDocument | None]

DEFAULT_STREAM_QUEUE_SIZE = 16


class ClientKind(StrEnum):
    SOCKET = "websocket"
    STREAM = "sse"


@dataclass(eq=False)
class ClientRegistration:
    """One open push connection.

    ``channel`` is the websocket for socket clients and the pending-event
    queue for stream clients. A ``None`` on a stream queue ends the stream.
    """

    client_id: str
    kind: ClientKind
    channel: web.WebSocketResponse | StreamQueue
    connected_at: datetime = field(default_factory=lambda: datetime.now(UTC))


def _offer(queue: StreamQueue, item: StateDocument | None) -> None:
    # Every event carries the whole document, so the oldest pending one
    # is safe to drop.
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(item)


class ClientRegistry:
    """Tracks websocket and stream participants and fans documents out to them."""

    def __init__(self, *, stream_queue_size: int = DEFAULT_STREAM_QUEUE_SIZE) -> None:
        self._clients: list[ClientRegistration] = []
        self._stream_queue_size = stream_queue_size

    def __len__(self) -> int:
        return len(self._clients)

    def register_socket(self, client_id: str, ws: web.WebSocketResponse) -> ClientRegistration:
        registration = ClientRegistration(client_id, ClientKind.SOCKET, ws)
        self._clients.append(registration)
        _logger.info("Websocket client %s connected (%d open)", client_id, len(self._clients))
        return registration

    def register_stream(self, client_id: str) -> ClientRegistration:
        queue: StreamQueue = asyncio.Queue(maxsize=self._stream_queue_size)
        registration = ClientRegistration(client_id, ClientKind.STREAM, queue)
        self._clients.append(registration)
        _logger.info("SSE client %s connected (%d open)", client_id, len(self._clients))
        return registration

    def rename(self, registration: ClientRegistration, client_id: str) -> None:
        if registration.client_id != client_id:
            _logger.debug("Client %s identified as %s", registration.client_id, client_id)
            registration.client_id = client_id

    def unregister(self, registration: ClientRegistration) -> None:
        if registration in self._clients:
            self._clients.remove(registration)
            _logger.info(
                "%s client %s disconnected (%d open)",
                registration.kind,
                registration.client_id,
                len(self._clients),
            )

    async def broadcast(self, doc: StateDocument) -> None:
        """Deliver *doc* to every registration; failing sockets are dropped."""
        frame = StateUpdateMessage(state=doc, client_id=doc.last_updated_by).to_wire()
        for registration in list(self._clients):
            channel = registration.channel
            if isinstance(channel, asyncio.Queue):
                _offer(channel, doc)
                continue
            if channel.closed:
                self.unregister(registration)
                continue
            try:
                await channel.send_json(frame)
            except (ConnectionError, RuntimeError) as exc:
                _logger.warning("Sending to websocket client %s failed: %s", registration.client_id, exc)
                self.unregister(registration)

    async def close_all(self) -> None:
        """Close every websocket and end every stream."""
        clients, self._clients = self._clients, []
        for registration in clients:
            channel = registration.channel
            if isinstance(channel, asyncio.Queue):
                _offer(channel, None)
            elif not channel.closed:
                await channel.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")

    def snapshot(self) -> list[dict[str, Any]]:
        return [
            {
                "clientId": registration.client_id,
                "kind": str(registration.kind),
                "connectedAt": registration.connected_at.isoformat(),
            }
            for registration in self._clients
        ]
