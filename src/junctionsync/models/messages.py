"""Messages exchanged with the authoritative endpoint."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import Field, TypeAdapter

from junctionsync.models._base import SyncBaseModel
from junctionsync.models.state import StateDocument


class IdentifyMessage(SyncBaseModel):
    """Sent by a participant right after its websocket opens."""

    type: Literal["identify"] = "identify"
    client_id: str


class StateUpdateMessage(SyncBaseModel):
    """A full document pushed over the websocket, in either direction."""

    type: Literal["state_update"] = "state_update"
    state: StateDocument
    client_id: str | None = None


SocketMessage = Annotated[IdentifyMessage | StateUpdateMessage, Field(discriminator="type")]

_SOCKET_MESSAGE_ADAPTER: TypeAdapter[IdentifyMessage | StateUpdateMessage] = TypeAdapter(SocketMessage)


def parse_socket_message(raw: str | bytes) -> IdentifyMessage | StateUpdateMessage:
    """Parse a websocket text frame. Raises ``pydantic.ValidationError``."""
    return _SOCKET_MESSAGE_ADAPTER.validate_json(raw)


class StateWriteResponse(SyncBaseModel):
    """Body of a successful ``POST`` to the state resource."""

    success: bool = True
    state: StateDocument


class HealthReport(SyncBaseModel):
    status: Literal["ok", "error"] = "ok"
    timestamp: str
    environment: str | None = None
    env_check: bool | None = None
    version: str | None = None
    message: str | None = None


class ErrorResponse(SyncBaseModel):
    error: str
