"""Update sources and connectivity states.

All ingestion paths tag the documents they hand to the engine with an
:class:`UpdateSource`. Push transports additionally report a
:class:`ConnectionStatus` that status subscribers can observe.
"""

from __future__ import annotations

from enum import StrEnum


class UpdateSource(StrEnum):
    INITIAL = "initial"
    LOCAL = "local"
    POLLING = "polling"
    WEBSOCKET = "websocket"
    SSE = "sse"
    REFRESH = "refresh"


class ConnectionStatus(StrEnum):
    """Transient connectivity of the active transport strategy.

    ``DISCONNECTED`` means degraded mode: the last known document is kept
    and may be stale until the transport reconnects or a manual refresh
    succeeds.
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    POLLING = "polling"
