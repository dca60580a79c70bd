"""Interchangeable mechanisms for learning about remote writes."""

from junctionsync.strategies.base import StateCallback, StatusCallback, SyncStrategy
from junctionsync.strategies.polling import PollingStrategy
from junctionsync.strategies.socket import SocketStrategy
from junctionsync.strategies.stream import SseDecoder, StreamStrategy

__all__ = [
    "PollingStrategy",
    "SocketStrategy",
    "SseDecoder",
    "StateCallback",
    "StatusCallback",
    "StreamStrategy",
    "SyncStrategy",
]
