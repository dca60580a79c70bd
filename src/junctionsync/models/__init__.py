"""Data models for the shared junction state and its wire messages."""

from junctionsync.models._base import EpochMillis, SyncBaseModel, coerce_epoch_ms
from junctionsync.models.messages import (
    ErrorResponse,
    HealthReport,
    IdentifyMessage,
    StateUpdateMessage,
    StateWriteResponse,
    parse_socket_message,
)
from junctionsync.models.state import (
    ControlMode,
    PriorityRanking,
    SignalColor,
    StateDocument,
    TimeZonePlan,
    TimingTuple,
    default_state,
)

__all__ = [
    "ControlMode",
    "EpochMillis",
    "ErrorResponse",
    "HealthReport",
    "IdentifyMessage",
    "PriorityRanking",
    "SignalColor",
    "StateDocument",
    "StateUpdateMessage",
    "StateWriteResponse",
    "SyncBaseModel",
    "TimeZonePlan",
    "TimingTuple",
    "coerce_epoch_ms",
    "default_state",
    "parse_socket_message",
]
