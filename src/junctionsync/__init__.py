"""junctionsync - Last-writer-wins state synchronization for a traffic junction controller."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("junctionsync")
except PackageNotFoundError:
    __version__ = "0+local"
from junctionsync.config import PersistenceBackend, ServerConfig, SyncConfig, SyncMethod
from junctionsync.engine import SyncEngine
from junctionsync.exceptions import (
    SyncConfigError,
    SyncError,
    SyncMalformedStateError,
    SyncPersistenceError,
    SyncTransportError,
)
from junctionsync.models import (
    ControlMode,
    PriorityRanking,
    SignalColor,
    StateDocument,
    TimeZonePlan,
    TimingTuple,
    default_state,
)
from junctionsync.persistence import (
    FileStateAdapter,
    MemoryStateAdapter,
    RemoteStateAdapter,
    SaveResult,
    StateAdapter,
)
from junctionsync.state.events import ConnectionStatus, UpdateSource

__all__ = [
    "ConnectionStatus",
    "ControlMode",
    "FileStateAdapter",
    "MemoryStateAdapter",
    "PersistenceBackend",
    "PriorityRanking",
    "RemoteStateAdapter",
    "SaveResult",
    "ServerConfig",
    "SignalColor",
    "StateAdapter",
    "StateDocument",
    "SyncConfig",
    "SyncConfigError",
    "SyncEngine",
    "SyncError",
    "SyncMalformedStateError",
    "SyncMethod",
    "SyncPersistenceError",
    "SyncTransportError",
    "TimeZonePlan",
    "TimingTuple",
    "UpdateSource",
    "__version__",
]
