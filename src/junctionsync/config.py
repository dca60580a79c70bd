"""Participant and server configuration for junctionsync."""

from __future__ import annotations

import dataclasses
import os
import secrets
from enum import StrEnum
from typing import Any

from junctionsync._constants import (
    API_PATH,
    BASE_URL,
    DEFAULT_POLLING_INTERVAL_MS,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_REQUEST_TIMEOUT,
    SOCKET_SUFFIX,
    STREAM_SUFFIX,
)
from junctionsync.exceptions import SyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def generate_client_id() -> str:
    """Random participant id, e.g. ``client_3f9a1c2e``."""
    return f"client_{secrets.token_hex(4)}"


class SyncMethod(StrEnum):
    """Transport strategy used to learn about remote writes."""

    POLLING = "polling"
    WEBSOCKET = "websocket"
    SSE = "sse"

    @classmethod
    def _missing_(cls, value: object) -> SyncMethod | None:
        aliases = {
            "poll": cls.POLLING,
            "push-socket": cls.WEBSOCKET,
            "socket": cls.WEBSOCKET,
            "push-stream": cls.SSE,
            "stream": cls.SSE,
        }
        if isinstance(value, str):
            return aliases.get(value.strip().lower())
        return None


class PersistenceBackend(StrEnum):
    """Where the authoritative document is stored."""

    VOLATILE = "volatile"
    REMOTE = "durable-remote"
    FILE = "file"

    @classmethod
    def _missing_(cls, value: object) -> PersistenceBackend | None:
        aliases = {
            "memory": cls.VOLATILE,
            "remote": cls.REMOTE,
            "server": cls.REMOTE,
            "local": cls.FILE,
        }
        if isinstance(value, str):
            return aliases.get(value.strip().lower())
        return None


def _parse_enum(enum_cls: type[StrEnum], value: Any, field_name: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise SyncConfigError(f"Invalid {field_name}: {value!r}") from exc


def _http_to_ws(url: str) -> str:
    if url.startswith("https://"):
        return "wss://" + url[len("https://") :]
    if url.startswith("http://"):
        return "ws://" + url[len("http://") :]
    return url


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Configuration of one participant's synchronization engine.

    Parameters
    ----------
    base_url : str
        Root URL of the authoritative endpoint, e.g. ``http://host:3000``.
    api_path : str
        Path of the state resource on the endpoint.
    method : SyncMethod
        Active transport strategy. Exactly one runs per engine.
    polling_interval_ms : int
        Poll period in milliseconds (polling strategy only).
    websocket_url : str or None
        Push-socket URL. Derived from ``base_url`` + ``api_path`` when unset.
    sse_url : str or None
        Server-push-stream URL (without the ``clientId`` query parameter).
        Derived from ``base_url`` + ``api_path`` when unset.
    client_id : str
        Identifier stamped into ``lastUpdatedBy`` on this participant's writes.
    persistence : PersistenceBackend
        Adapter the engine loads from and saves through.
    state_file : str or None
        Path of the JSON document for the ``file`` backend.
    reconnect_delay : float
        Seconds to wait before a push transport reconnects.
    request_timeout : float
        Total timeout in seconds for one HTTP request to the endpoint.
    """

    base_url: str = BASE_URL
    api_path: str = API_PATH
    method: SyncMethod = SyncMethod.POLLING
    polling_interval_ms: int = DEFAULT_POLLING_INTERVAL_MS
    websocket_url: str | None = None
    sse_url: str | None = None
    client_id: str = dataclasses.field(default_factory=generate_client_id)
    persistence: PersistenceBackend = PersistenceBackend.REMOTE
    state_file: str | None = None
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", _parse_enum(SyncMethod, self.method, "method"))
        object.__setattr__(
            self,
            "persistence",
            _parse_enum(PersistenceBackend, self.persistence, "persistence"),
        )
        if self.polling_interval_ms <= 0:
            raise SyncConfigError("polling_interval_ms must be positive")
        if self.reconnect_delay < 0:
            raise SyncConfigError("reconnect_delay must not be negative")
        if not self.client_id.strip():
            raise SyncConfigError("client_id must be non-empty")
        if self.persistence == PersistenceBackend.FILE and not self.state_file:
            raise SyncConfigError("state_file is required for the file backend")

    @property
    def polling_interval(self) -> float:
        """Poll period in seconds."""
        return self.polling_interval_ms / 1000.0

    @property
    def state_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.api_path}"

    @property
    def resolved_websocket_url(self) -> str:
        if self.websocket_url:
            return self.websocket_url
        return _http_to_ws(self.state_url) + SOCKET_SUFFIX

    @property
    def resolved_sse_url(self) -> str:
        if self.sse_url:
            return self.sse_url
        return self.state_url + STREAM_SUFFIX

    def replace(self, **changes: Any) -> SyncConfig:
        """Return a copy with *changes* applied (validated again)."""
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from ``JUNCTIONSYNC_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "JUNCTIONSYNC_BASE_URL": "base_url",
            "JUNCTIONSYNC_API_PATH": "api_path",
            "JUNCTIONSYNC_METHOD": "method",
            "JUNCTIONSYNC_WEBSOCKET_URL": "websocket_url",
            "JUNCTIONSYNC_SSE_URL": "sse_url",
            "JUNCTIONSYNC_CLIENT_ID": "client_id",
            "JUNCTIONSYNC_PERSISTENCE": "persistence",
            "JUNCTIONSYNC_STATE_FILE": "state_file",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        try:
            interval_env = env.get("JUNCTIONSYNC_POLLING_INTERVAL_MS")
            if interval_env is not None and "polling_interval_ms" not in overrides:
                config_kwargs["polling_interval_ms"] = int(interval_env)

            delay_env = env.get("JUNCTIONSYNC_RECONNECT_DELAY")
            if delay_env is not None and "reconnect_delay" not in overrides:
                config_kwargs["reconnect_delay"] = float(delay_env)

            timeout_env = env.get("JUNCTIONSYNC_REQUEST_TIMEOUT")
            if timeout_env is not None and "request_timeout" not in overrides:
                config_kwargs["request_timeout"] = float(timeout_env)
        except ValueError as exc:
            raise SyncConfigError(f"Invalid numeric environment value: {exc}") from exc

        config_kwargs.update(overrides)
        return cls(**config_kwargs)


@dataclasses.dataclass(frozen=True)
class ServerConfig:
    """Configuration of the authoritative endpoint.

    ``stream_heartbeat`` is the idle period (seconds) after which an SSE
    keep-alive comment is written. ``socket_heartbeat`` is passed to aiohttp
    as the websocket ping interval.
    """

    host: str = "0.0.0.0"
    port: int = 3000
    api_path: str = API_PATH
    persistence: PersistenceBackend = PersistenceBackend.VOLATILE
    state_file: str | None = None
    environment: str = "unknown"
    stream_heartbeat: float = 15.0
    stream_replay_on_connect: bool = True
    socket_heartbeat: float = 30.0

    def __post_init__(self) -> None:
        backend = _parse_enum(PersistenceBackend, self.persistence, "persistence")
        if backend == PersistenceBackend.REMOTE:
            raise SyncConfigError("the endpoint cannot use the durable-remote backend")
        if backend == PersistenceBackend.FILE and not self.state_file:
            raise SyncConfigError("state_file is required for the file backend")
        object.__setattr__(self, "persistence", backend)
        if self.stream_heartbeat <= 0:
            raise SyncConfigError("stream_heartbeat must be positive")

    @classmethod
    def from_env(cls, **overrides: Any) -> ServerConfig:
        """Create configuration from environment variables.

        ``JUNCTIONSYNC_ENV`` (falling back to ``ENVIRONMENT``) is reported
        by the health check.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_CONFIG_MAP = {
            "JUNCTIONSYNC_HOST": "host",
            "JUNCTIONSYNC_API_PATH": "api_path",
            "JUNCTIONSYNC_PERSISTENCE": "persistence",
            "JUNCTIONSYNC_STATE_FILE": "state_file",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        environment = env.get("JUNCTIONSYNC_ENV") or env.get("ENVIRONMENT")
        if environment:
            config_kwargs["environment"] = environment

        try:
            port_env = env.get("JUNCTIONSYNC_PORT") or env.get("PORT")
            if port_env is not None and "port" not in overrides:
                config_kwargs["port"] = int(port_env)
        except ValueError as exc:
            raise SyncConfigError(f"Invalid port: {exc}") from exc

        if "stream_replay_on_connect" not in overrides:
            config_kwargs["stream_replay_on_connect"] = _env_bool(
                env.get("JUNCTIONSYNC_STREAM_REPLAY"),
                True,
            )

        config_kwargs.update(overrides)
        return cls(**config_kwargs)
