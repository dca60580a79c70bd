"""aiohttp application serving the authoritative endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime
from typing import cast

from aiohttp import WSMsgType, web
from pydantic import ValidationError

from junctionsync import __version__
from junctionsync._constants import HEALTH_PATH, SOCKET_SUFFIX, STREAM_SUFFIX
from junctionsync.config import ServerConfig, generate_client_id
from junctionsync.exceptions import SyncMalformedStateError, SyncPersistenceError
from junctionsync.models.messages import (
    ErrorResponse,
    HealthReport,
    IdentifyMessage,
    StateUpdateMessage,
    StateWriteResponse,
    parse_socket_message,
)
from junctionsync.models.state import StateDocument
from junctionsync.persistence import StateAdapter, build_adapter
from junctionsync.server.broadcast import ClientRegistration, ClientRegistry, StreamQueue
from junctionsync.server.endpoint import AuthoritativeEndpoint

_logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", ServerConfig)
ENDPOINT_KEY = web.AppKey("endpoint", AuthoritativeEndpoint)
REGISTRY_KEY = web.AppKey("registry", ClientRegistry)

_KEEP_ALIVE = b": keep-alive\n\n"


def _error(message: str, status: int) -> web.Response:
    return web.json_response(ErrorResponse(error=message).to_wire(), status=status)


def _utc_timestamp() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


# ----------------------------------------------------------------------
# State resource
# ----------------------------------------------------------------------


async def get_state(request: web.Request) -> web.Response:
    try:
        doc = await request.app[ENDPOINT_KEY].read()
    except SyncPersistenceError as exc:
        _logger.error("Error retrieving state: %s", exc)
        return _error("Failed to retrieve state", 500)
    return web.json_response(doc.to_wire() if doc is not None else {})


async def post_state(request: web.Request) -> web.Response:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error("Invalid state data", 400)

    try:
        result = await request.app[ENDPOINT_KEY].submit(payload)
    except SyncMalformedStateError as exc:
        _logger.info("Rejected malformed state: %s", exc)
        return _error("Invalid state data", 400)
    except SyncPersistenceError as exc:
        _logger.error("Error updating state: %s", exc)
        return _error("Failed to update state", 500)
    return web.json_response(StateWriteResponse(state=result.state).to_wire())


async def health(request: web.Request) -> web.Response:
    config = request.app[CONFIG_KEY]
    try:
        await request.app[ENDPOINT_KEY].read()
    except SyncPersistenceError as exc:
        _logger.error("Health check failed: %s", exc)
        report = HealthReport(status="error", message=str(exc), timestamp=_utc_timestamp())
        return web.json_response(report.model_dump(mode="json", by_alias=True, exclude_none=True), status=500)

    report = HealthReport(
        timestamp=_utc_timestamp(),
        environment=config.environment,
        env_check=config.environment != "unknown",
        version=__version__,
    )
    return web.json_response(report.model_dump(mode="json", by_alias=True, exclude_none=True))


# ----------------------------------------------------------------------
# Push transports
# ----------------------------------------------------------------------


async def _handle_socket_text(app: web.Application, registration: ClientRegistration, data: str) -> None:
    try:
        message = parse_socket_message(data)
    except ValidationError:
        _logger.debug("Ignoring unparseable frame from %s: %.200s", registration.client_id, data)
        return

    if isinstance(message, IdentifyMessage):
        app[REGISTRY_KEY].rename(registration, message.client_id)
        return
    if isinstance(message, StateUpdateMessage):
        try:
            result = await app[ENDPOINT_KEY].submit(message.state.to_wire())
        except SyncPersistenceError as exc:
            _logger.error("Error saving state from %s: %s", registration.client_id, exc)
            return
        if not result.accepted:
            _logger.debug("Stale state_update from %s", registration.client_id)


async def socket_handler(request: web.Request) -> web.WebSocketResponse:
    config = request.app[CONFIG_KEY]
    registry = request.app[REGISTRY_KEY]

    ws = web.WebSocketResponse(heartbeat=config.socket_heartbeat)
    await ws.prepare(request)
    registration = registry.register_socket(request.query.get("clientId") or generate_client_id(), ws)
    try:
        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                await _handle_socket_text(request.app, registration, msg.data)
            elif msg.type == WSMsgType.ERROR:
                _logger.warning("Websocket error from %s: %s", registration.client_id, ws.exception())
    finally:
        registry.unregister(registration)
    return ws


async def _write_event(resp: web.StreamResponse, doc: StateDocument) -> None:
    await resp.write(f"data: {json.dumps(doc.to_wire(), separators=(',', ':'))}\n\n".encode())


async def stream_handler(request: web.Request) -> web.StreamResponse:
    config = request.app[CONFIG_KEY]
    registry = request.app[REGISTRY_KEY]

    resp = web.StreamResponse(
        headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }
    )
    await resp.prepare(request)
    registration = registry.register_stream(request.query.get("clientId") or generate_client_id())
    queue = cast(StreamQueue, registration.channel)

    try:
        if config.stream_replay_on_connect:
            try:
                current = await request.app[ENDPOINT_KEY].read()
            except SyncPersistenceError as exc:
                _logger.warning("Cannot replay state to %s: %s", registration.client_id, exc)
                current = None
            if current is not None:
                await _write_event(resp, current)

        while True:
            try:
                doc = await asyncio.wait_for(queue.get(), timeout=config.stream_heartbeat)
            except TimeoutError:
                await resp.write(_KEEP_ALIVE)
                continue
            if doc is None:
                break
            await _write_event(resp, doc)
    except ConnectionResetError:
        _logger.debug("SSE client %s went away", registration.client_id)
    finally:
        registry.unregister(registration)
    return resp


# ----------------------------------------------------------------------
# Application
# ----------------------------------------------------------------------


async def _close_clients(app: web.Application) -> None:
    registry = app[REGISTRY_KEY]
    _logger.debug("Closing push clients: %s", registry.snapshot())
    await registry.close_all()


def create_app(config: ServerConfig | None = None, adapter: StateAdapter | None = None) -> web.Application:
    """Build the endpoint application.

    *adapter* overrides the backend named by ``config.persistence``.
    """
    config = config or ServerConfig()
    if adapter is None:
        adapter = build_adapter(config.persistence, state_file=config.state_file)

    registry = ClientRegistry()
    endpoint = AuthoritativeEndpoint(adapter, on_accepted=registry.broadcast)

    app = web.Application()
    app[CONFIG_KEY] = config
    app[ENDPOINT_KEY] = endpoint
    app[REGISTRY_KEY] = registry

    app.router.add_get(config.api_path, get_state)
    app.router.add_post(config.api_path, post_state)
    app.router.add_get(HEALTH_PATH, health)
    app.router.add_get(config.api_path + SOCKET_SUFFIX, socket_handler)
    app.router.add_get(config.api_path + STREAM_SUFFIX, stream_handler)
    app.on_shutdown.append(_close_clients)
    return app


def run_server(config: ServerConfig | None = None) -> None:
    """Serve the endpoint until interrupted."""
    config = config or ServerConfig.from_env()
    _logger.info(
        "Starting endpoint on %s:%s persistence=%s environment=%s",
        config.host,
        config.port,
        config.persistence,
        config.environment,
    )
    web.run_app(create_app(config), host=config.host, port=config.port, print=_logger.info)
