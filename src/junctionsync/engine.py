"""High-level synchronization engine for one participant."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp

from junctionsync._transport import StateHttpClient
from junctionsync.config import PersistenceBackend, SyncConfig, SyncMethod
from junctionsync.exceptions import SyncError
from junctionsync.models.state import StateDocument, default_state
from junctionsync.persistence import StateAdapter, build_adapter
from junctionsync.state.events import ConnectionStatus, UpdateSource
from junctionsync.state.policy import is_newer, next_timestamp, now_ms
from junctionsync.strategies import PollingStrategy, SocketStrategy, StreamStrategy, SyncStrategy

_logger = logging.getLogger(__name__)

StateSubscriber = Callable[[StateDocument], None]
StatusSubscriber = Callable[[ConnectionStatus], None]


class SyncEngine:
    """Keeps one participant's copy of the shared document in sync.

    The engine owns the in-memory copy. Local edits go through
    :meth:`publish`; remote documents arrive through the active transport
    strategy. Both are admitted with the last-writer-wins rule before
    subscribers are notified.

    Usage::

        async with SyncEngine(config) as engine:
            unsubscribe = engine.subscribe(render)
            await engine.publish({"controlMode": "manual"})
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        adapter: StateAdapter | None = None,
        session: aiohttp.ClientSession | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._external_adapter = adapter is not None
        self._adapter = adapter
        self._clock = clock
        self._state = default_state()
        self._strategy: SyncStrategy | None = None
        self._subscribers: list[StateSubscriber] = []
        self._status_subscribers: list[StatusSubscriber] = []
        self._status = ConnectionStatus.IDLE
        self._publish_lock = asyncio.Lock()
        self._running = False
        self._loaded = False

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SyncEngine:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    @property
    def config(self) -> SyncConfig:
        return self._config

    @property
    def client_id(self) -> str:
        return self._config.client_id

    @property
    def running(self) -> bool:
        return self._running

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def strategy(self) -> SyncStrategy | None:
        return self._strategy

    @property
    def state(self) -> StateDocument:
        """Snapshot of the last adopted document."""
        return self._state.snapshot()

    async def start(self) -> None:
        """Load the initial document and start the configured strategy."""
        if self._running:
            return
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        if self._adapter is None:
            self._adapter = self._build_adapter()

        try:
            saved = await self._adapter.get_state()
        except SyncError as exc:
            _logger.warning("Error loading initial state: %s", exc)
        else:
            if saved is not None and not self._loaded:
                # Nothing has been seen yet; the stored copy replaces the default.
                self._state = saved.snapshot()
                self._loaded = True
                self._notify_state()
            elif saved is not None:
                self._adopt(saved, UpdateSource.INITIAL)

        self._strategy = self._build_strategy()
        await self._strategy.start()
        self._running = True
        _logger.info(
            "Sync engine started client_id=%s method=%s",
            self._config.client_id,
            self._config.method,
        )

    async def stop(self) -> None:
        """Stop the strategy and release owned resources."""
        strategy = self._strategy
        self._strategy = None
        if strategy is not None:
            await strategy.stop()
        if not self._external_adapter:
            self._adapter = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._running = False

    async def reconfigure(self, config: SyncConfig) -> None:
        """Tear down the active strategy and restart with *config*.

        Registered subscribers are kept.
        """
        was_running = self._running
        await self.stop()
        self._config = config
        if was_running:
            await self.start()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            raise SyncError("Engine not started. Use 'async with SyncEngine(...) as engine:'")
        return self._http_session

    def _require_adapter(self) -> StateAdapter:
        if self._adapter is None:
            raise SyncError("Engine not started. Use 'async with SyncEngine(...) as engine:'")
        return self._adapter

    def _build_adapter(self) -> StateAdapter:
        api = None
        if self._config.persistence == PersistenceBackend.REMOTE:
            api = StateHttpClient(
                self._config.base_url,
                self._require_session(),
                api_path=self._config.api_path,
                timeout=self._config.request_timeout,
            )
        return build_adapter(self._config.persistence, api=api, state_file=self._config.state_file)

    def _build_strategy(self) -> SyncStrategy:
        method = self._config.method
        if method == SyncMethod.WEBSOCKET:
            return SocketStrategy(
                url=self._config.resolved_websocket_url,
                client_id=self._config.client_id,
                http_session=self._require_session(),
                on_state=self._on_remote_state,
                on_status=self._on_status,
                reconnect_delay=self._config.reconnect_delay,
            )
        if method == SyncMethod.SSE:
            return StreamStrategy(
                url=self._config.resolved_sse_url,
                client_id=self._config.client_id,
                http_session=self._require_session(),
                on_state=self._on_remote_state,
                on_status=self._on_status,
                reconnect_delay=self._config.reconnect_delay,
            )
        return PollingStrategy(
            fetch=self._require_adapter().get_state,
            interval=self._config.polling_interval,
            on_state=self._on_remote_state,
            on_status=self._on_status,
        )

    def _adopt(self, doc: StateDocument, source: UpdateSource) -> bool:
        if not is_newer(doc, self._state):
            _logger.debug(
                "Ignoring %s document last_updated=%s (held %s)",
                source,
                doc.last_updated,
                self._state.last_updated,
            )
            return False
        self._state = doc.snapshot()
        self._loaded = True
        _logger.debug(
            "Adopted %s document last_updated=%s by=%s",
            source,
            doc.last_updated,
            doc.last_updated_by,
        )
        self._notify_state()
        return True

    def _on_remote_state(self, doc: StateDocument, source: UpdateSource) -> None:
        self._adopt(doc, source)

    def _on_status(self, status: ConnectionStatus) -> None:
        self._status = status
        for callback in list(self._status_subscribers):
            try:
                callback(status)
            except Exception:
                _logger.exception("Status subscriber raised")

    def _notify_state(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self._state.snapshot())
            except Exception:
                _logger.exception("State subscriber raised")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def subscribe(self, callback: StateSubscriber) -> Callable[[], None]:
        """Register *callback* and invoke it immediately with the current document.

        Returns a function that removes the registration.
        """
        self._subscribers.append(callback)
        callback(self._state.snapshot())

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def subscribe_status(self, callback: StatusSubscriber) -> Callable[[], None]:
        """Register *callback* for connectivity changes (called now with the current one)."""
        self._status_subscribers.append(callback)
        callback(self._status)

        def unsubscribe() -> None:
            if callback in self._status_subscribers:
                self._status_subscribers.remove(callback)

        return unsubscribe

    async def publish(self, edit: Mapping[str, Any]) -> bool:
        """Merge *edit* onto the held document, persist it, and propagate it.

        Returns ``False`` when the adapter could not save the document; the
        held copy is then left unchanged. Raises
        :class:`~junctionsync.exceptions.SyncMalformedStateError` for edits
        that do not produce a valid document.
        """
        adapter = self._require_adapter()
        async with self._publish_lock:
            current = self._state
            candidate = current.merged(edit).stamped(
                next_timestamp(current.last_updated, self._clock()),
                self._config.client_id,
            )

            result = await adapter.save_state(candidate)
            if not result.ok:
                _logger.error("Error updating state: %s", result.error)
                return False

            authoritative = result.state if result.state is not None else candidate
            # The held copy may have moved past the candidate during the save.
            if not self._adopt(authoritative, UpdateSource.LOCAL):
                return True

            strategy = self._strategy
            if strategy is not None:
                await strategy.broadcast(authoritative)
            return True

    async def refresh(self) -> bool:
        """Fetch the stored document now; returns whether it was adopted."""
        try:
            doc = await self._require_adapter().get_state()
        except SyncError as exc:
            _logger.warning("Manual refresh failed: %s", exc)
            return False
        if doc is None:
            return False
        return self._adopt(doc, UpdateSource.REFRESH)
