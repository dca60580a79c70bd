"""Swappable storage for the authoritative document.

An adapter is the sole point of durability. ``get_state`` returns
``None`` when nothing has been stored yet and raises
:class:`~junctionsync.exceptions.SyncPersistenceError` when the backend
cannot be read. ``save_state`` never raises for backend failures; it
returns a :class:`SaveResult` so the caller decides whether to retry or
report.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from junctionsync._transport import StateApi
from junctionsync.config import PersistenceBackend
from junctionsync.exceptions import SyncConfigError, SyncPersistenceError, SyncTransportError
from junctionsync.models.state import StateDocument

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaveResult:
    """Outcome of :meth:`StateAdapter.save_state`.

    ``state`` is the authoritative document after the write when the
    backend knows it (a remote endpoint may have re-stamped the candidate or
    kept a newer document).
    """

    ok: bool
    state: StateDocument | None = None
    error: str | None = None

    @classmethod
    def success(cls, state: StateDocument) -> SaveResult:
        return cls(ok=True, state=state)

    @classmethod
    def failure(cls, error: str) -> SaveResult:
        return cls(ok=False, error=error)


class StateAdapter(Protocol):
    async def get_state(self) -> StateDocument | None: ...

    async def save_state(self, doc: StateDocument) -> SaveResult: ...


class MemoryStateAdapter:
    """Volatile single-document store (lost on restart, not shared)."""

    def __init__(self, initial: StateDocument | None = None) -> None:
        self._doc = initial.snapshot() if initial is not None else None

    async def get_state(self) -> StateDocument | None:
        if self._doc is None:
            return None
        return self._doc.snapshot()

    async def save_state(self, doc: StateDocument) -> SaveResult:
        self._doc = doc.snapshot()
        return SaveResult.success(doc.snapshot())


class FileStateAdapter:
    """Durable store keeping the document as JSON on local disk.

    Writes go to a temporary file in the same directory which is then
    atomically renamed over the target, so readers never see a partial
    document. Blocking file I/O runs in the default executor.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> StateDocument | None:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise SyncPersistenceError(f"Cannot read {self._path}: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise SyncPersistenceError(f"Corrupt state file {self._path}: {exc}") from exc

        if not text.strip():
            return None
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SyncPersistenceError(f"Corrupt state file {self._path}: {exc}") from exc
        if payload == {}:
            return None
        try:
            return StateDocument.model_validate(payload)
        except ValidationError as exc:
            raise SyncPersistenceError(f"Invalid state document in {self._path}: {exc}") from exc

    def _write(self, doc: StateDocument) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(doc.to_wire(), handle, separators=(",", ":"))
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def get_state(self) -> StateDocument | None:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read)

    async def save_state(self, doc: StateDocument) -> SaveResult:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, doc)
        except OSError as exc:
            _logger.error("Saving state to %s failed: %s", self._path, exc)
            return SaveResult.failure(str(exc))
        return SaveResult.success(doc.snapshot())


class RemoteStateAdapter:
    """Durable store reached through the authoritative endpoint."""

    def __init__(self, api: StateApi) -> None:
        self._api = api

    async def get_state(self) -> StateDocument | None:
        try:
            return await self._api.fetch_state()
        except SyncTransportError as exc:
            raise SyncPersistenceError(f"Remote state read failed: {exc}") from exc

    async def save_state(self, doc: StateDocument) -> SaveResult:
        try:
            authoritative = await self._api.submit_state(doc)
        except SyncTransportError as exc:
            _logger.error("Saving state to the endpoint failed: %s", exc)
            return SaveResult.failure(str(exc))
        return SaveResult.success(authoritative)


def build_adapter(
    backend: PersistenceBackend,
    *,
    api: StateApi | None = None,
    state_file: str | os.PathLike[str] | None = None,
) -> StateAdapter:
    """Construct the adapter selected by *backend*."""
    if backend == PersistenceBackend.VOLATILE:
        return MemoryStateAdapter()
    if backend == PersistenceBackend.FILE:
        if state_file is None:
            raise SyncConfigError("state_file is required for the file backend")
        return FileStateAdapter(state_file)
    if backend == PersistenceBackend.REMOTE:
        if api is None:
            raise SyncConfigError("the durable-remote backend needs an endpoint client")
        return RemoteStateAdapter(api)
    raise SyncConfigError(f"Unsupported persistence backend: {backend!r}")
