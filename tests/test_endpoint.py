from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator

import pytest
from aiohttp import test_utils

from junctionsync.config import ServerConfig
from junctionsync.exceptions import SyncMalformedStateError, SyncPersistenceError
from junctionsync.models.state import ControlMode, StateDocument, default_state
from junctionsync.persistence import MemoryStateAdapter, SaveResult, StateAdapter
from junctionsync.server.app import create_app
from junctionsync.server.endpoint import AuthoritativeEndpoint


class _FlakyAdapter:
    def __init__(self, *, fail_reads: bool = False, fail_writes: bool = False) -> None:
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes
        self._inner = MemoryStateAdapter(default_state().stamped(1000))

    async def get_state(self) -> StateDocument | None:
        if self.fail_reads:
            raise SyncPersistenceError("database unavailable")
        return await self._inner.get_state()

    async def save_state(self, doc: StateDocument) -> SaveResult:
        if self.fail_writes:
            return SaveResult.failure("disk full")
        return await self._inner.save_state(doc)


def _endpoint(adapter: StateAdapter | None = None, clock_value: int = 2500) -> AuthoritativeEndpoint:
    return AuthoritativeEndpoint(
        adapter or MemoryStateAdapter(default_state().stamped(1000)),
        clock=lambda: clock_value,
    )


@contextlib.asynccontextmanager
async def _serve(
    adapter: StateAdapter | None = None,
    config: ServerConfig | None = None,
) -> AsyncIterator[test_utils.TestClient]:
    app = create_app(config or ServerConfig(environment="test"), adapter)
    async with test_utils.TestClient(test_utils.TestServer(app)) as client:
        yield client


# ----------------------------------------------------------------------
# Admission
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_newer_write_accepted_and_stale_write_ignored() -> None:
    endpoint = _endpoint()
    base = default_state().to_wire()

    first = await endpoint.submit({**base, "controlMode": "manual", "lastUpdated": 2000})
    assert first.accepted
    assert first.state.control_mode == ControlMode.MANUAL
    assert first.state.last_updated == 2500

    second = await endpoint.submit({**base, "controlMode": "semi", "lastUpdated": 1500})
    assert not second.accepted
    assert second.state.control_mode == ControlMode.MANUAL
    assert second.state == first.state

    stored = await endpoint.read()
    assert stored == first.state


@pytest.mark.asyncio
async def test_equal_timestamp_is_not_admitted() -> None:
    endpoint = _endpoint()

    result = await endpoint.submit({**default_state().to_wire(), "controlMode": "semi", "lastUpdated": 1000})

    assert not result.accepted
    assert result.state.control_mode == ControlMode.AUTO


@pytest.mark.asyncio
async def test_server_stamp_never_goes_backwards() -> None:
    # Clock behind the stored stamp.
    endpoint = _endpoint(clock_value=10)

    result = await endpoint.submit({**default_state().to_wire(), "lastUpdated": 5000})

    assert result.accepted
    assert result.state.last_updated == 1001


@pytest.mark.asyncio
async def test_missing_fields_are_completed_from_stored_document() -> None:
    endpoint = _endpoint()

    result = await endpoint.submit({"controlMode": "manual", "lastUpdated": 2000, "lastUpdatedBy": "client_9"})

    assert result.accepted
    assert result.state.control_mode == ControlMode.MANUAL
    assert result.state.last_updated_by == "client_9"
    assert result.state.ip_addresses == default_state().ip_addresses


@pytest.mark.asyncio
async def test_first_write_against_empty_store_is_accepted() -> None:
    endpoint = AuthoritativeEndpoint(MemoryStateAdapter(), clock=lambda: 42)

    result = await endpoint.submit({"signalStatus": {"P1": "green"}, "lastUpdated": 0})

    assert result.accepted
    assert result.state.last_updated == 42
    assert result.state.signal_status == {"P1": "green"}


@pytest.mark.asyncio
async def test_malformed_payloads_raise_and_leave_store_untouched() -> None:
    endpoint = _endpoint()
    before = await endpoint.read()

    with pytest.raises(SyncMalformedStateError):
        await endpoint.submit(["not", "an", "object"])
    with pytest.raises(SyncMalformedStateError):
        await endpoint.submit({"signalStatus": {"P1": "purple"}, "lastUpdated": 9999})

    assert await endpoint.read() == before


@pytest.mark.asyncio
async def test_backend_write_failure_raises_persistence_error() -> None:
    endpoint = _endpoint(_FlakyAdapter(fail_writes=True))

    with pytest.raises(SyncPersistenceError, match="disk full"):
        await endpoint.submit({"lastUpdated": 5000})


@pytest.mark.asyncio
async def test_concurrent_submissions_admit_one_winner() -> None:
    accepted: list[StateDocument] = []

    async def record(doc: StateDocument) -> None:
        accepted.append(doc)

    endpoint = AuthoritativeEndpoint(
        MemoryStateAdapter(default_state().stamped(1000)),
        clock=lambda: 2500,
        on_accepted=record,
    )
    payloads = [{"controlMode": mode, "lastUpdated": 2000} for mode in ("manual", "semi")]

    results = await asyncio.gather(*(endpoint.submit(p) for p in payloads))

    assert sorted(r.accepted for r in results) == [False, True]
    assert len(accepted) == 1
    assert (await endpoint.read()) == accepted[0]


# ----------------------------------------------------------------------
# HTTP surface
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_returns_empty_object_before_first_write() -> None:
    async with _serve(MemoryStateAdapter()) as client:
        resp = await client.get("/api/state")
        assert resp.status == 200
        assert await resp.json() == {}


@pytest.mark.asyncio
async def test_post_then_get_round_trip() -> None:
    async with _serve(MemoryStateAdapter(default_state().stamped(1000))) as client:
        body = {**default_state().to_wire(), "controlMode": "manual", "lastUpdated": 2000, "lastUpdatedBy": "c1"}

        resp = await client.post("/api/state", json=body)
        assert resp.status == 200
        payload = await resp.json()
        assert payload["success"] is True
        assert payload["state"]["controlMode"] == "manual"
        # Re-stamped with the server clock.
        assert payload["state"]["lastUpdated"] > 2000

        stale = await client.post("/api/state", json={**body, "controlMode": "semi", "lastUpdated": 1500})
        assert stale.status == 200
        assert (await stale.json())["state"]["controlMode"] == "manual"

        current = await (await client.get("/api/state")).json()
        assert current == payload["state"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw",
    [
        b"{not json",
        b"[1, 2, 3]",
        b'"just a string"',
        b'{"signalStatus": {"P1": "purple"}, "lastUpdated": 99999999999999}',
    ],
)
async def test_malformed_post_returns_400_and_state_is_unchanged(raw: bytes) -> None:
    async with _serve(MemoryStateAdapter(default_state().stamped(1000))) as client:
        before = await (await client.get("/api/state")).json()

        resp = await client.post("/api/state", data=raw, headers={"Content-Type": "application/json"})

        assert resp.status == 400
        assert await resp.json() == {"error": "Invalid state data"}
        assert await (await client.get("/api/state")).json() == before


@pytest.mark.asyncio
async def test_backend_failures_return_500() -> None:
    adapter = _FlakyAdapter(fail_writes=True)
    async with _serve(adapter) as client:
        resp = await client.post("/api/state", json={"lastUpdated": 5000})
        assert resp.status == 500
        assert await resp.json() == {"error": "Failed to update state"}

        adapter.fail_reads = True
        resp = await client.get("/api/state")
        assert resp.status == 500
        assert await resp.json() == {"error": "Failed to retrieve state"}

        resp = await client.get("/api/health")
        assert resp.status == 500
        report = await resp.json()
        assert report["status"] == "error"
        assert report["message"] == "database unavailable"
        assert "timestamp" in report


@pytest.mark.asyncio
async def test_health_reports_environment_and_version() -> None:
    async with _serve(MemoryStateAdapter()) as client:
        resp = await client.get("/api/health")

        assert resp.status == 200
        report = await resp.json()
        assert report["status"] == "ok"
        assert report["environment"] == "test"
        assert report["envCheck"] is True
        assert isinstance(report["version"], str)
        assert report["timestamp"].endswith("Z")


@pytest.mark.asyncio
async def test_custom_api_path_is_honoured() -> None:
    config = ServerConfig(api_path="/junction/state")
    async with _serve(MemoryStateAdapter(), config) as client:
        assert (await client.get("/junction/state")).status == 200
        assert (await client.get("/api/state")).status == 404
