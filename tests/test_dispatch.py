from __future__ import annotations

from collections.abc import Sequence

import pytest

from junctionsync.config import SyncConfig
from junctionsync.dispatch import DeviceCommand, SignalCommandBridge, commands_for_change, lamp_commands
from junctionsync.engine import SyncEngine
from junctionsync.models.state import SignalColor, default_state
from junctionsync.persistence import MemoryStateAdapter


class _RecordingDispatcher:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.single: list[DeviceCommand] = []
        self.batches: list[list[DeviceCommand]] = []

    async def send_command(self, command: DeviceCommand) -> None:
        if self.fail:
            raise ConnectionError("controller unreachable")
        self.single.append(command)

    async def send_batch(self, commands: Sequence[DeviceCommand]) -> None:
        if self.fail:
            raise ConnectionError("controller unreachable")
        self.batches.append(list(commands))


def test_lamp_commands_cover_both_boards() -> None:
    commands = lamp_commands("P2", SignalColor.GREEN)

    assert [(c.target, c.action) for c in commands] == [
        ("P2A", "red_off"),
        ("P2B", "red_off"),
        ("P2A", "yel_off"),
        ("P2B", "yel_off"),
        ("P2A", "grnL_on"),
        ("P2B", "grnL_on"),
        ("P2A", "grnS_on"),
        ("P2B", "grnS_on"),
        ("P2A", "grnR_on"),
        ("P2B", "grnR_on"),
    ]
    assert {c.action for c in lamp_commands("P1", SignalColor.RED)} == {
        "red_on",
        "yel_off",
        "grnL_off",
        "grnS_off",
        "grnR_off",
    }


def test_no_change_means_no_commands() -> None:
    doc = default_state()

    assert commands_for_change(doc, doc.stamped(99, "client_x")) == []


def test_changes_map_to_system_commands() -> None:
    before = default_state()
    plans = before.to_wire()["timeZones"]
    plans[1]["endTime"] = "20:00"
    after = before.merged(
        {
            "signalStatus": {**before.to_wire()["signalStatus"], "P3": "yellow"},
            "controlMode": "manual",
            "priorities": {**before.to_wire()["priorities"], "P1": {"greenLeft": 2, "greenStraight": 1, "greenRight": 3}},
            "timeZones": plans,
        }
    )

    commands = commands_for_change(before, after)

    lamps = [c for c in commands if c.target != "system"]
    assert {c.target for c in lamps} == {"P3A", "P3B"}
    assert ("P3A", "yel_on") in {(c.target, c.action) for c in lamps}

    system = [(c.action, c.value) for c in commands if c.target == "system"]
    assert ("set_control_mode", "manual") in system
    assert ("update_priority", {"pole": "P1", "signal": "greenLeft", "priority": 2}) in system
    assert ("update_priority", {"pole": "P1", "signal": "greenStraight", "priority": 1}) in system
    assert not any(v == {"pole": "P1", "signal": "greenRight", "priority": 3} for _, v in system)
    zone_updates = [v for action, v in system if action == "update_time_zone"]
    assert len(zone_updates) == 1
    assert zone_updates[0]["id"] == 2
    assert zone_updates[0]["endTime"] == "20:00"


@pytest.mark.asyncio
async def test_bridge_dispatches_published_changes() -> None:
    dispatcher = _RecordingDispatcher()
    config = SyncConfig(client_id="client_ui", persistence="volatile", polling_interval_ms=60_000)

    async with SyncEngine(config, adapter=MemoryStateAdapter()) as engine:
        async with SignalCommandBridge(engine, dispatcher):
            await engine.publish({"controlMode": "semi"})
            await engine.publish({"signalStatus": {**engine.state.to_wire()["signalStatus"], "P4": "green"}})

    assert dispatcher.single == [DeviceCommand(target="system", action="set_control_mode", value="semi")]
    assert len(dispatcher.batches) == 1
    assert {c.target for c in dispatcher.batches[0]} == {"P4A", "P4B"}


@pytest.mark.asyncio
async def test_bridge_logs_and_survives_dispatch_failure(caplog: pytest.LogCaptureFixture) -> None:
    dispatcher = _RecordingDispatcher(fail=True)
    config = SyncConfig(client_id="client_ui", persistence="volatile", polling_interval_ms=60_000)

    async with SyncEngine(config, adapter=MemoryStateAdapter()) as engine:
        async with SignalCommandBridge(engine, dispatcher):
            assert await engine.publish({"controlMode": "manual"}) is True
            assert await engine.publish({"controlMode": "auto"}) is True

        assert engine.state.control_mode == "auto"

    assert "Delivering 1 controller command(s) failed" in caplog.text
