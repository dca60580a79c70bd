from __future__ import annotations

import pytest
from pydantic import ValidationError

from junctionsync.exceptions import SyncMalformedStateError
from junctionsync.models import (
    ControlMode,
    IdentifyMessage,
    SignalColor,
    StateDocument,
    StateUpdateMessage,
    default_state,
    parse_socket_message,
)


def test_default_state_matches_factory_layout() -> None:
    doc = default_state()

    assert doc.signal_status == {pole: SignalColor.RED for pole in ("P1", "P2", "P3", "P4")}
    assert doc.control_mode == ControlMode.AUTO
    assert [plan.id for plan in doc.time_zones] == [1, 2]
    assert doc.time_zones[0].time_periods["P1"].green_left == 30
    assert doc.priorities["P2"].green_straight == 1
    assert doc.ip_addresses["P1A"] == "192.168.1.6"
    assert doc.ip_addresses["P4B"] == "192.168.1.13"
    assert doc.last_updated == 0
    assert doc.last_updated_by == "system"


def test_wire_form_uses_camel_case_keys() -> None:
    wire = default_state().to_wire()

    assert set(wire) == {
        "signalStatus",
        "timeZones",
        "priorities",
        "controlMode",
        "ipAddresses",
        "lastUpdated",
        "lastUpdatedBy",
    }
    assert wire["timeZones"][0]["startTime"] == "08:00"
    assert wire["timeZones"][0]["timePeriods"]["P1"] == {
        "red": 60,
        "yellow": 5,
        "greenLeft": 30,
        "greenStraight": 25,
        "greenRight": 20,
    }
    assert wire["priorities"]["P1"] == {"greenLeft": 1, "greenStraight": 2, "greenRight": 3}
    assert wire["controlMode"] == "auto"


def test_document_parses_from_wire_and_coerces_float_timestamp() -> None:
    wire = default_state().to_wire()
    wire["lastUpdated"] = 1_700_000_000_123.0
    wire["lastUpdatedBy"] = "client_abc"

    doc = StateDocument.model_validate(wire)

    assert doc.last_updated == 1_700_000_000_123
    assert isinstance(doc.last_updated, int)
    assert doc.last_updated_by == "client_abc"
    assert doc == StateDocument.model_validate(doc.to_wire())


def test_document_rejects_bad_shapes() -> None:
    wire = default_state().to_wire()

    with pytest.raises(ValidationError):
        StateDocument.model_validate({**wire, "signalStatus": {"P1": "blue"}})
    with pytest.raises(ValidationError):
        StateDocument.model_validate({**wire, "lastUpdated": -1})
    with pytest.raises(ValidationError):
        StateDocument.model_validate({**wire, "controlMode": "chaos"})

    del wire["priorities"]
    with pytest.raises(ValidationError):
        StateDocument.model_validate(wire)


def test_merged_replaces_top_level_fields_wholesale() -> None:
    doc = default_state()

    edited = doc.merged({"signalStatus": {"P1": "green"}, "control_mode": "manual"})

    assert edited.signal_status == {"P1": SignalColor.GREEN}
    assert edited.control_mode == ControlMode.MANUAL
    assert edited.time_zones == doc.time_zones
    assert edited.last_updated == doc.last_updated
    assert doc.control_mode == ControlMode.AUTO


def test_merged_rejects_unknown_keys_and_invalid_values() -> None:
    doc = default_state()

    with pytest.raises(SyncMalformedStateError, match="Unknown state field"):
        doc.merged({"mystery": 1})
    with pytest.raises(SyncMalformedStateError):
        doc.merged({"controlMode": "chaos"})

    assert issubclass(SyncMalformedStateError, ValueError)


def test_stamped_sets_timestamp_and_optionally_writer() -> None:
    doc = default_state()

    assert doc.stamped(5).last_updated_by == "system"
    stamped = doc.stamped(5, "client_1")
    assert (stamped.last_updated, stamped.last_updated_by) == (5, "client_1")
    assert doc.last_updated == 0


def test_snapshot_is_independent_of_source() -> None:
    doc = default_state()
    copy = doc.snapshot()

    copy.signal_status["P1"] = SignalColor.GREEN
    copy.ip_addresses["P1A"] = "10.0.0.1"

    assert doc.signal_status["P1"] == SignalColor.RED
    assert doc.ip_addresses["P1A"] == "192.168.1.6"


def test_parse_socket_messages() -> None:
    identify = parse_socket_message('{"type":"identify","clientId":"client_1"}')
    assert isinstance(identify, IdentifyMessage)
    assert identify.client_id == "client_1"

    update = StateUpdateMessage(state=default_state().stamped(42), client_id="client_2")
    parsed = parse_socket_message(update.model_dump_json(by_alias=True))
    assert isinstance(parsed, StateUpdateMessage)
    assert parsed.state.last_updated == 42
    assert parsed.client_id == "client_2"

    with pytest.raises(ValidationError):
        parse_socket_message('{"type":"shout","clientId":"x"}')
    with pytest.raises(ValidationError):
        parse_socket_message("not json")
