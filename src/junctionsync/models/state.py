"""Shared junction state document.

The whole document is the unit of replication: writers submit a full,
self-consistent document and an accepted write replaces the stored one
wholesale. Nested records have fixed field sets so shape errors surface
as validation errors instead of silently-propagated garbage.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from typing import Any

from pydantic import Field, ValidationError

from junctionsync._constants import POLES, SYSTEM_WRITER
from junctionsync.exceptions import SyncMalformedStateError
from junctionsync.models._base import EpochMillis, SyncBaseModel

__all__ = [
    "ControlMode",
    "PriorityRanking",
    "SignalColor",
    "StateDocument",
    "TimeZonePlan",
    "TimingTuple",
    "default_state",
]


class SignalColor(enum.StrEnum):
    """Colour a pole is currently showing."""

    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"


class ControlMode(enum.StrEnum):
    """Junction operating mode."""

    MANUAL = "manual"
    AUTO = "auto"
    SEMI = "semi"


class TimingTuple(SyncBaseModel):
    """Phase durations of one pole within a timing plan, in seconds."""

    red: int = Field(ge=0)
    yellow: int = Field(ge=0)
    green_left: int = Field(ge=0)
    green_straight: int = Field(ge=0)
    green_right: int = Field(ge=0)


class PriorityRanking(SyncBaseModel):
    """Rank (1-3 by convention) of each green phase of one pole."""

    green_left: int
    green_straight: int
    green_right: int


class TimeZonePlan(SyncBaseModel):
    """A timing plan active between ``start_time`` and ``end_time``."""

    id: int
    name: str
    start_time: str
    end_time: str
    sequence: str
    time_periods: dict[str, TimingTuple] = Field(default_factory=dict)


class StateDocument(SyncBaseModel):
    """The single shared aggregate replicated between participants."""

    signal_status: dict[str, SignalColor]
    time_zones: list[TimeZonePlan]
    priorities: dict[str, PriorityRanking]
    control_mode: ControlMode
    ip_addresses: dict[str, str]
    last_updated: EpochMillis = Field(ge=0)
    last_updated_by: str = SYSTEM_WRITER

    @classmethod
    def field_for_key(cls, key: str) -> str | None:
        """Map a wire key (camelCase) or field name to the field name."""
        if key in cls.model_fields:
            return key
        for name, info in cls.model_fields.items():
            if info.alias == key:
                return name
        return None

    def merged(self, edit: Mapping[str, Any]) -> StateDocument:
        """Shallow-merge *edit* onto a copy of this document.

        Top-level keys in *edit* replace the corresponding field wholesale.
        Raises :class:`SyncMalformedStateError` for unknown keys or values
        that do not validate.
        """
        values: dict[str, Any] = {name: getattr(self, name) for name in type(self).model_fields}
        for key, value in edit.items():
            name = type(self).field_for_key(key)
            if name is None:
                raise SyncMalformedStateError(f"Unknown state field: {key!r}")
            values[name] = value
        try:
            return type(self).model_validate(values)
        except ValidationError as exc:
            raise SyncMalformedStateError(f"Invalid state edit: {exc}") from exc

    def stamped(self, last_updated: int, last_updated_by: str | None = None) -> StateDocument:
        """Copy with a new ``last_updated`` (and optionally writer)."""
        update: dict[str, Any] = {"last_updated": last_updated}
        if last_updated_by is not None:
            update["last_updated_by"] = last_updated_by
        return self.model_copy(update=update)

    def snapshot(self) -> StateDocument:
        """Deep copy safe to hand out to subscribers."""
        return self.model_copy(deep=True)


def _timing(red: int, yellow: int, left: int, straight: int, right: int) -> TimingTuple:
    return TimingTuple(red=red, yellow=yellow, green_left=left, green_straight=straight, green_right=right)


def _default_time_periods() -> dict[str, TimingTuple]:
    return {
        "P1": _timing(60, 5, 30, 25, 20),
        "P2": _timing(60, 5, 20, 30, 25),
        "P3": _timing(60, 5, 20, 25, 30),
        "P4": _timing(60, 5, 25, 20, 30),
    }


def default_state() -> StateDocument:
    """Built-in document used until a stored one has been seen.

    ``last_updated`` is ``0`` so that any stored document wins the
    conflict rule against it.
    """
    return StateDocument(
        signal_status={pole: SignalColor.RED for pole in POLES},
        time_zones=[
            TimeZonePlan(
                id=1,
                name="Time Zone 1",
                start_time="08:00",
                end_time="10:00",
                sequence="1,2,3,4,5,6,7",
                time_periods=_default_time_periods(),
            ),
            TimeZonePlan(
                id=2,
                name="Time Zone 2",
                start_time="16:00",
                end_time="19:00",
                sequence="8,9,10,11,12,13,14",
                time_periods=_default_time_periods(),
            ),
        ],
        priorities={
            "P1": PriorityRanking(green_left=1, green_straight=2, green_right=3),
            "P2": PriorityRanking(green_left=3, green_straight=1, green_right=2),
            "P3": PriorityRanking(green_left=3, green_straight=2, green_right=1),
            "P4": PriorityRanking(green_left=2, green_straight=3, green_right=1),
        },
        control_mode=ControlMode.AUTO,
        ip_addresses={
            "P1A": "192.168.1.6",
            "P1B": "192.168.1.7",
            "P2A": "192.168.1.8",
            "P2B": "192.168.1.9",
            "P3A": "192.168.1.10",
            "P3B": "192.168.1.11",
            "P4A": "192.168.1.12",
            "P4B": "192.168.1.13",
        },
        last_updated=0,
        last_updated_by=SYSTEM_WRITER,
    )
