"""Translation of document changes into junction controller commands.

The controller boards are not reached from here. A
:class:`CommandDispatcher` supplied by the caller delivers commands; this
module only decides which commands a change implies.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol

from junctionsync._constants import boards_for_pole
from junctionsync.models._base import SyncBaseModel
from junctionsync.models.state import SignalColor, StateDocument

if TYPE_CHECKING:
    from junctionsync.engine import SyncEngine

_logger = logging.getLogger(__name__)

SYSTEM_TARGET = "system"

_LAMP_ACTIONS: dict[SignalColor, tuple[str, ...]] = {
    SignalColor.RED: ("red_on", "yel_off", "grnL_off", "grnS_off", "grnR_off"),
    SignalColor.YELLOW: ("red_off", "yel_on", "grnL_off", "grnS_off", "grnR_off"),
    SignalColor.GREEN: ("red_off", "yel_off", "grnL_on", "grnS_on", "grnR_on"),
}


class DeviceCommand(SyncBaseModel):
    """One instruction for a controller board or the junction as a whole."""

    target: str
    action: str
    value: Any = None


class CommandDispatcher(Protocol):
    async def send_command(self, command: DeviceCommand) -> None: ...

    async def send_batch(self, commands: Sequence[DeviceCommand]) -> None: ...


def lamp_commands(pole: str, color: SignalColor) -> list[DeviceCommand]:
    """Commands switching both boards of *pole* to *color*."""
    return [
        DeviceCommand(target=board, action=action)
        for action in _LAMP_ACTIONS[color]
        for board in boards_for_pole(pole)
    ]


def commands_for_change(previous: StateDocument, current: StateDocument) -> list[DeviceCommand]:
    """Commands that bring the controllers from *previous* to *current*."""
    commands: list[DeviceCommand] = []

    for pole, color in current.signal_status.items():
        if previous.signal_status.get(pole) != color:
            commands.extend(lamp_commands(pole, color))

    if previous.control_mode != current.control_mode:
        commands.append(
            DeviceCommand(target=SYSTEM_TARGET, action="set_control_mode", value=str(current.control_mode))
        )

    for pole, ranking in current.priorities.items():
        before = previous.priorities.get(pole)
        for name, info in type(ranking).model_fields.items():
            rank = getattr(ranking, name)
            if before is not None and getattr(before, name) == rank:
                continue
            commands.append(
                DeviceCommand(
                    target=SYSTEM_TARGET,
                    action="update_priority",
                    value={"pole": pole, "signal": info.alias or name, "priority": rank},
                )
            )

    plans_before = {plan.id: plan for plan in previous.time_zones}
    for plan in current.time_zones:
        if plans_before.get(plan.id) != plan:
            commands.append(DeviceCommand(target=SYSTEM_TARGET, action="update_time_zone", value=plan.to_wire()))

    return commands


class SignalCommandBridge:
    """Follows a :class:`~junctionsync.engine.SyncEngine` and drives the controllers.

    The first document seen is taken as the baseline and produces no
    commands. Commands are delivered in order by one background worker;
    delivery failures are logged and do not affect synchronization.
    """

    def __init__(self, engine: SyncEngine, dispatcher: CommandDispatcher) -> None:
        self._engine = engine
        self._dispatcher = dispatcher
        self._baseline: StateDocument | None = None
        self._queue: asyncio.Queue[list[DeviceCommand]] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._unsubscribe: Callable[[], None] | None = None

    async def __aenter__(self) -> SignalCommandBridge:
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    def start(self) -> None:
        if self._worker is not None:
            return
        self._worker = asyncio.create_task(self._run(), name="junctionsync-dispatch")
        self._unsubscribe = self._engine.subscribe(self._on_state)

    async def stop(self) -> None:
        """Stop following the engine once queued commands are delivered."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        worker = self._worker
        self._worker = None
        if worker is None:
            return
        await self._queue.join()
        worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await worker

    def _on_state(self, doc: StateDocument) -> None:
        previous, self._baseline = self._baseline, doc
        if previous is None:
            return
        commands = commands_for_change(previous, doc)
        if commands:
            self._queue.put_nowait(commands)

    async def _run(self) -> None:
        while True:
            commands = await self._queue.get()
            try:
                if len(commands) == 1:
                    await self._dispatcher.send_command(commands[0])
                else:
                    await self._dispatcher.send_batch(commands)
            except Exception:
                _logger.exception("Delivering %d controller command(s) failed", len(commands))
            finally:
                self._queue.task_done()
