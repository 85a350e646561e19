"""Top-level sequencing of one session: scan, operator selection, connect."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Protocol

from gattseq.core.errors import DeviceSelectionError
from gattseq.core.machine import ConnectionStateMachine
from gattseq.core.model import PeripheralDescriptor, Profile, Session, SessionResult
from gattseq.core.scheduler import AsyncioScheduler, Scheduler
from gattseq.transports.base import Transport

LOGGER = logging.getLogger(__name__)


class Operator(Protocol):
    def present_list(self, entries: Sequence[tuple[int, str, str]]) -> None:
        """Show ``(index, name, id)`` rows to the operator."""

    def read_selection(self) -> int:
        """Return the chosen 1-based index; raise `SelectionParseError` on bad input."""


class SessionDriver:
    def __init__(
        self,
        machine: ConnectionStateMachine,
        operator: Operator,
        *,
        scan_window_s: float,
    ) -> None:
        self.machine = machine
        self.operator = operator
        self.scan_window_s = scan_window_s
        machine.on_selection = self.select

    def start(self) -> None:
        self.machine.start_scan(self.scan_window_s)

    def select(self, peripherals: Sequence[PeripheralDescriptor]) -> None:
        if not peripherals:
            self.machine.echo("No BLE devices found.")
            self.machine.terminate("No BLE devices found")
            return

        self.operator.present_list(
            [(index, peripheral.name or "Unknown", peripheral.id) for index, peripheral in enumerate(peripherals, start=1)]
        )
        try:
            index = self.operator.read_selection()
            descriptor = self.machine.session.registry.by_index(index)
        except DeviceSelectionError as exc:
            self.machine.echo(f"Invalid selection: {exc}")
            self.machine.terminate(f"Invalid selection: {exc}")
            return

        self.machine.connect(descriptor)


async def run_session(
    profile: Profile,
    transport: Transport,
    operator: Operator,
    echo: Callable[[str], None],
    *,
    scheduler: Scheduler | None = None,
) -> SessionResult:
    """Run one session until it reaches the terminal state.

    A session that connects and drains its commands stays active, printing
    notifications, until the peripheral disconnects or the task is cancelled.
    An unexpected error raised while handling an event ends the session and
    is re-raised here. The transport is closed on the way out in every case.
    """
    loop = asyncio.get_running_loop()
    finished: asyncio.Future[str] = loop.create_future()

    def _on_terminal(reason: str) -> None:
        if not finished.done():
            finished.set_result(reason)

    def _on_error(exc: Exception) -> None:
        if not finished.done():
            finished.set_exception(exc)

    session = Session(profile=profile)
    machine = ConnectionStateMachine(
        session,
        transport,
        scheduler or AsyncioScheduler(loop),
        echo=echo,
        on_terminal=_on_terminal,
        on_error=_on_error,
    )
    driver = SessionDriver(machine, operator, scan_window_s=profile.scan_window_s)

    transport.bind(machine.dispatch)
    try:
        driver.start()
        reason = await finished
    finally:
        await transport.close()

    LOGGER.debug("Session finished: %s", reason)
    return SessionResult(
        peripheral=session.selected,
        connected=session.connected,
        reason=reason,
        commands_written=session.queue.writes_issued,
    )
