from __future__ import annotations

import asyncio
import io

import pytest

from conftest import NOTIFY_UUID, SERVICE_UUID, WRITE_UUID, make_profile
from gattseq.cli import ConsoleOperator
from gattseq.core.errors import SelectionParseError
from gattseq.core.events import (
    CharacteristicsDiscovered,
    Connected,
    Disconnected,
    ScanSighting,
    ScanStopped,
    ServicesDiscovered,
    ValueUpdated,
    WriteCompleted,
)
from gattseq.core.model import DiscoveredCharacteristic, PeripheralDescriptor, State
from gattseq.core.session import SessionDriver, run_session

SENSOR = PeripheralDescriptor(id="A", name="Sensor1", rssi=-40)
UNNAMED = PeripheralDescriptor(id="B", name=None, rssi=-60)


class ScriptedOperator:
    def __init__(self, selection: int | Exception) -> None:
        self.selection = selection
        self.presented: list[list[tuple[int, str, str]]] = []

    def present_list(self, entries) -> None:
        self.presented.append(list(entries))

    def read_selection(self) -> int:
        if isinstance(self.selection, Exception):
            raise self.selection
        return self.selection


def _scan(machine, scheduler, operator, *peripherals) -> SessionDriver:
    driver = SessionDriver(machine, operator, scan_window_s=5.0)
    driver.start()
    for peripheral in peripherals:
        machine.dispatch(ScanSighting(peripheral))
    scheduler.advance(5.0)
    return driver


def test_selection_connects_to_chosen_peripheral(make_machine, transport, scheduler) -> None:
    machine = make_machine()
    operator = ScriptedOperator(1)

    _scan(machine, scheduler, operator, SENSOR, UNNAMED)

    assert operator.presented == [[(1, "Sensor1", "A")]]
    assert machine.state is State.CONNECTING
    assert ("connect", "A") in transport.calls
    assert machine.session.selected == SENSOR


def test_out_of_range_selection_ends_session(make_machine, transport, scheduler, output) -> None:
    machine = make_machine()

    _scan(machine, scheduler, ScriptedOperator(2), SENSOR, UNNAMED)

    assert machine.state is State.DISCONNECTED
    assert "connect" not in transport.names()
    assert any(line.startswith("Invalid selection: Selection 2 is out of range 1-1") for line in output)
    assert len(machine.terminal_reasons) == 1


def test_unparseable_selection_ends_session(make_machine, transport, scheduler, output) -> None:
    machine = make_machine()

    _scan(machine, scheduler, ScriptedOperator(SelectionParseError("'x' is not a device number")), SENSOR)

    assert machine.state is State.DISCONNECTED
    assert "connect" not in transport.names()
    assert "Invalid selection: 'x' is not a device number" in output


def test_empty_scan_skips_prompt(make_machine, transport, scheduler, output) -> None:
    machine = make_machine()
    operator = ScriptedOperator(1)

    _scan(machine, scheduler, operator, UNNAMED)

    assert operator.presented == []
    assert "No BLE devices found." in output
    assert machine.terminal_reasons == ["No BLE devices found"]


class SimulatedPeripheralTransport:
    """Answers every request on the next loop iteration, like a well-behaved peripheral."""

    def __init__(self, disconnect_after_writes: int) -> None:
        self.disconnect_after_writes = disconnect_after_writes
        self.writes: list[bytes] = []
        self.closed = False

    def bind(self, post) -> None:
        self.post = post
        self.loop = asyncio.get_running_loop()

    def _reply(self, event) -> None:
        self.loop.call_soon(self.post, event)

    def start_scan(self) -> None:
        self._reply(ScanSighting(SENSOR))
        self._reply(ScanSighting(UNNAMED))

    def stop_scan(self) -> None:
        self._reply(ScanStopped())

    def connect(self, peripheral_id: str) -> None:
        self._reply(Connected(peripheral_id))

    def discover_services(self) -> None:
        self._reply(ServicesDiscovered(services=(SERVICE_UUID,)))

    def discover_characteristics(self, service_id: str) -> None:
        self._reply(
            CharacteristicsDiscovered(
                service_id,
                (DiscoveredCharacteristic(NOTIFY_UUID), DiscoveredCharacteristic(WRITE_UUID)),
            )
        )

    def set_notify(self, characteristic, enabled: bool) -> None:
        self._reply(ValueUpdated(characteristic.characteristic_id, b"\x10\x20"))

    def write(self, characteristic, payload: bytes, *, response: bool) -> None:
        self.writes.append(payload)
        self._reply(WriteCompleted(characteristic.characteristic_id))
        if len(self.writes) == self.disconnect_after_writes:
            self.loop.call_later(0.2, self.post, Disconnected(SENSOR.id, "remote user terminated"))

    async def close(self) -> None:
        self.closed = True


def test_run_session_end_to_end() -> None:
    profile = make_profile(scan_window_s=0.01, cooldown_s=0.02)
    transport = SimulatedPeripheralTransport(disconnect_after_writes=4)
    output: list[str] = []

    result = asyncio.run(run_session(profile, transport, ScriptedOperator(1), output.append))

    assert transport.writes == [b"\x0b", b"\x08", b"\x00", b"\xaa"]
    assert transport.closed
    assert result.connected
    assert result.peripheral == SENSOR
    assert result.commands_written == 4
    assert result.reason == "Disconnected: remote user terminated"
    assert "10 20" in output
    assert "All hex values written." in output


def test_run_session_invalid_selection() -> None:
    profile = make_profile(scan_window_s=0.01)
    transport = SimulatedPeripheralTransport(disconnect_after_writes=4)
    output: list[str] = []

    result = asyncio.run(run_session(profile, transport, ScriptedOperator(5), output.append))

    assert not result.connected
    assert result.commands_written == 0
    assert result.reason.startswith("Invalid selection")
    assert transport.closed
    assert transport.writes == []


def test_run_session_ends_when_console_input_is_closed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("sys.stdin", io.StringIO(""))
    profile = make_profile(scan_window_s=0.01)
    transport = SimulatedPeripheralTransport(disconnect_after_writes=4)
    output: list[str] = []

    result = asyncio.run(
        asyncio.wait_for(run_session(profile, transport, ConsoleOperator(), output.append), 2.0)
    )

    assert not result.connected
    assert result.reason == "Invalid selection: no device number entered"
    assert "Invalid selection: no device number entered" in output
    assert transport.closed


def test_run_session_reraises_unexpected_operator_error() -> None:
    profile = make_profile(scan_window_s=0.01)
    transport = SimulatedPeripheralTransport(disconnect_after_writes=4)

    with pytest.raises(RuntimeError, match="terminal went away"):
        asyncio.run(
            asyncio.wait_for(
                run_session(profile, transport, ScriptedOperator(RuntimeError("terminal went away")), print),
                2.0,
            )
        )

    assert transport.closed
    assert transport.writes == []
