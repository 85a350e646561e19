from __future__ import annotations

import heapq
import itertools
from collections.abc import Callable

import pytest

from gattseq.core.events import ScanStopped
from gattseq.core.machine import ConnectionStateMachine
from gattseq.core.model import CharacteristicRef, CooldownPolicy, Profile, Session

NOTIFY_UUID = "49535343-1e4d-4bd9-ba61-23c647249616"
WRITE_UUID = "49535343-8841-43f4-a8d4-ecbe34729bb3"
SERVICE_UUID = "49535343-fe7d-4ae5-8fa9-9fafd205e455"


class ManualScheduler:
    """Scheduler whose clock only moves when a test calls `advance`."""

    def __init__(self) -> None:
        self.clock = 0.0
        self._timers: list[tuple[float, int, Callable[[], None]]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self.clock

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> None:
        heapq.heappush(self._timers, (self.clock + delay_s, next(self._seq), callback))

    @property
    def pending(self) -> int:
        return len(self._timers)

    def advance(self, seconds: float) -> None:
        target = self.clock + seconds
        while self._timers and self._timers[0][0] <= target:
            due, _, callback = heapq.heappop(self._timers)
            self.clock = due
            callback()
        self.clock = target


class RecordingTransport:
    def __init__(self, scheduler: ManualScheduler) -> None:
        self.scheduler = scheduler
        self.post = None
        self.calls: list[tuple] = []
        self.writes: list[tuple[float, CharacteristicRef, bytes, bool]] = []
        self.in_flight_at_write: list[bool] = []
        self.machine: ConnectionStateMachine | None = None
        self.closed = False
        self.confirm_scan_stop = True

    def bind(self, post) -> None:
        self.post = post

    def start_scan(self) -> None:
        self.calls.append(("start_scan",))

    def stop_scan(self) -> None:
        self.calls.append(("stop_scan",))
        if self.confirm_scan_stop:
            self.scheduler.call_later(0, lambda: self.post(ScanStopped()))

    def connect(self, peripheral_id: str) -> None:
        self.calls.append(("connect", peripheral_id))

    def discover_services(self) -> None:
        self.calls.append(("discover_services",))

    def discover_characteristics(self, service_id: str) -> None:
        self.calls.append(("discover_characteristics", service_id))

    def set_notify(self, characteristic: CharacteristicRef, enabled: bool) -> None:
        self.calls.append(("set_notify", characteristic, enabled))

    def write(self, characteristic: CharacteristicRef, payload: bytes, *, response: bool) -> None:
        if self.machine is not None:
            self.in_flight_at_write.append(self.machine.session.queue.write_in_flight)
        self.writes.append((self.scheduler.now(), characteristic, payload, response))

    async def close(self) -> None:
        self.closed = True

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]


def make_profile(**overrides) -> Profile:
    values = dict(
        id="test",
        name="Test",
        notify_char_uuid=NOTIFY_UUID,
        write_char_uuid=WRITE_UUID,
        commands=("0B", "08", "00", "AA"),
        scan_window_s=5.0,
        cooldown_s=2.0,
        cooldown_policy=CooldownPolicy.TIMER,
        write_with_response=True,
    )
    values.update(overrides)
    return Profile(**values)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def transport(scheduler: ManualScheduler) -> RecordingTransport:
    return RecordingTransport(scheduler)


@pytest.fixture
def output() -> list[str]:
    return []


@pytest.fixture
def make_machine(transport: RecordingTransport, scheduler: ManualScheduler, output: list[str]):
    def _make(**profile_overrides) -> ConnectionStateMachine:
        terminal: list[str] = []
        machine = ConnectionStateMachine(
            Session(profile=make_profile(**profile_overrides)),
            transport,
            scheduler,
            echo=output.append,
            on_terminal=terminal.append,
        )
        machine.terminal_reasons = terminal
        transport.machine = machine
        transport.bind(machine.dispatch)
        return machine

    return _make
