"""Connection state machine: scan, connect, discover, subscribe, drain writes."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence

from gattseq.core import hexcodec
from gattseq.core.errors import InvalidHexError, NoActiveCharacteristicError, SessionStateError
from gattseq.core.events import (
    CharacteristicsDiscovered,
    ConnectFailed,
    Connected,
    CooldownElapsed,
    Disconnected,
    Event,
    ScanSighting,
    ScanStopped,
    ScanWindowElapsed,
    ServicesDiscovered,
    TransportUnavailable,
    ValueUpdated,
    ValueUpdateFailed,
    WriteCompleted,
)
from gattseq.core.model import (
    CharacteristicRef,
    ConnectionContext,
    CooldownPolicy,
    PeripheralDescriptor,
    Role,
    Session,
    State,
)
from gattseq.core.notify import NotificationSink
from gattseq.core.scheduler import Scheduler
from gattseq.transports.base import Transport

LOGGER = logging.getLogger(__name__)

Echo = Callable[[str], None]
SelectionHook = Callable[[Sequence[PeripheralDescriptor]], None]
TerminalHook = Callable[[str], None]
ErrorHook = Callable[[Exception], None]


class ConnectionStateMachine:
    """Single-actor owner of a `Session`.

    All inputs arrive through `dispatch` (transport completions, timer
    expiries) or the explicit operations `start_scan`, `connect`,
    `drain_next` and `terminate`. None of them may be called concurrently;
    the asyncio loop running the session provides that guarantee.
    """

    def __init__(
        self,
        session: Session,
        transport: Transport,
        scheduler: Scheduler,
        *,
        echo: Echo,
        on_selection: SelectionHook | None = None,
        on_terminal: TerminalHook | None = None,
        on_error: ErrorHook | None = None,
    ) -> None:
        self.session = session
        self.transport = transport
        self.scheduler = scheduler
        self.echo = echo
        self.sink = NotificationSink(echo)
        self.on_selection = on_selection
        self.on_terminal = on_terminal
        self.on_error = on_error
        self._handlers: dict[type, Callable[[Event], None]] = {
            ScanSighting: self._on_scan_sighting,
            ScanWindowElapsed: self._on_scan_window_elapsed,
            ScanStopped: self._on_scan_stopped,
            TransportUnavailable: self._on_transport_unavailable,
            Connected: self._on_connected,
            ConnectFailed: self._on_connect_failed,
            Disconnected: self._on_disconnected,
            ServicesDiscovered: self._on_services_discovered,
            CharacteristicsDiscovered: self._on_characteristics_discovered,
            WriteCompleted: self._on_write_completed,
            CooldownElapsed: self._on_cooldown_elapsed,
            ValueUpdated: self._on_value_updated,
            ValueUpdateFailed: self._on_value_update_failed,
        }

    @property
    def state(self) -> State:
        return self.session.state

    def dispatch(self, event: Event) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unsupported event {event!r}")
        LOGGER.debug("[%s] %r", self.session.state.value, event)
        try:
            handler(event)
        except Exception as exc:
            if self.on_error is None:
                raise
            LOGGER.debug("Handler for %r failed", event, exc_info=True)
            self.on_error(exc)
            self.terminate(f"{type(exc).__name__}: {exc}")

    # operations

    def start_scan(self, window_s: float) -> None:
        self._require(State.IDLE, "start scanning")
        self._transition(State.SCANNING)
        self.echo("Scanning for BLE devices...")
        self.transport.start_scan()
        self.scheduler.call_later(window_s, lambda: self.dispatch(ScanWindowElapsed()))

    def connect(self, descriptor: PeripheralDescriptor) -> None:
        self._require(State.AWAITING_SELECTION, "connect")
        self.session.selected = descriptor
        self._transition(State.CONNECTING)
        self.transport.connect(descriptor.id)

    def drain_next(self) -> None:
        queue = self.session.queue
        if queue.write_in_flight:
            return

        context = self.session.context
        write_ref = context.write_characteristic if context else None
        if write_ref is None:
            dropped = queue.abandon()
            raise NoActiveCharacteristicError(
                f"No active write characteristic; abandoned {dropped} queued command(s)"
            )

        if not queue:
            if not queue.completion_reported:
                queue.completion_reported = True
                self.echo("All hex values written.")
            return

        hex_value = queue.pop()
        try:
            payload = hexcodec.encode(hex_value)
        except InvalidHexError as exc:
            LOGGER.warning("Dropping command: %s", exc)
            queue.mark_issued(wrote=False)
        else:
            self.transport.write(
                write_ref,
                payload,
                response=self.session.profile.write_with_response,
            )
            queue.mark_issued(wrote=True)
            self.echo(f"Wrote hex value {hex_value} to characteristic.")

        self.scheduler.call_later(
            self.session.profile.cooldown_s,
            lambda: self.dispatch(CooldownElapsed()),
        )

    def terminate(self, reason: str) -> None:
        if self.session.state is State.DISCONNECTED:
            return
        self.session.terminal_reason = reason
        self._transition(State.DISCONNECTED)
        if self.on_terminal is not None:
            self.on_terminal(reason)

    # scanning

    def _on_scan_sighting(self, event: ScanSighting) -> None:
        if self.session.state is not State.SCANNING or self.session.scan_window_closed:
            return
        peripheral = event.peripheral
        if not self.session.registry.record_sighting(peripheral):
            return
        self.echo("----------")
        self.echo(
            json.dumps({"name": peripheral.name, "UUID": peripheral.id, "RSSI": peripheral.rssi})
        )

    def _on_scan_window_elapsed(self, event: ScanWindowElapsed) -> None:
        if self.session.state is not State.SCANNING or self.session.scan_window_closed:
            return
        self.session.scan_window_closed = True
        self.transport.stop_scan()

    def _on_scan_stopped(self, event: ScanStopped) -> None:
        # the list is presented only once the radio is quiet
        if self.session.state is not State.SCANNING or not self.session.scan_window_closed:
            return
        self._transition(State.AWAITING_SELECTION)
        if self.on_selection is not None:
            self.on_selection(self.session.registry.list())

    def _on_transport_unavailable(self, event: TransportUnavailable) -> None:
        self.echo("Bluetooth is not powered on or available.")
        LOGGER.debug("Transport unavailable: %s", event.reason)
        self.terminate(f"Bluetooth unavailable: {event.reason}")

    # connection

    def _on_connected(self, event: Connected) -> None:
        selected = self.session.selected
        if self.session.state is not State.CONNECTING or selected is None:
            LOGGER.debug("Ignoring connect for %s in state %s", event.peripheral_id, self.session.state.value)
            return
        self.session.context = ConnectionContext(peripheral=selected)
        self.session.connected = True
        self.echo(f"Connected to peripheral: {_display_name(selected)}")
        self._transition(State.SERVICE_DISCOVERY)
        self.transport.discover_services()

    def _on_connect_failed(self, event: ConnectFailed) -> None:
        name = _display_name(self.session.selected) if self.session.selected else event.peripheral_id
        self.echo(f"Failed to connect to peripheral: {name}, Error: {event.reason}")
        self.session.context = None
        self.terminate(f"Failed to connect: {event.reason}")

    def _on_disconnected(self, event: Disconnected) -> None:
        if self.session.state is State.DISCONNECTED:
            return
        context = self.session.context
        name = _display_name(context.peripheral) if context else event.peripheral_id
        detail = f", Reason: {event.reason}" if event.reason else ""
        self.echo(f"Disconnected from peripheral: {name}{detail}")
        self.session.context = None
        queue = self.session.queue
        queue.awaiting_ack = False
        self.terminate(f"Disconnected: {event.reason or 'peripheral closed the connection'}")
        self._release_write_guard()

    # discovery

    def _on_services_discovered(self, event: ServicesDiscovered) -> None:
        context = self.session.context
        if context is None or self.session.state is not State.SERVICE_DISCOVERY:
            return
        name = _display_name(context.peripheral)
        if event.error:
            self.echo(f"Error discovering services: {event.error}")
            return
        if not event.services:
            self.echo(f"No services discovered for {name}")
            return

        self._transition(State.CHARACTERISTIC_DISCOVERY)
        self.echo(f"Discovered services for {name}:")
        for service_id in event.services:
            self.echo(f"Service: {service_id}")
            self.transport.discover_characteristics(service_id)

    def _on_characteristics_discovered(self, event: CharacteristicsDiscovered) -> None:
        context = self.session.context
        if context is None:
            return
        if event.error:
            self.echo(f"Error discovering characteristics: {event.error}")
            return
        if not event.characteristics:
            self.echo(f"No characteristics discovered for service {event.service_id}")
            return

        self.echo(f"Discovered characteristics for service {event.service_id}:")
        write_ref: CharacteristicRef | None = None
        for characteristic in event.characteristics:
            self.echo(f"Characteristic: {characteristic.uuid}")
            role = self._classify(characteristic.uuid)
            if role is Role.READ:
                ref = CharacteristicRef(event.service_id, characteristic.uuid, role)
                context.read_characteristic = ref
                self.transport.set_notify(ref, True)
            elif role is Role.WRITE:
                # last match in the batch wins
                write_ref = CharacteristicRef(event.service_id, characteristic.uuid, role)

        if write_ref is not None:
            if context.write_characteristic is not None:
                LOGGER.warning(
                    "Write characteristic %s replaced by %s",
                    context.write_characteristic.characteristic_id,
                    write_ref.characteristic_id,
                )
            context.write_characteristic = write_ref
            self.session.queue.seed(self.session.profile.commands)
            self.drain_next()

        if (
            self.session.state is State.CHARACTERISTIC_DISCOVERY
            and context.read_characteristic is not None
            and context.write_characteristic is not None
        ):
            self._transition(State.ACTIVE)

    def _classify(self, uuid: str) -> Role:
        normalized = uuid.lower()
        if normalized == self.session.profile.notify_char_uuid:
            return Role.READ
        if normalized == self.session.profile.write_char_uuid:
            return Role.WRITE
        return Role.UNKNOWN

    # write pipeline

    def _on_write_completed(self, event: WriteCompleted) -> None:
        queue = self.session.queue
        if event.error:
            self.echo(f"Error writing value to characteristic: {event.characteristic_id}, Error: {event.error}")
        else:
            LOGGER.debug("Write acknowledged by %s", event.characteristic_id)
        if not queue.awaiting_ack:
            return
        queue.awaiting_ack = False
        if self.session.profile.cooldown_policy is CooldownPolicy.ACKNOWLEDGED:
            self._release_write_guard()

    def _on_cooldown_elapsed(self, event: CooldownElapsed) -> None:
        self.session.queue.cooldown_running = False
        self.echo("Delay is over. Continuing with the next operation.")
        self._release_write_guard()

    def _release_write_guard(self) -> None:
        queue = self.session.queue
        if not queue.write_in_flight or queue.cooldown_running:
            return
        if self.session.profile.cooldown_policy is CooldownPolicy.ACKNOWLEDGED and queue.awaiting_ack:
            return
        queue.write_in_flight = False
        try:
            self.drain_next()
        except NoActiveCharacteristicError as exc:
            self.echo(f"Error: {exc}")

    # notifications

    def _on_value_updated(self, event: ValueUpdated) -> None:
        self.sink.on_value_update(event.data)

    def _on_value_update_failed(self, event: ValueUpdateFailed) -> None:
        self.sink.on_value_update_error(event.characteristic_id, event.reason)

    # helpers

    def _require(self, state: State, action: str) -> None:
        if self.session.state is not state:
            raise SessionStateError(
                f"Cannot {action} in state '{self.session.state.value}' (expected '{state.value}')"
            )

    def _transition(self, state: State) -> None:
        LOGGER.debug("State %s -> %s", self.session.state.value, state.value)
        self.session.state = state


def _display_name(peripheral: PeripheralDescriptor) -> str:
    return peripheral.name or "Unknown"
