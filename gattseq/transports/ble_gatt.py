"""BLE GATT transport implementation backed by bleak."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from gattseq.core.errors import DiscoveryError, TransportConnectError
from gattseq.core.events import (
    CharacteristicsDiscovered,
    ConnectFailed,
    Connected,
    Disconnected,
    Event,
    ScanSighting,
    ScanStopped,
    ServicesDiscovered,
    TransportUnavailable,
    ValueUpdated,
    ValueUpdateFailed,
    WriteCompleted,
)
from gattseq.core.model import CharacteristicRef, DiscoveredCharacteristic, PeripheralDescriptor

LOGGER = logging.getLogger(__name__)


class BLEGATTTransport:
    """Runs each request as a task on the bound event loop.

    bleak may invoke scan, notify and disconnect callbacks from a backend
    thread, so every event is handed to the loop with ``call_soon_threadsafe``.
    """

    def __init__(self, *, connect_timeout_s: float = 10.0) -> None:
        self.connect_timeout_s = connect_timeout_s
        self._post: Callable[[Event], None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._scanner: BleakScanner | None = None
        self._client: BleakClient | None = None
        self._devices: dict[str, BLEDevice] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def bind(self, post: Callable[[Event], None]) -> None:
        self._post = post
        self._loop = asyncio.get_running_loop()

    # requests

    def start_scan(self) -> None:
        self._spawn(self._start_scan())

    def stop_scan(self) -> None:
        self._spawn(self._stop_scan())

    def connect(self, peripheral_id: str) -> None:
        self._spawn(self._connect(peripheral_id))

    def discover_services(self) -> None:
        self._spawn(self._discover_services())

    def discover_characteristics(self, service_id: str) -> None:
        self._spawn(self._discover_characteristics(service_id))

    def set_notify(self, characteristic: CharacteristicRef, enabled: bool) -> None:
        self._spawn(self._set_notify(characteristic, enabled))

    def write(self, characteristic: CharacteristicRef, payload: bytes, *, response: bool) -> None:
        self._spawn(self._write(characteristic, payload, response))

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self._halt_scanner()
        client, self._client = self._client, None
        if client is not None and client.is_connected:
            try:
                await client.disconnect()
            except BleakError as exc:
                LOGGER.debug("Disconnect during close failed: %s", exc)

    # task bodies

    async def _start_scan(self) -> None:
        scanner = BleakScanner(detection_callback=self._on_detection)
        self._scanner = scanner
        try:
            await scanner.start()
        except (BleakError, OSError) as exc:
            self._scanner = None
            self._emit(TransportUnavailable(str(exc) or type(exc).__name__))

    async def _stop_scan(self) -> None:
        try:
            await self._halt_scanner()
        finally:
            self._emit(ScanStopped())

    async def _halt_scanner(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            await scanner.stop()
        except (BleakError, OSError) as exc:
            LOGGER.debug("Stopping scan failed: %s", exc)

    async def _connect(self, peripheral_id: str) -> None:
        target: BLEDevice | str = self._devices.get(peripheral_id, peripheral_id)
        client = BleakClient(
            target,
            disconnected_callback=self._on_disconnected,
            timeout=self.connect_timeout_s,
        )
        try:
            await client.connect()
            if not client.is_connected:
                raise TransportConnectError(f"BLE connect failed for {peripheral_id}")
        except (BleakError, TransportConnectError, asyncio.TimeoutError, OSError) as exc:
            self._emit(ConnectFailed(peripheral_id, str(exc) or type(exc).__name__))
            return
        self._client = client
        self._emit(Connected(peripheral_id))

    async def _discover_services(self) -> None:
        try:
            client = self._connected_client()
            services = tuple(service.uuid for service in client.services)
        except (BleakError, DiscoveryError) as exc:
            self._emit(ServicesDiscovered(error=str(exc)))
            return
        self._emit(ServicesDiscovered(services=services))

    async def _discover_characteristics(self, service_id: str) -> None:
        try:
            service = self._connected_client().services.get_service(service_id)
            if service is None:
                raise DiscoveryError(f"Service {service_id} is not present")
            characteristics = tuple(
                DiscoveredCharacteristic(uuid=char.uuid, properties=tuple(char.properties))
                for char in service.characteristics
            )
        except (BleakError, DiscoveryError) as exc:
            self._emit(CharacteristicsDiscovered(service_id, error=str(exc)))
            return
        self._emit(CharacteristicsDiscovered(service_id, characteristics))

    async def _set_notify(self, ref: CharacteristicRef, enabled: bool) -> None:
        def _notify_handler(_: BleakGATTCharacteristic, data: bytearray) -> None:
            self._emit(ValueUpdated(ref.characteristic_id, bytes(data)))

        try:
            client = self._connected_client()
            characteristic = self._characteristic(client, ref)
            if enabled:
                await client.start_notify(characteristic, _notify_handler)
            else:
                await client.stop_notify(characteristic)
        except (BleakError, DiscoveryError) as exc:
            self._emit(ValueUpdateFailed(ref.characteristic_id, str(exc)))

    async def _write(self, ref: CharacteristicRef, payload: bytes, response: bool) -> None:
        try:
            client = self._connected_client()
            await client.write_gatt_char(self._characteristic(client, ref), payload, response=response)
        except Exception as exc:
            self._emit(WriteCompleted(ref.characteristic_id, error=str(exc) or type(exc).__name__))
            return
        self._emit(WriteCompleted(ref.characteristic_id))

    # callbacks and helpers

    def _on_detection(self, device: BLEDevice, advertisement: AdvertisementData) -> None:
        self._devices.setdefault(device.address, device)
        name = advertisement.local_name or device.name
        self._emit(ScanSighting(PeripheralDescriptor(id=device.address, name=name, rssi=advertisement.rssi)))

    def _on_disconnected(self, client: BleakClient) -> None:
        self._emit(Disconnected(client.address))

    def _connected_client(self) -> BleakClient:
        if self._client is None or not self._client.is_connected:
            raise DiscoveryError("No connected peripheral")
        return self._client

    @staticmethod
    def _characteristic(client: BleakClient, ref: CharacteristicRef) -> BleakGATTCharacteristic:
        service = client.services.get_service(ref.service_id)
        characteristic = service.get_characteristic(ref.characteristic_id) if service else None
        if characteristic is None:
            raise DiscoveryError(
                f"Characteristic {ref.characteristic_id} not found in service {ref.service_id}"
            )
        return characteristic

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        if self._loop is None:
            coro.close()
            raise RuntimeError("Transport is not bound to an event loop")
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("BLE request %s failed: %s", task.get_coro().__qualname__, exc, exc_info=exc)

    def _emit(self, event: Event) -> None:
        if self._post is None or self._loop is None or self._loop.is_closed():
            LOGGER.debug("Dropping %r: transport not bound", event)
            return
        self._loop.call_soon_threadsafe(self._post, event)
