"""Events posted into the connection state machine.

Every transport operation completes by posting exactly one of these (a scan
stop posts `ScanStopped` once the radio has actually stopped); the two
timers (scan window, write cooldown) post theirs through the scheduler.
"""

from __future__ import annotations

from dataclasses import dataclass

from gattseq.core.model import DiscoveredCharacteristic, PeripheralDescriptor


@dataclass(frozen=True)
class ScanSighting:
    peripheral: PeripheralDescriptor


@dataclass(frozen=True)
class ScanWindowElapsed:
    pass


@dataclass(frozen=True)
class ScanStopped:
    pass


@dataclass(frozen=True)
class TransportUnavailable:
    reason: str


@dataclass(frozen=True)
class Connected:
    peripheral_id: str


@dataclass(frozen=True)
class ConnectFailed:
    peripheral_id: str
    reason: str


@dataclass(frozen=True)
class Disconnected:
    peripheral_id: str
    reason: str | None = None


@dataclass(frozen=True)
class ServicesDiscovered:
    services: tuple[str, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class CharacteristicsDiscovered:
    service_id: str
    characteristics: tuple[DiscoveredCharacteristic, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class WriteCompleted:
    characteristic_id: str
    error: str | None = None


@dataclass(frozen=True)
class CooldownElapsed:
    pass


@dataclass(frozen=True)
class ValueUpdated:
    characteristic_id: str
    data: bytes


@dataclass(frozen=True)
class ValueUpdateFailed:
    characteristic_id: str
    reason: str


Event = (
    ScanSighting
    | ScanWindowElapsed
    | ScanStopped
    | TransportUnavailable
    | Connected
    | ConnectFailed
    | Disconnected
    | ServicesDiscovered
    | CharacteristicsDiscovered
    | WriteCompleted
    | CooldownElapsed
    | ValueUpdated
    | ValueUpdateFailed
)
