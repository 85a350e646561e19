"""Core data models used across loader, state machine, service, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from gattseq.core.command_queue import CommandQueue
from gattseq.core.registry import DeviceRegistry


class Role(str, Enum):
    READ = "read"
    WRITE = "write"
    UNKNOWN = "unknown"


class State(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    AWAITING_SELECTION = "awaiting_selection"
    CONNECTING = "connecting"
    SERVICE_DISCOVERY = "service_discovery"
    CHARACTERISTIC_DISCOVERY = "characteristic_discovery"
    ACTIVE = "active"
    DISCONNECTED = "disconnected"


class CooldownPolicy(str, Enum):
    """When the in-flight guard is released after a write.

    ``TIMER`` releases once the cooldown has elapsed, whether or not the
    peripheral acknowledged the write. ``ACKNOWLEDGED`` additionally waits for
    the write completion.
    """

    TIMER = "timer"
    ACKNOWLEDGED = "acknowledged"


@dataclass(frozen=True)
class PeripheralDescriptor:
    id: str
    name: str | None
    rssi: int = 0


@dataclass(frozen=True)
class DiscoveredCharacteristic:
    uuid: str
    properties: tuple[str, ...] = ()


@dataclass(frozen=True)
class CharacteristicRef:
    service_id: str
    characteristic_id: str
    role: Role


@dataclass
class ConnectionContext:
    peripheral: PeripheralDescriptor
    read_characteristic: CharacteristicRef | None = None
    write_characteristic: CharacteristicRef | None = None


@dataclass(frozen=True)
class Profile:
    id: str
    name: str
    notify_char_uuid: str
    write_char_uuid: str
    commands: tuple[str, ...]
    scan_window_s: float = 5.0
    cooldown_s: float = 2.0
    cooldown_policy: CooldownPolicy = CooldownPolicy.TIMER
    write_with_response: bool = True


@dataclass
class Session:
    """All mutable state of one scan/connect/stream run."""

    profile: Profile
    state: State = State.IDLE
    registry: DeviceRegistry = field(default_factory=DeviceRegistry)
    queue: CommandQueue = field(default_factory=CommandQueue)
    context: ConnectionContext | None = None
    selected: PeripheralDescriptor | None = None
    scan_window_closed: bool = False
    connected: bool = False
    terminal_reason: str | None = None


@dataclass(frozen=True)
class SessionResult:
    peripheral: PeripheralDescriptor | None
    connected: bool
    reason: str
    commands_written: int
