"""Stable public API for building tooling on top of gattseq.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from gattseq.core.errors import (
    DeviceSelectionError,
    DiscoveryError,
    GattseqError,
    InvalidHexError,
    NoActiveCharacteristicError,
    OutOfRangeError,
    ProfileLoadError,
    ProfileValidationError,
    SelectionParseError,
    SessionStateError,
    TransportConnectError,
    TransportError,
)
from gattseq.core.hexcodec import encode, format_hex
from gattseq.core.model import (
    CharacteristicRef,
    CooldownPolicy,
    PeripheralDescriptor,
    Profile,
    Role,
    SessionResult,
    State,
)
from gattseq.core.service import SequencerService
from gattseq.core.session import Operator
from gattseq.transports.base import Transport
from gattseq.transports.ble_gatt import BLEGATTTransport

__all__ = [
    "GattseqError",
    "DeviceSelectionError",
    "DiscoveryError",
    "InvalidHexError",
    "NoActiveCharacteristicError",
    "OutOfRangeError",
    "ProfileLoadError",
    "ProfileValidationError",
    "SelectionParseError",
    "SessionStateError",
    "TransportError",
    "TransportConnectError",
    "CharacteristicRef",
    "CooldownPolicy",
    "PeripheralDescriptor",
    "Profile",
    "Role",
    "SessionResult",
    "State",
    "Operator",
    "Transport",
    "BLEGATTTransport",
    "encode",
    "format_hex",
    "Client",
]


class Client:
    """Public client for running gattseq sessions.

    A `Client` wraps profile loading and the scan/connect/stream session behind
    a stable API intended for third-party tools (GUI/TUI/services/scripts). The
    caller supplies the `Operator` that picks a device.
    """

    def __init__(self, *, transport_factory: Callable[[], Transport] | None = None) -> None:
        self._service = SequencerService(transport_factory=transport_factory)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    def list_profiles(self) -> list[Profile]:
        return self._service.list_profiles()

    def get_profile(
        self,
        profile_id: str | None = None,
        *,
        commands: Sequence[str] | None = None,
        scan_window_s: float | None = None,
        cooldown_s: float | None = None,
        cooldown_policy: CooldownPolicy | None = None,
    ) -> Profile:
        profile, _ = self._service.resolve_profile(
            profile_id,
            commands=commands,
            scan_window_s=scan_window_s,
            cooldown_s=cooldown_s,
            cooldown_policy=cooldown_policy,
        )
        return profile

    def run(
        self,
        operator: Operator,
        *,
        profile: Profile | None = None,
        echo: Callable[[str], None] = print,
    ) -> SessionResult:
        return self._service.run(profile or self.get_profile(), operator, echo)
