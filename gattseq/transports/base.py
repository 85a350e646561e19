"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from gattseq.core.events import Event
from gattseq.core.model import CharacteristicRef


class Transport(Protocol):
    """Fire-and-forget BLE operations.

    Each request returns immediately; its outcome is delivered later as one
    event through the callable passed to ``bind``.
    """

    def bind(self, post: Callable[[Event], None]) -> None:
        """Register the event sink. Must be called from the running event loop."""

    def start_scan(self) -> None: ...

    def stop_scan(self) -> None:
        """Stop scanning, then post `ScanStopped` whether or not the stop succeeded."""

    def connect(self, peripheral_id: str) -> None: ...

    def discover_services(self) -> None: ...

    def discover_characteristics(self, service_id: str) -> None: ...

    def set_notify(self, characteristic: CharacteristicRef, enabled: bool) -> None: ...

    def write(self, characteristic: CharacteristicRef, payload: bytes, *, response: bool) -> None: ...

    async def close(self) -> None:
        """Stop scanning and drop any connection."""
