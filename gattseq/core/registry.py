"""Peripherals seen during one scan window."""

from __future__ import annotations

from typing import TYPE_CHECKING

from gattseq.core.errors import OutOfRangeError

if TYPE_CHECKING:
    from gattseq.core.model import PeripheralDescriptor


class DeviceRegistry:
    """Deduplicated peripherals keyed by identifier.

    Iteration order is first-sighting order, so a 1-based index chosen from a
    printed listing maps to the same peripheral for the registry's lifetime.
    Peripherals that advertise no name are ignored.
    """

    def __init__(self) -> None:
        self._peripherals: dict[str, PeripheralDescriptor] = {}

    def __len__(self) -> int:
        return len(self._peripherals)

    def __contains__(self, peripheral_id: object) -> bool:
        return peripheral_id in self._peripherals

    def record_sighting(self, descriptor: PeripheralDescriptor) -> bool:
        if not descriptor.name:
            return False
        if descriptor.id in self._peripherals:
            return False
        self._peripherals[descriptor.id] = descriptor
        return True

    def list(self) -> tuple[PeripheralDescriptor, ...]:
        return tuple(self._peripherals.values())

    def by_index(self, index: int) -> PeripheralDescriptor:
        count = len(self._peripherals)
        if index < 1 or index > count:
            if count == 0:
                raise OutOfRangeError(f"Selection {index} is out of range: no devices were found")
            raise OutOfRangeError(f"Selection {index} is out of range 1-{count}")
        return self.list()[index - 1]
