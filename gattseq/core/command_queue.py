"""Ordered pending commands plus the single in-flight write guard."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable


class CommandQueue:
    """Pending hex command strings, drained front to back.

    ``write_in_flight`` stays set from the moment a write is issued until the
    machine releases it after the cooldown. ``cooldown_running`` and
    ``awaiting_ack`` are the two conditions the release waits on; which of
    them count depends on the cooldown policy.
    """

    def __init__(self) -> None:
        self._pending: deque[str] = deque()
        self.write_in_flight = False
        self.cooldown_running = False
        self.awaiting_ack = False
        self.completion_reported = False
        self.writes_issued = 0

    def __len__(self) -> int:
        return len(self._pending)

    def __bool__(self) -> bool:
        return bool(self._pending)

    @property
    def pending(self) -> tuple[str, ...]:
        return tuple(self._pending)

    def seed(self, commands: Iterable[str]) -> None:
        """Replace whatever is pending with ``commands``."""
        self._pending = deque(commands)
        self.completion_reported = False

    def pop(self) -> str:
        return self._pending.popleft()

    def abandon(self) -> int:
        dropped = len(self._pending)
        self._pending.clear()
        return dropped

    def mark_issued(self, *, wrote: bool) -> None:
        self.write_in_flight = True
        self.cooldown_running = True
        self.awaiting_ack = wrote
        if wrote:
            self.writes_issued += 1
