"""Timer abstraction the state machine uses for the scan window and cooldown."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol


class Scheduler(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> None:
        """Run ``callback`` on the actor after ``delay_s`` seconds."""


class AsyncioScheduler:
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> None:
        self._loop.call_later(delay_s, callback)
