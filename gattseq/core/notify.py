"""Rendering of inbound characteristic notifications."""

from __future__ import annotations

from collections.abc import Callable

from gattseq.core.hexcodec import format_hex


class NotificationSink:
    def __init__(self, echo: Callable[[str], None]) -> None:
        self._echo = echo

    def on_value_update(self, data: bytes) -> None:
        self._echo("Received value from characteristic:")
        self._echo(format_hex(data))

    def on_value_update_error(self, characteristic_id: str, reason: str) -> None:
        self._echo(f"Error updating value for characteristic: {characteristic_id}, Error: {reason}")
