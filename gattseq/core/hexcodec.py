"""Hex string <-> bytes conversion for command payloads and diagnostics."""

from __future__ import annotations

import re

from gattseq.core.errors import InvalidHexError

_PAIR_RE = re.compile(r"^[0-9A-Fa-f]{2}$")


def encode(hex_value: str) -> bytes:
    """Convert ``"0B08"`` style text into bytes, two characters per byte."""
    if len(hex_value) % 2 != 0:
        raise InvalidHexError(f"'{hex_value}' has odd length {len(hex_value)}")

    payload = bytearray()
    for offset in range(0, len(hex_value), 2):
        pair = hex_value[offset : offset + 2]
        if not _PAIR_RE.match(pair):
            raise InvalidHexError(f"'{pair}' at offset {offset} in '{hex_value}' is not a hex byte")
        payload.append(int(pair, 16))
    return bytes(payload)


def format_hex(data: bytes) -> str:
    return " ".join(f"{byte:02X}" for byte in data)
