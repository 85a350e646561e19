"""Service layer used by CLI and future UI frontends."""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Callable, Sequence

from gattseq.core.errors import GattseqError, ProfileValidationError
from gattseq.core.model import CooldownPolicy, Profile, SessionResult
from gattseq.core.profile_loader import DEFAULT_PROFILE_ID, load_profiles, normalize_commands
from gattseq.core.session import Operator, run_session
from gattseq.transports.base import Transport
from gattseq.transports.ble_gatt import BLEGATTTransport


class SequencerService:
    def __init__(
        self,
        *,
        transport_factory: Callable[[], Transport] | None = None,
    ) -> None:
        loaded = load_profiles()
        self.profiles = loaded.profiles
        self.load_warnings = loaded.warnings
        self.transport_factory = transport_factory or BLEGATTTransport

    def list_profiles(self) -> list[Profile]:
        return sorted(self.profiles.values(), key=lambda p: p.id)

    def resolve_profile(
        self,
        profile_id: str | None = None,
        *,
        commands: Sequence[str] | None = None,
        scan_window_s: float | None = None,
        cooldown_s: float | None = None,
        cooldown_policy: CooldownPolicy | None = None,
    ) -> tuple[Profile, tuple[str, ...]]:
        """Look up a profile and apply one-run overrides.

        Returns the profile and any warnings about override commands that are
        not valid hex.
        """
        wanted = profile_id or DEFAULT_PROFILE_ID
        profile = self.profiles.get(wanted)
        if profile is None:
            available = ", ".join(sorted(self.profiles)) or "<none>"
            raise GattseqError(f"Unknown profile '{wanted}'. Available: {available}")

        warnings: list[str] = []
        overrides: dict[str, object] = {}
        if commands:
            overrides["commands"], warnings = normalize_commands(list(commands), context="--command")
        if scan_window_s is not None:
            if scan_window_s <= 0:
                raise ProfileValidationError("Scan window must be greater than zero seconds")
            overrides["scan_window_s"] = scan_window_s
        if cooldown_s is not None:
            if cooldown_s < 0:
                raise ProfileValidationError("Cooldown must not be negative")
            overrides["cooldown_s"] = cooldown_s
        if cooldown_policy is not None:
            overrides["cooldown_policy"] = cooldown_policy

        return dataclasses.replace(profile, **overrides), tuple(warnings)

    def run(
        self,
        profile: Profile,
        operator: Operator,
        echo: Callable[[str], None],
    ) -> SessionResult:
        return asyncio.run(run_session(profile, self.transport_factory(), operator, echo))
