"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import typer

from gattseq.core.errors import GattseqError, SelectionParseError
from gattseq.core.model import CooldownPolicy
from gattseq.core.service import SequencerService

app = typer.Typer(help="Scan for a BLE peripheral, subscribe to it and stream hex commands")


class ConsoleOperator:
    """Device picker reading a numeric choice from the terminal."""

    def present_list(self, entries: Sequence[tuple[int, str, str]]) -> None:
        typer.echo("Select a device to connect:")
        for index, name, peripheral_id in entries:
            typer.echo(f"{index}. {name} ({peripheral_id})")

    def read_selection(self) -> int:
        try:
            raw = typer.prompt(
                "Enter the number of the device you want to connect to", default="", show_default=False
            )
        except (typer.Abort, EOFError):
            raise SelectionParseError("no device number entered") from None
        try:
            return int(raw.strip())
        except ValueError:
            raise SelectionParseError(f"'{raw}' is not a device number") from None


def _build_service() -> SequencerService:
    service = SequencerService()
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


@app.command("profiles")
def list_profiles() -> None:
    """List available device profiles."""
    try:
        service = _build_service()
        profiles = service.list_profiles()
        if not profiles:
            typer.echo("No profiles loaded")
            raise typer.Exit(code=1)

        for profile in profiles:
            typer.echo(f"{profile.id}: {profile.name}")
            typer.echo(f"  notify: {profile.notify_char_uuid}")
            typer.echo(f"  write: {profile.write_char_uuid}")
            commands = " ".join(profile.commands) or "<none>"
            typer.echo(f"  commands: {commands} (cooldown {profile.cooldown_s:g}s, {profile.cooldown_policy.value})")
    except GattseqError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("run")
def run_session(
    profile: str | None = typer.Option(None, "--profile", "-p", help="Profile ID"),
    command: list[str] | None = typer.Option(
        None, "--command", "-c", help="Hex command to send; repeat to replace the profile's list"
    ),
    window: float | None = typer.Option(None, "--window", help="Scan window in seconds"),
    cooldown: float | None = typer.Option(None, "--cooldown", help="Delay between writes in seconds"),
    policy: CooldownPolicy | None = typer.Option(
        None, "--cooldown-policy", help="Release the next write on timer alone or also on write acknowledgment"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Scan, pick a device, subscribe to notifications and write the command list."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    try:
        service = _build_service()
        resolved, warnings = service.resolve_profile(
            profile,
            commands=command,
            scan_window_s=window,
            cooldown_s=cooldown,
            cooldown_policy=policy,
        )
        for warning in warnings:
            typer.echo(f"Warning: {warning}", err=True)
        typer.echo(f"Using profile {resolved.id} ({resolved.name})")
        result = service.run(resolved, ConsoleOperator(), typer.echo)
    except GattseqError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        typer.echo("Interrupted", err=True)
        raise typer.Exit(code=130) from None

    typer.echo(f"Session ended: {result.reason} ({result.commands_written} command(s) written)")
    if not result.connected:
        raise typer.Exit(code=1)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
