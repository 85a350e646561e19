"""Profile loading and validation for YAML-based gattseq device profiles."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from gattseq.core import hexcodec
from gattseq.core.errors import InvalidHexError, ProfileLoadError, ProfileValidationError
from gattseq.core.model import CooldownPolicy, Profile

_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$|^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"
DEFAULT_PROFILE_ID = "issc_uart"
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ProfileValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedProfiles:
    profiles: dict[str, Profile]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("gattseq.schemas").joinpath("profile.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _profile_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "gattseq/profiles", xdg_data / "gattseq/profiles"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProfileLoadError(f"Could not read profile file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ProfileValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ProfileValidationError(f"Profile file {path} must contain a mapping at root")
    return loaded


def normalize_uuid(value: str, *, context: str) -> str:
    """Lowercase ``value`` and expand 16/32-bit UUIDs onto the Bluetooth base UUID."""
    normalized = value.strip().lower()
    if not _UUID_RE.match(normalized):
        raise ProfileValidationError(
            f"{context} must be a 16-bit, 32-bit, or 128-bit UUID string"
        )
    if len(normalized) == 4:
        return f"0000{normalized}{_BASE_UUID_SUFFIX}"
    if len(normalized) == 8:
        return f"{normalized}{_BASE_UUID_SUFFIX}"
    return normalized


def _normalize_bool(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise ProfileValidationError(f"{context} must be boolean true/false")


def normalize_commands(commands: list[str], *, context: str) -> tuple[tuple[str, ...], list[str]]:
    """Strip whitespace from each command and collect warnings for non-hex ones.

    Invalid commands are kept so the write pipeline drops them in order.
    """
    normalized: list[str] = []
    warnings: list[str] = []
    for position, command in enumerate(commands):
        value = command.strip().replace(" ", "")
        try:
            hexcodec.encode(value)
        except InvalidHexError as exc:
            warnings.append(f"{context}.commands[{position}] will be skipped: {exc}")
        normalized.append(value)
    return tuple(normalized), warnings


def _build_profile(doc: dict[str, Any], source: Path | Traversable) -> tuple[Profile, list[str]]:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ProfileValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    profile_id = doc["id"]
    notify_uuid = normalize_uuid(doc["notify_char_uuid"], context=f"{profile_id}.notify_char_uuid")
    write_uuid = normalize_uuid(doc["write_char_uuid"], context=f"{profile_id}.write_char_uuid")
    if notify_uuid == write_uuid:
        raise ProfileValidationError(
            f"{profile_id}: notify_char_uuid and write_char_uuid must differ"
        )
    commands, warnings = normalize_commands(doc["commands"], context=profile_id)

    profile = Profile(
        id=profile_id,
        name=doc["name"],
        notify_char_uuid=notify_uuid,
        write_char_uuid=write_uuid,
        commands=commands,
        scan_window_s=float(doc.get("scan_window_s", 5.0)),
        cooldown_s=float(doc.get("cooldown_s", 2.0)),
        cooldown_policy=CooldownPolicy(doc.get("cooldown_policy", CooldownPolicy.TIMER.value)),
        write_with_response=_normalize_bool(
            doc.get("write_with_response", True),
            context=f"{profile_id}.write_with_response",
        ),
    )
    return profile, warnings


def _iter_packaged_profile_paths() -> list[Traversable]:
    profile_root = resources.files("gattseq.profiles")
    return [item for item in profile_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_profile_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _profile_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_profiles() -> LoadedProfiles:
    profiles: dict[str, Profile] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_profile_paths(), key=lambda p: p.name):
        doc = _read_yaml(path)
        profile, profile_warnings = _build_profile(doc, path)
        warnings.extend(profile_warnings)
        profiles[profile.id] = profile

    for path in _iter_user_profile_paths():
        doc = _read_yaml(path)
        profile, profile_warnings = _build_profile(doc, path)
        warnings.extend(profile_warnings)
        if profile.id in profiles:
            warning = f"User profile '{profile.id}' overrides packaged profile"
            LOGGER.warning(warning)
            warnings.append(warning)
        profiles[profile.id] = profile

    return LoadedProfiles(profiles=profiles, warnings=tuple(warnings))
