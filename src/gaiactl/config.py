"""Configuration loader for gaiactl.

Configuration values are read from multiple sources, later ones winning:

1. Built-in defaults.
2. ``~/.config/gaiactl/config.yml`` (or an override path).
3. Environment variables prefixed with ``GAIACTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export GAIACTL_NODE__BIN=/home/gaia/gaianet/bin/gaianet
    export GAIACTL_LOCK_TIMEOUT=10

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses`` for convenient access and type safety.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

from .commands import DEFAULT_INSTALL_SCRIPT_URL, CommandTemplates

ENV_PREFIX = "GAIACTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class NodeConfig:
    """How to reach the GaiaNet node tool."""

    bin: str = "gaianet"
    install_script_url: str = DEFAULT_INSTALL_SCRIPT_URL
    shell: str = "bash"
    shell_profile: str = "~/.bashrc"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "bin": self.bin,
            "install_script_url": self.install_script_url,
            "shell": self.shell,
            "shell_profile": self.shell_profile,
        }

    def command_templates(self) -> CommandTemplates:
        """Return command templates rendering against this node."""
        return CommandTemplates(
            node_bin=self.bin,
            install_script_url=self.install_script_url,
            shell=self.shell,
            shell_profile=self.shell_profile,
        )


@dataclass(frozen=True)
class PublicUrlConfig:
    """Substrings identifying the public URL line in ``start`` output."""

    markers: tuple[str, ...] = ("https://", ".gaianet.xyz")

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"markers": list(self.markers)}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for gaiactl."""

    config_file: Path
    node_name: str
    base_dir: Path
    logs_dir: Path
    runtime_dir: Path
    lock_timeout: float
    node: NodeConfig
    public_url: PublicUrlConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "node_name": self.node_name,
            "base_dir": str(self.base_dir),
            "logs_dir": str(self.logs_dir),
            "runtime_dir": str(self.runtime_dir),
            "lock_timeout": self.lock_timeout,
            "node": self.node.to_dict(),
            "public_url": self.public_url.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "~/.config/gaiactl/config.yml",
    "node_name": "default",
    "base_dir": "~/gaianet",
    "logs_dir": "~/.local/state/gaiactl/logs",
    "runtime_dir": "~/.local/state/gaiactl/run",
    "lock_timeout": 30.0,
    "node": {
        "bin": "gaianet",
        "install_script_url": DEFAULT_INSTALL_SCRIPT_URL,
        "shell": "bash",
        "shell_profile": "~/.bashrc",
    },
    "public_url": {
        "markers": ["https://", ".gaianet.xyz"],
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_NODE_KEYS = {"bin", "install_script_url", "shell", "shell_profile"}
ALLOWED_PUBLIC_URL_KEYS = {"markers"}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override).expanduser()
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR]).expanduser()
    return Path(default_path).expanduser()


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    lock_timeout = raw.get("lock_timeout")
    if lock_timeout is not None:
        _expect_positive_float(lock_timeout, "lock_timeout", default=30.0)

    node = raw.get("node")
    if node is not None:
        node_map = _as_dict(node, "node")
        unknown = set(node_map.keys()) - ALLOWED_NODE_KEYS
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown node configuration keys: {joined}.")

    public_url = raw.get("public_url")
    if public_url is not None:
        public_map = _as_dict(public_url, "public_url")
        unknown = set(public_map.keys()) - ALLOWED_PUBLIC_URL_KEYS
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown public_url configuration keys: {joined}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    base_dir = _to_path(raw.get("base_dir"))
    logs_dir = _to_path(raw.get("logs_dir"))
    runtime_dir = _to_path(raw.get("runtime_dir"))
    lock_timeout = _expect_positive_float(raw.get("lock_timeout"), "lock_timeout", default=30.0)

    node_name = _expect_non_empty_str(raw.get("node_name", "default"), "node_name")
    if "/" in node_name:
        raise ConfigError("node_name must not contain '/'.")

    node_mapping = _as_dict(raw.get("node"), "node")
    node = NodeConfig(
        bin=_expect_non_empty_str(node_mapping.get("bin", "gaianet"), "node.bin"),
        install_script_url=_expect_non_empty_str(
            node_mapping.get("install_script_url", DEFAULT_INSTALL_SCRIPT_URL),
            "node.install_script_url",
        ),
        shell=_expect_non_empty_str(node_mapping.get("shell", "bash"), "node.shell"),
        shell_profile=_expect_non_empty_str(
            node_mapping.get("shell_profile", "~/.bashrc"),
            "node.shell_profile",
        ),
    )

    public_mapping = _as_dict(raw.get("public_url"), "public_url")
    markers_raw = public_mapping.get("markers", ["https://", ".gaianet.xyz"])
    markers: list[str] = []
    for index, marker in enumerate(_as_sequence(markers_raw, "public_url.markers")):
        if not isinstance(marker, str) or not marker:
            raise ConfigError(f"public_url.markers[{index}] must be a non-empty string.")
        markers.append(marker)
    if not markers:
        raise ConfigError("public_url.markers must list at least one substring.")

    return AppConfig(
        config_file=config_file,
        node_name=node_name,
        base_dir=base_dir,
        logs_dir=logs_dir,
        runtime_dir=runtime_dir,
        lock_timeout=lock_timeout,
        node=node,
        public_url=PublicUrlConfig(markers=tuple(markers)),
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_non_empty_str(value: object, key: str) -> str:
    text = _expect_str(value, key).strip()
    if not text:
        raise ConfigError(f"{key} must be a non-empty string.")
    return text


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ConfigError",
    "NodeConfig",
    "PublicUrlConfig",
    "load_config",
]
