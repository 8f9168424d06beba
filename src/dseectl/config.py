"""Configuration loader for dseectl.

Values are read from multiple sources, later sources winning:

1. Built-in defaults.
2. ``/etc/dseectl/config.yml`` (or an override path).
3. Environment variables prefixed with ``DSEECTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export DSEECTL_INSTALL_DIR=/u01/app
    export DSEECTL_RETRY__ATTEMPTS=6
    export DSEECTL_DEFAULTS__LDAP_PORT=1389

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. Password variables (``DSEECTL_ADMIN_PASSWORD`` and friends)
are reserved for credentials and never become configuration keys.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

ENV_PREFIX = "DSEECTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
PASSWORD_ENV_VARS = {
    "admin_password": f"{ENV_PREFIX}ADMIN_PASSWORD",
    "agent_password": f"{ENV_PREFIX}AGENT_PASSWORD",
    "cert_password": f"{ENV_PREFIX}CERT_PASSWORD",
}
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR, *PASSWORD_ENV_VARS.values()}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for "executable not found" failures."""

    attempts: int = 4
    backoff_base: float = 4.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"attempts": self.attempts, "backoff_base": self.backoff_base}


@dataclass(frozen=True)
class PathsConfig:
    """Well-known DSEE instance locations."""

    registry: Path
    agent: Path

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"registry": str(self.registry), "agent": str(self.agent)}


@dataclass(frozen=True)
class RecordDefaults:
    """Flag values merged into every desired-state record built by the CLI."""

    no_inter: bool = True
    ldap_port: int = 389
    ldaps_port: int = 636
    registry_ldap_port: int = 3998
    registry_ldaps_port: int = 3999
    agent_port: int = 3997
    dn: str = "cn=Directory Manager"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "no_inter": self.no_inter,
            "ldap_port": self.ldap_port,
            "ldaps_port": self.ldaps_port,
            "registry_ldap_port": self.registry_ldap_port,
            "registry_ldaps_port": self.registry_ldaps_port,
            "agent_port": self.agent_port,
            "dn": self.dn,
        }

    def as_flags(self) -> dict[str, object]:
        """Return the defaults as record flags."""
        return self.to_dict()


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for dseectl."""

    config_file: Path
    install_dir: Path
    product_dir: str
    logs_dir: Path
    secrets_dir: Path | None
    lock_timeout: float
    command_timeout: float | None
    retry: RetryConfig
    paths: PathsConfig
    defaults: RecordDefaults

    @property
    def product_root(self) -> Path:
        """Return ``<install_dir>/<product_dir>``."""
        return self.install_dir / self.product_dir

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "install_dir": str(self.install_dir),
            "product_dir": self.product_dir,
            "logs_dir": str(self.logs_dir),
            "secrets_dir": str(self.secrets_dir) if self.secrets_dir is not None else None,
            "lock_timeout": self.lock_timeout,
            "command_timeout": self.command_timeout,
            "retry": self.retry.to_dict(),
            "paths": self.paths.to_dict(),
            "defaults": self.defaults.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/dseectl/config.yml",
    "install_dir": "/opt",
    "product_dir": "dsee7",
    "logs_dir": "/var/log/dseectl",
    "secrets_dir": None,  # system temp directory when absent
    "lock_timeout": 30.0,
    "command_timeout": None,
    "retry": {
        "attempts": 4,
        "backoff_base": 4,
    },
    "paths": {
        "registry": None,  # derived from install_dir/product_dir when absent
        "agent": None,
    },
    "defaults": RecordDefaults().to_dict(),
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
_NESTED_KEYS: dict[str, set[str]] = {
    "retry": {"attempts", "backoff_base"},
    "paths": {"registry", "agent"},
    "defaults": set(RecordDefaults().to_dict()),
}
_PORT_DEFAULTS = ("ldap_port", "ldaps_port", "registry_ldap_port", "registry_ldaps_port", "agent_port")


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
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


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

    for section, allowed in _NESTED_KEYS.items():
        mapping = _as_dict(raw.get(section), section)
        unknown = set(mapping.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")

    lock_timeout = raw.get("lock_timeout")
    if lock_timeout is not None:
        _expect_positive_float(lock_timeout, "lock_timeout", default=30.0)

    command_timeout = raw.get("command_timeout")
    if command_timeout is not None:
        _expect_positive_float(command_timeout, "command_timeout", default=1.0)

    retry_map = _as_dict(raw.get("retry"), "retry")
    attempts = _expect_int(retry_map.get("attempts"), "retry.attempts", default=4)
    if attempts < 1:
        raise ConfigError("retry.attempts must be at least 1.")
    _expect_positive_float(retry_map.get("backoff_base"), "retry.backoff_base", default=4.0)

    defaults_map = _as_dict(raw.get("defaults"), "defaults")
    for key in _PORT_DEFAULTS:
        port = _expect_int(defaults_map.get(key), f"defaults.{key}", default=1)
        if not 1 <= port <= 65535:
            raise ConfigError(f"defaults.{key} must be between 1 and 65535. Got {port}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    install_dir = _to_path(raw.get("install_dir"))
    product_dir = _expect_str(raw.get("product_dir"), "product_dir").strip("/")
    logs_dir = _to_path(raw.get("logs_dir"))
    secrets_value = raw.get("secrets_dir")
    secrets_dir = _to_path(secrets_value) if secrets_value not in (None, "") else None

    lock_timeout = _expect_positive_float(raw.get("lock_timeout"), "lock_timeout", default=30.0)
    command_value = raw.get("command_timeout")
    command_timeout = (
        _expect_positive_float(command_value, "command_timeout", default=1.0)
        if command_value not in (None, "")
        else None
    )

    retry_map = _as_dict(raw.get("retry"), "retry")
    retry = RetryConfig(
        attempts=_expect_int(retry_map.get("attempts"), "retry.attempts", default=4),
        backoff_base=_expect_positive_float(
            retry_map.get("backoff_base"), "retry.backoff_base", default=4.0
        ),
    )

    product_root = install_dir / product_dir
    paths_map = _as_dict(raw.get("paths"), "paths")
    registry_value = paths_map.get("registry")
    agent_value = paths_map.get("agent")
    paths = PathsConfig(
        registry=_to_path(registry_value) if registry_value else product_root / "var/dcc/ads",
        agent=_to_path(agent_value) if agent_value else product_root / "var/dcc/agent",
    )

    defaults_map = _as_dict(raw.get("defaults"), "defaults")
    fallback = RecordDefaults()
    no_inter = defaults_map.get("no_inter", fallback.no_inter)
    if not isinstance(no_inter, bool):
        raise ConfigError(f"Expected defaults.no_inter to be a boolean. Got {no_inter!r}.")
    defaults = RecordDefaults(
        no_inter=no_inter,
        ldap_port=_expect_int(
            defaults_map.get("ldap_port"), "defaults.ldap_port", default=fallback.ldap_port
        ),
        ldaps_port=_expect_int(
            defaults_map.get("ldaps_port"), "defaults.ldaps_port", default=fallback.ldaps_port
        ),
        registry_ldap_port=_expect_int(
            defaults_map.get("registry_ldap_port"),
            "defaults.registry_ldap_port",
            default=fallback.registry_ldap_port,
        ),
        registry_ldaps_port=_expect_int(
            defaults_map.get("registry_ldaps_port"),
            "defaults.registry_ldaps_port",
            default=fallback.registry_ldaps_port,
        ),
        agent_port=_expect_int(
            defaults_map.get("agent_port"), "defaults.agent_port", default=fallback.agent_port
        ),
        dn=_expect_str(defaults_map.get("dn", fallback.dn), "defaults.dn"),
    )

    return AppConfig(
        config_file=config_file,
        install_dir=install_dir,
        product_dir=product_dir,
        logs_dir=logs_dir,
        secrets_dir=secrets_dir,
        lock_timeout=lock_timeout,
        command_timeout=command_timeout,
        retry=retry,
        paths=paths,
        defaults=defaults,
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
        else:
            result[key] = value
    return result


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


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


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
    "PASSWORD_ENV_VARS",
    "PathsConfig",
    "RecordDefaults",
    "RetryConfig",
    "load_config",
]
