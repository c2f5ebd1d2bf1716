"""
Configuration file loading.

Search order:
1. Explicit path (-f/--config-file flag)
2. .shush/config.yaml (current directory)
3. ~/.shush/config.yaml (user home)
4. /etc/shush/config.yaml (system-wide)
5. Defaults

String values may reference environment variables as ``${VAR}``, e.g.
``api_url: https://${SENSU_HOST}/api``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import structlog
import yaml
from pydantic import ValidationError as PydanticValidationError

from shush.config.settings import Settings
from shush.core.errors import ConfigurationError

logger = structlog.get_logger()

ENV_PREFIX = "SHUSH_"
SYSTEM_CONFIG = Path("/etc/shush/config.yaml")

# Key used by older INI-style configs for the API endpoint.
_LEGACY_KEYS = {"api": "api_url"}


def get_config_path(explicit_path: str | Path | None = None) -> Path | None:
    """
    Find the configuration file to use.

    Raises:
        ConfigurationError: if an explicit path was given but does not exist
    """
    if explicit_path:
        path = Path(explicit_path).expanduser()
        if not path.is_file():
            raise ConfigurationError(
                "Config file not found",
                details={"path": str(path)},
            )
        return path

    candidates = [
        Path.cwd() / ".shush" / "config.yaml",
        Path.home() / ".shush" / "config.yaml",
        SYSTEM_CONFIG,
    ]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def substitute_env(value: str, environ: Mapping[str, str] | None = None) -> str:
    """Replace every ``${VAR}`` in ``value`` with the variable's value."""
    env = os.environ if environ is None else environ
    out: list[str] = []
    rest = value
    while True:
        start = rest.find("${")
        if start == -1:
            out.append(rest)
            break
        end = rest.find("}", start + 2)
        if end == -1:
            raise ConfigurationError(
                "Unterminated ${...} reference in config value",
                details={"value": value},
            )
        name = rest[start + 2 : end]
        if name not in env:
            raise ConfigurationError(
                f"Variable {name} is not present",
                details={"variable": name},
            )
        out.append(rest[:start])
        out.append(env[name])
        rest = rest[end + 1 :]
    return "".join(out)


def read_config_file(path: Path, environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Load a YAML config file into settings keyword arguments."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            "Failed to parse config file",
            details={"path": str(path), "error": str(e)},
        ) from e
    if not isinstance(data, dict):
        raise ConfigurationError(
            "Config file must contain a mapping",
            details={"path": str(path)},
        )

    values: dict[str, Any] = {}
    for key, raw in data.items():
        name = _LEGACY_KEYS.get(str(key), str(key))
        values[name] = substitute_env(raw, environ) if isinstance(raw, str) else raw
    logger.debug("loaded_config", path=str(path), keys=sorted(values))
    return values


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """
    Build Settings from defaults, the config file and the environment.

    SHUSH_* environment variables override values from the file.
    """
    env = os.environ if environ is None else environ
    config_path = get_config_path(path)
    values: dict[str, Any] = {}
    if config_path is not None:
        values = read_config_file(config_path, env)
        values = {
            key: value
            for key, value in values.items()
            if f"{ENV_PREFIX}{key.upper()}" not in env
        }

    try:
        return Settings(**values)
    except PydanticValidationError as e:
        raise ConfigurationError(
            "Invalid configuration",
            details={"path": str(config_path) if config_path else None, "error": str(e)},
        ) from e
