"""Settings loaded from ``config.yml`` with environment overrides."""

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from dstui.dstask.client import DEFAULT_BINARY, DEFAULT_TIMEOUT

ENV_PREFIX = "DSTUI"
DEFAULT_CONFIG_PATH = Path("config.yml")
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 4567


class ConfigError(ValueError):
    """Raised when the configuration file cannot be used."""


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return value


def _as_int(name: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc


def _as_float(name: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc


def _as_str(name: str, value: Any, optional: bool = False) -> str | None:
    if value is None and optional:
        return None
    if not isinstance(value, str) or value.strip() == "":
        raise ConfigError(f"{name} must be a non-empty string, got {value!r}")
    return value


def _permitted_hosts(value: Any) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(host) for host in value]
    raise ConfigError(f"permitted_hosts must be a string or a list, got {value!r}")


@dataclass(frozen=True)
class Settings:
    session_secret: str
    permitted_hosts: list[str] | None = None
    sync_script: str | None = None
    dstask_bin: str = DEFAULT_BINARY
    command_timeout: float = DEFAULT_TIMEOUT
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"
    log_file: Path | None = None

    @property
    def sync_configured(self) -> bool:
        return self.sync_script is not None

    @property
    def allow_any_host(self) -> bool:
        return self.permitted_hosts is not None and "*" in self.permitted_hosts


def read_config_file(path: Path) -> dict[str, Any]:
    """Parse the YAML config file; a missing file means no overrides."""
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Could not parse {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return data


def load_settings(path: Path | None = None) -> Settings:
    """
    Build the settings for this process.

    Args:
        path: Config file to read. Defaults to ``$DSTUI_CONFIG`` or
            ``config.yml`` in the working directory.

    Returns:
        The resolved settings
    """
    if path is None:
        env_path = _env(_k("CONFIG"))
        path = Path(env_path).expanduser() if env_path else DEFAULT_CONFIG_PATH
    data = read_config_file(path)

    log_file = _as_str(
        "log_file", _env(_k("LOG_FILE")) or data.get("log_file"), optional=True
    )
    port = _env(_k("PORT")) or data.get("port", DEFAULT_PORT)

    return Settings(
        session_secret=_env("SESSION_SECRET") or secrets.token_hex(32),
        permitted_hosts=_permitted_hosts(data.get("permitted_hosts")),
        sync_script=_as_str(
            "sync_script",
            _env(_k("SYNC_SCRIPT")) or data.get("sync_script"),
            optional=True,
        ),
        dstask_bin=_as_str(
            "dstask_bin", _env(_k("DSTASK_BIN")) or data.get("dstask_bin", DEFAULT_BINARY)
        ),
        command_timeout=_as_float(
            "command_timeout", data.get("command_timeout", DEFAULT_TIMEOUT)
        ),
        host=_as_str("host", _env(_k("HOST")) or data.get("host", DEFAULT_HOST)),
        port=_as_int("port", port),
        log_level=_as_str(
            "log_level", _env(_k("LOG_LEVEL")) or data.get("log_level", "INFO")
        ).upper(),
        log_file=Path(log_file).expanduser() if log_file else None,
    )
