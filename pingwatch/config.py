from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from pingwatch.errors import ConfigError
from pingwatch.log import get_logger

logger = get_logger("config")

CONFIG_NAME = "pingwatch.toml"

_TRUTHY = {"1", "true", "yes", "on"}


def config_paths() -> list[Path]:
    return [
        Path.home() / f".{CONFIG_NAME}",
        Path(CONFIG_NAME),
    ]


def load_config(paths: Optional[list[Path]] = None) -> Dict[str, Any]:
    """
    Load configuration from:
    1. ~/.pingwatch.toml
    2. ./pingwatch.toml

    Later files override earlier ones key by key. A file that fails to
    parse is skipped with a warning.
    """
    config: Dict[str, Any] = {}
    for path in paths if paths is not None else config_paths():
        if not path.exists():
            continue
        try:
            with path.open("rb") as f:
                _deep_update(config, tomllib.load(f))
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning("failed to load config %s: %s", path, e)
    return config


def _deep_update(target: Dict[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        if isinstance(value, dict) and key in target and isinstance(target[key], dict):
            _deep_update(target[key], value)
        else:
            target[key] = value


def as_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in _TRUTHY


@dataclass
class Settings:
    host: str = "0.0.0.0"
    port: int = 3031
    scan_interval: float = 10.0
    debug: bool = False
    log_level: str = "INFO"

    probe_method: str = "icmp"
    probe_timeout: float = 2.0
    iface: Optional[str] = None

    log_file: str = "device_log.json"
    settings_file: str = "notification_settings.json"
    devices_file: Optional[str] = None

    debounce_interval: float = 5 * 60
    start_hour: int = 8
    end_hour: int = 24
    transport: str = "telegram"
    bot_token: Optional[str] = None
    chat_id: Optional[str] = None
    webhook_url: Optional[str] = None

    devices: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        if self.probe_method not in ("icmp", "system"):
            raise ConfigError(f"unknown probe method: {self.probe_method}")
        if self.transport not in ("telegram", "webhook", "none"):
            raise ConfigError(f"unknown notification transport: {self.transport}")
        if not 0 <= self.start_hour <= 24 or not 0 <= self.end_hour <= 24:
            raise ConfigError("notification hours must lie within 0..24")
        if self.scan_interval <= 0:
            raise ConfigError("scan_interval must be positive")
        if self.probe_timeout <= 0:
            raise ConfigError("probe_timeout must be positive")


# Numeric fields; TOML strings such as "8" are converted, anything else is rejected.
_NUMERIC = {
    "port": int,
    "scan_interval": float,
    "probe_timeout": float,
    "debounce_interval": float,
    "start_hour": int,
    "end_hour": int,
}


def _coerce(attr: str, value: Any) -> Any:
    convert = _NUMERIC.get(attr)
    if convert is None:
        return value
    try:
        return convert(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{attr} must be a number, got {value!r}") from e


# section -> {config key: Settings attribute}
_SECTIONS = {
    "global": {
        "host": "host",
        "port": "port",
        "scan_interval": "scan_interval",
        "debug": "debug",
        "log_level": "log_level",
    },
    "probe": {
        "method": "probe_method",
        "timeout": "probe_timeout",
        "iface": "iface",
    },
    "storage": {
        "log_file": "log_file",
        "settings_file": "settings_file",
        "devices_file": "devices_file",
    },
    "notifications": {
        "debounce_interval": "debounce_interval",
        "start_hour": "start_hour",
        "end_hour": "end_hour",
        "transport": "transport",
        "bot_token": "bot_token",
        "chat_id": "chat_id",
        "webhook_url": "webhook_url",
    },
}


def settings_from_config(
    config: Mapping[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build :class:`Settings` from a merged config dict plus the environment.

    ``DEBUG``, ``TELEGRAM_BOT_TOKEN`` and ``TELEGRAM_CHAT_ID`` win over the
    file values so secrets can stay out of the TOML.
    """
    env = os.environ if environ is None else environ
    settings = Settings()
    for section, keys in _SECTIONS.items():
        values = config.get(section) or {}
        if not isinstance(values, dict):
            raise ConfigError(f"[{section}] must be a table")
        for key, attr in keys.items():
            if key in values:
                setattr(settings, attr, _coerce(attr, values[key]))

    devices = config.get("devices")
    if devices is not None:
        if not isinstance(devices, dict):
            raise ConfigError("[devices] must be a table keyed by address")
        settings.devices = dict(devices)

    if "DEBUG" in env:
        settings.debug = as_boolean(env["DEBUG"])
    settings.debug = as_boolean(settings.debug)
    if env.get("TELEGRAM_BOT_TOKEN"):
        settings.bot_token = env["TELEGRAM_BOT_TOKEN"]
    if env.get("TELEGRAM_CHAT_ID"):
        settings.chat_id = env["TELEGRAM_CHAT_ID"]

    settings.validate()
    return settings


def load_settings(paths: Optional[list[Path]] = None) -> Settings:
    return settings_from_config(load_config(paths))


def apply_config(parser: argparse.ArgumentParser, config: Dict[str, Any]) -> None:
    """
    Use the ``[global]`` section as argparse defaults, e.g.::

        [global]
        log_level = "DEBUG"

    Only keys matching an option of ``parser`` are applied; command-line
    flags still override them.
    """
    known = {action.dest for action in parser._actions}
    defaults = {
        key: value
        for key, value in (config.get("global") or {}).items()
        if key in known
    }
    parser.set_defaults(**defaults)
