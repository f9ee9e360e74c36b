from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from pingwatch.errors import ConfigError
from pingwatch.models import DeviceConfig

DEFAULT_DEVICES: Dict[str, Dict[str, Any]] = {
    "192.168.28.40": {
        "name": "Kir",
        "messages": {
            "online": "{name} is home.",
            "offline": "{name} left home.",
        },
    },
    "192.168.28.22": {
        "name": "TV",
        "messages": {
            "online": "✅ {name} is online. 📺",
            "offline": "❌ {name} is offline. 📺",
        },
    },
}


def parse_devices(raw: Mapping[str, Any]) -> Dict[str, DeviceConfig]:
    """Validate an ``{ip: {...}}`` mapping, keeping declaration order."""
    devices: Dict[str, DeviceConfig] = {}
    for ip, entry in raw.items():
        try:
            devices[str(ip)] = DeviceConfig.model_validate(entry or {})
        except ValidationError as e:
            raise ConfigError(f"invalid device {ip}: {e}") from e
    return devices


def load_devices_file(path: str) -> Dict[str, DeviceConfig]:
    """
    Read devices from a YAML file shaped like::

        devices:
          192.168.28.22:
            name: TV
            messages:
              online: "{name} is online"
    """
    file_path = Path(path)
    if not file_path.exists():
        raise ConfigError(f"devices file not found: {path}")
    try:
        data = yaml.safe_load(file_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if isinstance(data, dict) and "devices" in data:
        data = data["devices"] or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must map addresses to device settings")
    return parse_devices(data)


def resolve_devices(
    inline: Optional[Mapping[str, Any]],
    devices_file: Optional[str],
) -> Dict[str, DeviceConfig]:
    if inline:
        return parse_devices(inline)
    if devices_file:
        return load_devices_file(devices_file)
    return parse_devices(DEFAULT_DEVICES)
