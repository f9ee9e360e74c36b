from __future__ import annotations

import json
import os
import tempfile
from typing import Any

from pingwatch.errors import PersistenceError
from pingwatch.log import get_logger
from pingwatch.models import DeviceLog, NotificationSettings

logger = get_logger("storage")


class JsonStore:
    """Device log and notification settings, each kept as one JSON file.

    Files are read once at startup and rewritten whole on every change.
    """

    def __init__(
        self,
        log_path: str = "device_log.json",
        settings_path: str = "notification_settings.json",
    ) -> None:
        self.log_path = log_path
        self.settings_path = settings_path

    def _read(self, path: str, fallback: Any) -> Any:
        if not os.path.exists(path):
            return fallback
        try:
            with open(path, "r", encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to read %s: %s", path, e)
            return fallback

    def _write(self, path: str, value: Any) -> None:
        directory = os.path.dirname(os.path.abspath(path)) or "."
        try:
            fd, tmp = tempfile.mkstemp(prefix=".pingwatch.", dir=directory)
        except OSError as e:
            raise PersistenceError(path, str(e)) from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(value, handle, indent=2, ensure_ascii=False)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(path, str(e)) from e
        finally:
            if os.path.exists(tmp):
                os.remove(tmp)

    def load_device_log(self) -> DeviceLog:
        data = self._read(self.log_path, {})
        if not isinstance(data, dict):
            logger.error("Ignoring %s: expected an object, got %s",
                         self.log_path, type(data).__name__)
            return {}
        return data

    def save_device_log(self, device_log: DeviceLog) -> None:
        self._write(self.log_path, device_log)

    def load_notification_settings(self) -> NotificationSettings:
        data = self._read(self.settings_path, {})
        if not isinstance(data, dict):
            return NotificationSettings()
        return NotificationSettings(
            notificationsEnabled=data.get("notificationsEnabled") is True
        )

    def save_notification_settings(self, enabled: bool) -> None:
        settings = NotificationSettings(notificationsEnabled=enabled)
        self._write(self.settings_path, settings.model_dump())
