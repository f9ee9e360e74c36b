from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool

ONLINE = "online"
OFFLINE = "offline"

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"


class DeviceMessages(BaseModel):
    online: Optional[str] = None
    offline: Optional[str] = None


class DeviceConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    messages: Optional[DeviceMessages] = None
    # Heartbeat-style devices: also announce repeated identical readings.
    notify_on_same_status: bool = Field(False, alias="notifyOnSameStatus")

    def display_name(self, ip: str) -> str:
        return self.name or ip


class StatusEvent(BaseModel):
    status: Literal["online", "offline"]
    timestamp: str  # local time, TIMESTAMP_FORMAT


class DeviceStatus(BaseModel):
    name: str
    isOnline: bool


class UptimeReport(BaseModel):
    device: str
    date: str
    uptime_seconds: int
    uptime_human_readable: str


class WeeklyEntry(BaseModel):
    date: str
    uptime: float  # hours


class NotificationSettings(BaseModel):
    notificationsEnabled: bool = False


class NotificationToggle(BaseModel):
    enabled: StrictBool


# ip -> ISO date -> events, as stored on disk
DeviceLog = Dict[str, Dict[str, List[dict]]]


class ScanSummary(BaseModel):
    started_at: str
    probed: int = 0
    transitions: List[Dict[str, str]] = Field(default_factory=list)
    notified: int = 0
    saved: bool = False
