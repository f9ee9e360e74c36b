from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, List, Optional

import pytest

from pingwatch.config import Settings
from pingwatch.engine import Monitor
from pingwatch.health import ProbeResult
from pingwatch.models import DeviceConfig
from pingwatch.storage import JsonStore


class FakeTimer:
    """Stands in for threading.Timer; fires only when told to."""

    def __init__(self, interval: float, function: Callable[[], None]) -> None:
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.function()


class TimerFactory:
    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def __call__(self, interval: float, function: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer


class RecordingTransport:
    def __init__(self, succeed: bool = True) -> None:
        self.sent: List[str] = []
        self.succeed = succeed

    def send(self, message: str) -> bool:
        self.sent.append(message)
        return self.succeed


class FakeClock:
    """Epoch clock starting at 12:00 local time on 2024-05-01."""

    def __init__(self, hour: int = 12) -> None:
        self.now = datetime(2024, 5, 1, hour, 0, 0).timestamp()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedProber:
    """Returns queued readings per address; the last reading repeats."""

    def __init__(self, readings: Optional[Dict[str, List[bool]]] = None) -> None:
        self.readings = {ip: list(values) for ip, values in (readings or {}).items()}
        self.calls: List[str] = []

    def set(self, ip: str, *values: bool) -> None:
        self.readings[ip] = list(values)

    def __call__(self, ip: str) -> ProbeResult:
        self.calls.append(ip)
        values = self.readings.get(ip) or [False]
        alive = values.pop(0) if len(values) > 1 else values[0]
        return ProbeResult(ip=ip, alive=alive, rtt_ms=1.0 if alive else None)


@pytest.fixture
def timer_factory():
    return TimerFactory()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tmp_store(tmp_path):
    return JsonStore(
        log_path=str(tmp_path / "device_log.json"),
        settings_path=str(tmp_path / "notification_settings.json"),
    )


@pytest.fixture
def devices():
    return {
        "10.0.0.1": DeviceConfig.model_validate({
            "name": "TV",
            "messages": {"online": "{name} is on", "offline": "{name} is off"},
        }),
        "10.0.0.2": DeviceConfig(),
    }


@pytest.fixture
def prober():
    return ScriptedProber()


@pytest.fixture
def monitor(tmp_path, tmp_store, devices, prober, transport, timer_factory):
    settings = Settings(
        log_file=tmp_store.log_path,
        settings_file=tmp_store.settings_path,
        scan_interval=0.01,
    )
    return Monitor(settings, devices, tmp_store, prober, transport, timer_factory=timer_factory)


@pytest.fixture
def clock_at():
    """Build a FakeClock at a given local hour."""
    return lambda hour: FakeClock(hour=hour)
