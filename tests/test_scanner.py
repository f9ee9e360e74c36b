"""Tests for pingwatch.scanner (priming, transitions, persistence, guards)."""
from __future__ import annotations

from datetime import datetime
from typing import List

import pytest

from pingwatch.errors import PersistenceError
from pingwatch.health import ProbeResult
from pingwatch.models import DeviceConfig
from pingwatch.scanner import Scanner, build_message

TODAY = "2024-05-01"


class FakeNotifier:
    def __init__(self) -> None:
        self.messages: List[str] = []

    def send(self, message: str) -> None:
        self.messages.append(message)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def saved():
    return []


@pytest.fixture
def scanner(devices, prober, notifier, saved):
    return Scanner(
        devices,
        prober,
        notifier,
        save_device_log=lambda log: saved.append(log),
        clock=lambda: datetime(2024, 5, 1, 9, 30, 0),
    )


class TestBuildMessage:
    def test_template_substitution(self):
        device = DeviceConfig.model_validate({
            "messages": {"online": "{name} is home, {name}!", "offline": "{name} left"},
        })
        assert build_message("Kir", True, device) == "Kir is home, Kir!"
        assert build_message("Kir", False, device) == "Kir left"

    def test_fallback_messages(self):
        assert build_message("TV", True, DeviceConfig()) == "✅ TV is now ONLINE"
        assert build_message("TV", False, None) == "❌ TV is now OFFLINE"

    def test_partial_template_falls_back(self):
        device = DeviceConfig.model_validate({"messages": {"online": "{name} up"}})
        assert build_message("NAS", False, device) == "❌ NAS is now OFFLINE"


class TestScan:
    def test_first_probe_only_primes(self, scanner, prober, notifier, saved):
        prober.set("10.0.0.1", True)
        summary = scanner.scan()
        assert summary.probed == 2
        assert summary.transitions == []
        assert notifier.messages == []
        assert saved == []
        assert scanner.device_log["10.0.0.1"][TODAY] == []
        assert scanner.device_log["10.0.0.2"][TODAY] == []
        assert scanner.live_status == {"10.0.0.1": True, "10.0.0.2": False}

    def test_identical_readings_log_nothing(self, scanner, prober, notifier):
        prober.set("10.0.0.1", True)
        for _ in range(3):
            scanner.scan()
        assert scanner.device_log["10.0.0.1"][TODAY] == []
        assert notifier.messages == []

    def test_transition_logs_one_event_and_notifies(self, scanner, prober, notifier, saved):
        prober.set("10.0.0.1", False, True)
        scanner.scan()
        summary = scanner.scan()

        events = scanner.device_log["10.0.0.1"][TODAY]
        assert events == [{"status": "online", "timestamp": "2024-05-01 09:30:00"}]
        assert notifier.messages == ["TV is on"]
        assert summary.transitions == [{"ip": "10.0.0.1", "status": "online"}]
        assert summary.saved is True
        assert len(saved) == 1

    def test_going_offline_uses_fallback_name(self, scanner, prober, notifier):
        prober.set("10.0.0.2", True, False)
        scanner.scan()
        scanner.scan()
        assert scanner.device_log["10.0.0.2"][TODAY][0]["status"] == "offline"
        assert notifier.messages == ["❌ 10.0.0.2 is now OFFLINE"]

    def test_probe_error_counts_as_offline(self, devices, notifier):
        calls = []

        def flaky(ip):
            calls.append(ip)
            raise OSError("network unreachable")

        scanner = Scanner(devices, flaky, notifier)
        scanner.scan()
        assert calls == ["10.0.0.1", "10.0.0.2"]
        assert scanner.live_status == {"10.0.0.1": False, "10.0.0.2": False}

    def test_save_failure_is_not_fatal(self, devices, prober, notifier):
        def broken_save(log):
            raise PersistenceError("device_log.json", "disk full")

        scanner = Scanner(devices, prober, notifier, save_device_log=broken_save)
        prober.set("10.0.0.1", False, True)
        scanner.scan()
        summary = scanner.scan()
        assert summary.saved is False
        assert len(scanner.device_log["10.0.0.1"][summary.started_at[:10]]) == 1

    def test_debug_mode_skips_everything(self, devices, prober, notifier):
        scanner = Scanner(devices, prober, notifier, debug=True)
        assert scanner.scan() is None
        assert prober.calls == []
        assert scanner.device_log == {}

    def test_overlapping_scan_is_dropped(self, devices, notifier):
        inner = []

        def reentrant(ip):
            inner.append(scanner.scan())
            return ProbeResult(ip=ip, alive=True, rtt_ms=1.0)

        scanner = Scanner(devices, reentrant, notifier)
        assert scanner.scan() is not None
        assert inner == [None, None]
        assert not scanner.scanning

    def test_notify_on_same_status(self, prober, notifier):
        devices = {"10.0.0.9": DeviceConfig(name="Bell", notify_on_same_status=True)}
        scanner = Scanner(devices, prober, notifier)
        prober.set("10.0.0.9", True)
        scanner.scan()
        assert notifier.messages == []
        scanner.scan()
        scanner.scan()
        assert notifier.messages == ["✅ Bell is now ONLINE"] * 2
        assert all(events == [] for events in scanner.device_log["10.0.0.9"].values())

    def test_existing_log_is_appended(self, devices, prober, notifier):
        log = {"10.0.0.1": {TODAY: [{"status": "online", "timestamp": f"{TODAY} 08:00:00"}]}}
        scanner = Scanner(devices, prober, notifier, device_log=log,
                          clock=lambda: datetime(2024, 5, 1, 9, 30, 0))
        prober.set("10.0.0.1", True, False)
        scanner.scan()
        scanner.scan()
        assert [e["status"] for e in log["10.0.0.1"][TODAY]] == ["online", "offline"]


class TestReadSide:
    def test_statuses_before_first_scan(self, scanner):
        statuses = scanner.get_statuses()
        assert statuses["10.0.0.1"].name == "TV"
        assert statuses["10.0.0.1"].isOnline is False
        assert statuses["10.0.0.2"].name == "10.0.0.2"

    def test_statuses_after_scan(self, scanner, prober):
        prober.set("10.0.0.1", True)
        scanner.scan()
        assert scanner.get_statuses()["10.0.0.1"].isOnline is True
