from __future__ import annotations

import functools
import threading
from datetime import date, datetime
from typing import Callable, Dict, Optional

from pingwatch.config import Settings
from pingwatch.devices import resolve_devices
from pingwatch.errors import PersistenceError
from pingwatch.health import probe
from pingwatch.log import get_logger
from pingwatch.models import DeviceConfig, UptimeReport
from pingwatch.notify import Notifier, Transport, build_transport
from pingwatch.scanner import Prober, Scanner
from pingwatch.storage import JsonStore
from pingwatch.uptime import compute_uptime, format_duration, weekly_uptime

logger = get_logger("engine")


# ---------------------------------------------------------------------------
# Scan loop
# ---------------------------------------------------------------------------

class ScanLoop:
    """Calls ``scan`` right away and then every ``interval`` seconds.

    The next tick is only waited for after the current scan returns, so
    ticks never pile up behind a slow scan.
    """

    def __init__(self, scan: Callable[[], object], interval: float) -> None:
        self.scan = scan
        self.interval = interval
        self.stop_event = threading.Event()
        self.thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def run(self) -> None:
        logger.info("Scan loop started (every %.0fs)", self.interval)
        while not self.stop_event.is_set():
            try:
                self.scan()
            except Exception as e:
                logger.exception("Scan failed: %s", e)
            self.stop_event.wait(self.interval)
        logger.info("Scan loop stopped")

    def start(self) -> None:
        if self.running:
            return
        self.stop_event.clear()
        self.thread = threading.Thread(target=self.run, name="pingwatch-scan", daemon=True)
        self.thread.start()

    def stop(self, timeout: float = 5) -> None:
        self.stop_event.set()
        if self.thread:
            self.thread.join(timeout=timeout)
        self.thread = None


# ---------------------------------------------------------------------------
# Monitor
# ---------------------------------------------------------------------------

class Monitor:
    """Owns everything one running instance needs.

    Shared by the scan loop, the HTTP handlers and the CLI instead of
    module-level globals, so tests can build as many as they like.
    """

    def __init__(
        self,
        settings: Settings,
        devices: Dict[str, DeviceConfig],
        store: JsonStore,
        prober: Prober,
        transport: Transport,
        timer_factory: Callable[..., object] = threading.Timer,
    ) -> None:
        self.settings = settings
        self.devices = devices
        self.store = store
        self.notifications_enabled = store.load_notification_settings().notificationsEnabled

        self.notifier = Notifier(
            transport,
            debounce_interval=settings.debounce_interval,
            start_hour=settings.start_hour,
            end_hour=settings.end_hour,
            enabled=lambda: self.notifications_enabled,
            timer_factory=timer_factory,
        )
        self.scanner = Scanner(
            devices,
            prober,
            self.notifier,
            device_log=store.load_device_log(),
            save_device_log=store.save_device_log,
            debug=settings.debug,
        )
        self.loop = ScanLoop(self.scanner.scan, settings.scan_interval)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        prober: Optional[Prober] = None,
        transport: Optional[Transport] = None,
    ) -> "Monitor":
        if prober is None:
            prober = functools.partial(
                probe,
                method=settings.probe_method,
                iface=settings.iface,
                timeout=settings.probe_timeout,
            )
        if transport is None:
            transport = build_transport(
                settings.transport,
                bot_token=settings.bot_token,
                chat_id=settings.chat_id,
                webhook_url=settings.webhook_url,
            )
        return cls(
            settings,
            resolve_devices(settings.devices, settings.devices_file),
            JsonStore(settings.log_file, settings.settings_file),
            prober,
            transport,
        )

    # --- lifecycle ---

    def start(self) -> None:
        if self.settings.debug:
            logger.warning("Debug mode: scanning is disabled")
        self.loop.start()

    def stop(self) -> None:
        self.loop.stop()
        self.notifier.cancel()

    # --- notifications ---

    def set_notifications_enabled(self, enabled: bool) -> bool:
        self.notifications_enabled = enabled
        try:
            self.store.save_notification_settings(enabled)
        except PersistenceError as e:
            logger.error("Failed to save notification settings: %s", e)
        logger.info("Notifications %s", "enabled" if enabled else "disabled")
        return self.notifications_enabled

    # --- read side ---

    def device_name(self, ip: str) -> str:
        device = self.devices.get(ip)
        return device.display_name(ip) if device else ip

    def uptime_report(self, ip: str, day: str, now: Optional[datetime] = None) -> Optional[UptimeReport]:
        """Uptime for one device and ISO date, or None without a log bucket."""
        day_log = self.scanner.get_device_log().get(ip, {}).get(day)
        if day_log is None:
            return None
        seconds = compute_uptime(list(day_log), day, now=now)
        return UptimeReport(
            device=self.device_name(ip),
            date=day,
            uptime_seconds=seconds,
            uptime_human_readable=format_duration(seconds),
        )

    def weekly(self, ip: str, today: Optional[date] = None, now: Optional[datetime] = None) -> list[dict]:
        day_logs = self.scanner.get_device_log().get(ip, {})
        return weekly_uptime(dict(day_logs), today=today, now=now)
