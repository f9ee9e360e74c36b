from __future__ import annotations

import threading
from datetime import datetime
from typing import Callable, Dict, Mapping, Optional

from pingwatch.errors import PersistenceError
from pingwatch.health import ProbeResult
from pingwatch.log import get_logger
from pingwatch.models import (
    DATE_FORMAT,
    OFFLINE,
    ONLINE,
    TIMESTAMP_FORMAT,
    DeviceConfig,
    DeviceLog,
    DeviceStatus,
    ScanSummary,
    StatusEvent,
)

logger = get_logger("scanner")

Prober = Callable[[str], ProbeResult]


def build_message(device_name: str, is_alive: bool, device: Optional[DeviceConfig]) -> str:
    """Fill the device's online/offline template, or a generic fallback."""
    messages = device.messages if device else None
    template = None
    if messages:
        template = messages.online if is_alive else messages.offline
    if not template:
        label = "ONLINE" if is_alive else "OFFLINE"
        template = f"{'✅' if is_alive else '❌'} {{name}} is now {label}"
    return template.replace("{name}", device_name)


class Scanner:
    """Probes every device, logs transitions and asks the notifier to announce them.

    ``live_status`` starts empty; a device's first reading only primes it.
    The device log is shared with readers and mutated in place.
    """

    def __init__(
        self,
        devices: Mapping[str, DeviceConfig],
        prober: Prober,
        notifier,
        device_log: Optional[DeviceLog] = None,
        save_device_log: Optional[Callable[[DeviceLog], None]] = None,
        debug: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.devices = dict(devices)
        self.prober = prober
        self.notifier = notifier
        self.device_log: DeviceLog = device_log if device_log is not None else {}
        self.save_device_log = save_device_log
        self.debug = debug
        self.clock = clock

        self.live_status: Dict[str, bool] = {}
        self.last_scan: Optional[ScanSummary] = None
        self._in_flight = threading.Lock()

    @property
    def scanning(self) -> bool:
        return self._in_flight.locked()

    def _probe(self, ip: str) -> bool:
        try:
            return bool(self.prober(ip).alive)
        except Exception as e:
            logger.warning("Probe of %s raised, treating as offline: %s", ip, e)
            return False

    def scan(self) -> Optional[ScanSummary]:
        """Run one pass over all devices.

        Returns ``None`` when skipped (debug mode, or a scan is already
        running).
        """
        if self.debug:
            return None
        if not self._in_flight.acquire(blocking=False):
            logger.debug("Scan already in progress, skipping tick")
            return None

        try:
            started = self.clock()
            current_time = started.strftime(TIMESTAMP_FORMAT)
            today = started.strftime(DATE_FORMAT)
            summary = ScanSummary(started_at=current_time)
            logger.debug("Scanning %d devices...", len(self.devices))

            for ip, device in self.devices.items():
                is_alive = self._probe(ip)
                summary.probed += 1
                device_name = device.display_name(ip)
                self.device_log.setdefault(ip, {}).setdefault(today, [])

                previous = self.live_status.get(ip)
                if previous is not None and previous != is_alive:
                    status = ONLINE if is_alive else OFFLINE
                    event = StatusEvent(status=status, timestamp=current_time)
                    self.device_log[ip][today].append(event.model_dump())
                    summary.transitions.append({"ip": ip, "status": status})
                    logger.info("%s is %s", device_name, status.upper())
                    self.notifier.send(build_message(device_name, is_alive, device))
                    summary.notified += 1
                elif previous is not None and device.notify_on_same_status:
                    self.notifier.send(build_message(device_name, is_alive, device))
                    summary.notified += 1

                self.live_status[ip] = is_alive

            if summary.transitions and self.save_device_log is not None:
                try:
                    self.save_device_log(self.device_log)
                    summary.saved = True
                except PersistenceError as e:
                    logger.error("Failed to save device log: %s", e)

            self.last_scan = summary
            return summary
        finally:
            self._in_flight.release()

    def get_statuses(self) -> Dict[str, DeviceStatus]:
        return {
            ip: DeviceStatus(
                name=device.display_name(ip),
                isOnline=bool(self.live_status.get(ip)),
            )
            for ip, device in self.devices.items()
        }

    def get_device_log(self) -> DeviceLog:
        return self.device_log
