from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

import uvicorn

from pingwatch.config import Settings, apply_config, load_config, settings_from_config
from pingwatch.devices import resolve_devices
from pingwatch.engine import Monitor
from pingwatch.errors import ConfigError
from pingwatch.health import check_targets
from pingwatch.log import parse_level, setup_logging
from pingwatch.models import DATE_FORMAT
from pingwatch.storage import JsonStore
from pingwatch.uptime import compute_uptime, format_duration, weekly_uptime


def _config_paths(config: Optional[str]) -> Optional[list[Path]]:
    return [Path(config)] if config else None


def _settings(args: argparse.Namespace) -> Settings:
    paths = _config_paths(getattr(args, "config", None))
    try:
        return settings_from_config(load_config(paths))
    except ConfigError as e:
        raise SystemExit(f"config error: {e}") from e


def _store(settings: Settings) -> JsonStore:
    return JsonStore(settings.log_file, settings.settings_file)


def _require_root(settings: Settings) -> None:
    if settings.probe_method == "icmp" and hasattr(os, "geteuid") and os.geteuid() != 0:
        print("warning: ICMP probing via raw sockets typically requires root "
              "(set [probe] method = \"system\" to use the ping binary)", file=sys.stderr)


def _check_date(value: str) -> str:
    try:
        datetime.strptime(value, DATE_FORMAT)
    except ValueError as exc:
        raise SystemExit(f"invalid date (expected YYYY-MM-DD): {value}") from exc
    return value


def cmd_serve(args: argparse.Namespace) -> None:
    from pingwatch.web.api import create_app

    settings = _settings(args)
    _require_root(settings)
    host = args.host or settings.host
    port = args.port or settings.port
    app = create_app(Monitor.from_settings(settings))
    print(f"[*] Server running on http://{host}:{port}")
    log_level = logging.getLevelName(parse_level(args.log_level)).lower()
    uvicorn.run(app, host=host, port=port, log_level=log_level)


def cmd_scan(args: argparse.Namespace) -> None:
    settings = _settings(args)
    _require_root(settings)
    monitor = Monitor.from_settings(settings)
    try:
        for index in range(args.count):
            if index:
                time.sleep(settings.scan_interval)
            summary = monitor.scanner.scan()
            if summary is None:
                print("scan skipped (debug mode)")
                continue
            for change in summary.transitions:
                print(f"{change['ip']:>15} -> {change['status']}")
    finally:
        monitor.notifier.cancel()
    for ip, status in monitor.scanner.get_statuses().items():
        state = "online" if status.isOnline else "offline"
        print(f"{ip:>15} {status.name:<20} {state}")


def cmd_status(args: argparse.Namespace) -> None:
    settings = _settings(args)
    _require_root(settings)
    devices = resolve_devices(settings.devices, settings.devices_file)
    results = check_targets(
        list(devices),
        method=settings.probe_method,
        iface=settings.iface,
        timeout=settings.probe_timeout,
    )
    for result in results:
        name = devices[result.ip].display_name(result.ip)
        if result.alive:
            print(f"{result.ip:>15} {name:<20} online rtt={result.rtt_ms:.1f}ms")
        else:
            suffix = f" ({result.error})" if result.error else ""
            print(f"{result.ip:>15} {name:<20} offline{suffix}")


def cmd_uptime(args: argparse.Namespace) -> None:
    settings = _settings(args)
    day = _check_date(args.date)
    day_log = _store(settings).load_device_log().get(args.ip, {}).get(day)
    if day_log is None:
        raise SystemExit("No data available for this device and date.")
    seconds = compute_uptime(day_log, day)
    device = resolve_devices(settings.devices, settings.devices_file).get(args.ip)
    name = device.display_name(args.ip) if device else args.ip
    if args.json:
        print(json.dumps({"device": name, "date": day, "uptime_seconds": seconds}))
    else:
        print(f"{name} {day} {format_duration(seconds)} ({seconds}s)")


def cmd_weekly(args: argparse.Namespace) -> None:
    settings = _settings(args)
    entries = weekly_uptime(_store(settings).load_device_log().get(args.ip, {}))
    if args.json:
        print(json.dumps(entries, indent=2))
        return
    for entry in entries:
        print(f"{entry['date']} {entry['uptime']:6.2f}h")


def cmd_devices(args: argparse.Namespace) -> None:
    settings = _settings(args)
    devices = resolve_devices(settings.devices, settings.devices_file)
    for ip, device in devices.items():
        flag = " (notify on same status)" if device.notify_on_same_status else ""
        print(f"{ip:>15} {device.display_name(ip)}{flag}")


def cmd_notifications(args: argparse.Namespace) -> None:
    store = _store(_settings(args))
    if args.action in ("on", "off"):
        store.save_notification_settings(args.action == "on")
    enabled = store.load_notification_settings().notificationsEnabled
    print(f"notifications {'enabled' if enabled else 'disabled'}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pingwatch",
        description="Ping a fixed set of devices, log status changes and report uptime.",
    )
    parser.add_argument("--config", help="TOML config file (default: ~/.pingwatch.toml, ./pingwatch.toml)")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API and the scan loop")
    serve_parser.add_argument("--host", help="Bind address (default from config: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, help="Port (default from config: 3031)")
    serve_parser.set_defaults(func=cmd_serve)

    scan_parser = subparsers.add_parser("scan", help="Run scans in the foreground and print changes")
    scan_parser.add_argument("--count", type=int, default=2,
                             help="Number of scans; the first one only primes (default: 2)")
    scan_parser.set_defaults(func=cmd_scan)

    status_parser = subparsers.add_parser("status", help="Probe every device once")
    status_parser.set_defaults(func=cmd_status)

    uptime_parser = subparsers.add_parser("uptime", help="Uptime of one device on one day")
    uptime_parser.add_argument("ip", help="Device address")
    uptime_parser.add_argument("date", help="Day as YYYY-MM-DD")
    uptime_parser.add_argument("--json", action="store_true", help="Print JSON")
    uptime_parser.set_defaults(func=cmd_uptime)

    weekly_parser = subparsers.add_parser("weekly", help="Daily uptime for the last seven days")
    weekly_parser.add_argument("ip", help="Device address")
    weekly_parser.add_argument("--json", action="store_true", help="Print JSON")
    weekly_parser.set_defaults(func=cmd_weekly)

    devices_parser = subparsers.add_parser("devices", help="List configured devices")
    devices_parser.set_defaults(func=cmd_devices)

    notifications_parser = subparsers.add_parser("notifications", help="Show or toggle notifications")
    notifications_parser.add_argument("action", choices=["on", "off", "status"], nargs="?", default="status")
    notifications_parser.set_defaults(func=cmd_notifications)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    # --config decides which file feeds the parser defaults.
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument("--config")
    known, _ = pre_parser.parse_known_args(argv)

    parser = build_parser()
    apply_config(parser, load_config(_config_paths(known.config)))
    args = parser.parse_args(argv)
    setup_logging(args.log_level)
    args.func(args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
