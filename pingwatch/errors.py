from __future__ import annotations


class PingwatchError(Exception):
    """Base class for every error raised inside pingwatch."""


class ProbeError(PingwatchError):
    """A reachability probe could not be carried out (permissions, DNS, socket)."""

    def __init__(self, ip: str, reason: str) -> None:
        super().__init__(f"probe of {ip} failed: {reason}")
        self.ip = ip
        self.reason = reason


class PersistenceError(PingwatchError):
    """Reading or writing one of the JSON state files failed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class TransportError(PingwatchError):
    """A notification could not be delivered to its channel."""


class ConfigError(PingwatchError):
    """The configuration or the devices file is malformed."""
