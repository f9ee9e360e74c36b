from __future__ import annotations

import math
import platform
import subprocess
import time
from dataclasses import dataclass
from typing import Callable, Optional

from scapy.all import ICMP, IP, conf, sr1  # type: ignore

from pingwatch.errors import ProbeError
from pingwatch.log import get_logger

logger = get_logger("health")

DEFAULT_TIMEOUT = 2.0
ICMP_ECHO_REPLY = 0


@dataclass
class ProbeResult:
    ip: str
    alive: bool
    rtt_ms: Optional[float]
    error: Optional[str] = None


def ping_host(ip: str, iface: Optional[str], timeout: float = DEFAULT_TIMEOUT) -> Optional[float]:
    """Send one ICMP echo with scapy; return the RTT in ms or None on timeout or an ICMP error.

    Raw sockets usually need root; socket and resolution failures surface
    as :class:`ProbeError`.
    """
    if iface:
        conf.iface = iface
    pkt = IP(dst=ip) / ICMP()
    start = time.monotonic()
    try:
        reply = sr1(pkt, timeout=timeout, verbose=False)
    except (OSError, ValueError) as e:
        raise ProbeError(ip, str(e)) from e
    # Unreachable and time-exceeded errors also answer the request.
    if reply is None or not reply.haslayer(ICMP) or reply[ICMP].type != ICMP_ECHO_REPLY:
        return None
    return (time.monotonic() - start) * 1000


def _ping_command(ip: str, timeout: float) -> list[str]:
    system = platform.system().lower()
    wait = str(max(1, math.ceil(timeout)))
    if system == "windows":
        return ["ping", "-n", "1", "-w", str(int(timeout * 1000)), ip]
    if system == "darwin":
        return ["ping", "-c", "1", "-t", wait, ip]
    return ["ping", "-c", "1", "-W", wait, ip]


def system_ping(ip: str, iface: Optional[str], timeout: float = DEFAULT_TIMEOUT) -> Optional[float]:
    """Same contract as :func:`ping_host`, using the ``ping`` binary."""
    start = time.monotonic()
    try:
        proc = subprocess.run(
            _ping_command(ip, timeout),
            check=False,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=timeout + 1,
        )
    except subprocess.TimeoutExpired:
        return None
    except OSError as e:
        raise ProbeError(ip, str(e)) from e
    if proc.returncode != 0:
        return None
    return (time.monotonic() - start) * 1000


PROBES: dict[str, Callable[..., Optional[float]]] = {
    "icmp": ping_host,
    "system": system_ping,
}


def probe(
    ip: str,
    method: str = "icmp",
    iface: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> ProbeResult:
    """Check one address. Never raises: any failure reads as unreachable."""
    pinger = PROBES.get(method, ping_host)
    try:
        rtt = pinger(ip, iface, timeout=timeout)
    except Exception as e:
        logger.warning("Ping error for %s: %s", ip, e)
        return ProbeResult(ip=ip, alive=False, rtt_ms=None, error=str(e))
    return ProbeResult(ip=ip, alive=rtt is not None, rtt_ms=rtt)


def check_targets(
    ips: list[str],
    method: str = "icmp",
    iface: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> list[ProbeResult]:
    return [probe(ip, method=method, iface=iface, timeout=timeout) for ip in ips]
