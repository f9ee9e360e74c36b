from __future__ import annotations

import enum
import json
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Protocol
from urllib import request

from pingwatch.errors import TransportError
from pingwatch.log import get_logger

logger = get_logger("notify")

TELEGRAM_API = "https://api.telegram.org"


def _post_json(url: str, data: dict, timeout: float = 5) -> None:
    req = request.Request(
        url,
        data=json.dumps(data).encode("utf-8"),
        headers={"Content-Type": "application/json", "User-Agent": "pingwatch/1.0"},
    )
    try:
        with request.urlopen(req, timeout=timeout):
            pass
    except OSError as e:  # URLError, HTTPError and socket timeouts
        raise TransportError(str(e)) from e


class Transport(Protocol):
    def send(self, message: str) -> bool: ...


class TelegramTransport:
    def __init__(self, bot_token: Optional[str], chat_id: Optional[str], timeout: float = 5) -> None:
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout

    def send(self, message: str) -> bool:
        if not self.bot_token or not self.chat_id:
            return False
        url = f"{TELEGRAM_API}/bot{self.bot_token}/sendMessage"
        try:
            _post_json(url, {"chat_id": self.chat_id, "text": message}, self.timeout)
        except TransportError as e:
            logger.error("Failed to send Telegram message: %s", e)
            return False
        return True


class WebhookTransport:
    def __init__(self, url: Optional[str], timeout: float = 5) -> None:
        self.url = url
        self.timeout = timeout

    def send(self, message: str) -> bool:
        if not self.url:
            return False
        try:
            _post_json(self.url, {"text": message}, self.timeout)
        except TransportError as e:
            logger.error("Webhook notification failed: %s", e)
            return False
        return True


class NullTransport:
    def send(self, message: str) -> bool:
        logger.info("notification: %s", message)
        return True


def build_transport(kind: str, bot_token=None, chat_id=None, webhook_url=None) -> Transport:
    if kind == "telegram":
        return TelegramTransport(bot_token, chat_id)
    if kind == "webhook":
        return WebhookTransport(webhook_url)
    return NullTransport()


class DebounceState(enum.Enum):
    IDLE = "idle"
    ARMED = "armed"


@dataclass
class PendingNotification:
    message: str
    deadline: float


class Notifier:
    """Rate-limited, quiet-hours-aware front end for a :class:`Transport`.

    At most one message goes out per ``debounce_interval`` seconds. Messages
    arriving inside the interval replace each other and the newest one is
    sent when the single deferred timer fires. Outside ``[start_hour,
    end_hour)`` or while ``enabled()`` is false nothing is queued, and the
    same check is repeated when a deferred send fires.
    """

    def __init__(
        self,
        transport: Transport,
        debounce_interval: float = 5 * 60,
        start_hour: int = 8,
        end_hour: int = 24,
        enabled: Callable[[], bool] = lambda: True,
        clock: Callable[[], float] = time.time,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self.transport = transport
        self.debounce_interval = debounce_interval
        self.start_hour = start_hour
        self.end_hour = end_hour
        self.enabled = enabled
        self.clock = clock
        self.timer_factory = timer_factory

        self.last_sent_time = 0.0
        self.state = DebounceState.IDLE
        self.pending: Optional[PendingNotification] = None
        self._timer: Any = None
        self._lock = threading.Lock()

    def within_window(self, now: Optional[float] = None) -> bool:
        hour = datetime.fromtimestamp(self.clock() if now is None else now).hour
        return self.start_hour <= hour < self.end_hour

    def _allowed(self, now: float) -> bool:
        return bool(self.enabled()) and self.within_window(now)

    def _dispatch(self, message: str) -> bool:
        try:
            return bool(self.transport.send(message))
        except Exception as e:
            logger.error("Transport %s raised: %s", type(self.transport).__name__, e)
            return False

    def send(self, message: str) -> None:
        with self._lock:
            now = self.clock()
            if not self._allowed(now):
                logger.debug("Notification suppressed: %s", message)
                return

            elapsed = now - self.last_sent_time
            if elapsed >= self.debounce_interval:
                if self._dispatch(message):
                    self.last_sent_time = now
                return

            if self.state is DebounceState.ARMED and self.pending is not None:
                self.pending.message = message
                return

            delay = self.debounce_interval - elapsed
            self.pending = PendingNotification(message=message, deadline=now + delay)
            self.state = DebounceState.ARMED
            self._timer = self.timer_factory(delay, self._fire)
            if hasattr(self._timer, "daemon"):
                self._timer.daemon = True
            self._timer.start()
            logger.debug("Notification deferred %.0fs", delay)

    def _fire(self) -> None:
        with self._lock:
            pending, self.pending = self.pending, None
            self.state = DebounceState.IDLE
            self._timer = None
            if pending is None:
                return
            now = self.clock()
            if not self._allowed(now):
                logger.debug("Deferred notification dropped: %s", pending.message)
                return
            if self._dispatch(pending.message):
                self.last_sent_time = self.clock()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self.pending = None
            self.state = DebounceState.IDLE
