"""Rebuild online time from the per-day status log."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Mapping, Optional, Union

from pingwatch.models import DATE_FORMAT, OFFLINE, ONLINE, TIMESTAMP_FORMAT

DayLike = Union[date, str]


def _as_date(day: DayLike) -> date:
    if isinstance(day, datetime):
        return day.date()
    if isinstance(day, date):
        return day
    return datetime.strptime(day, DATE_FORMAT).date()


def _field(entry: Any, name: str) -> Any:
    if isinstance(entry, Mapping):
        return entry.get(name)
    return getattr(entry, name, None)


def _seconds(start: datetime, end: datetime) -> int:
    # Out-of-order timestamps (clock changes) count as zero, not negative.
    return max(0, int((end - start).total_seconds()))


def compute_uptime(
    events: Iterable[Any],
    day: DayLike,
    now: Optional[datetime] = None,
) -> int:
    """Return how many seconds the device was online on ``day``.

    ``events`` are the day's entries in append order, either dicts or
    :class:`~pingwatch.models.StatusEvent`. An ``online`` opens an interval
    (a second ``online`` just moves its start), an ``offline`` closes it.
    An interval still open at the end counts up to ``now`` when ``day`` is
    today, otherwise up to 23:59:59 of that day.
    """
    day = _as_date(day)
    total = 0
    opened: Optional[datetime] = None

    for entry in events:
        status = _field(entry, "status")
        stamp = datetime.strptime(_field(entry, "timestamp"), TIMESTAMP_FORMAT)
        if status == ONLINE:
            opened = stamp
        elif status == OFFLINE and opened is not None:
            total += _seconds(opened, stamp)
            opened = None

    if opened is not None:
        now = now or datetime.now()
        if day == now.date():
            total += _seconds(opened, now)
        else:
            total += _seconds(opened, datetime.combine(day, time(23, 59, 59)))

    return total


def format_duration(seconds: int) -> str:
    """``HH:MM:SS``; hours wrap at 24 like a clock face."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours % 24:02d}:{minutes:02d}:{secs:02d}"


def weekly_uptime(
    day_logs: Optional[Mapping[str, Iterable[Any]]],
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> list[dict]:
    """Uptime in hours for the seven days ending ``today``, oldest first."""
    now = now or datetime.now()
    today = today or now.date()
    day_logs = day_logs or {}
    result = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        key = day.strftime(DATE_FORMAT)
        seconds = compute_uptime(day_logs.get(key) or [], day, now=now)
        result.append({"date": key, "uptime": round(seconds / 3600, 2)})
    return result
