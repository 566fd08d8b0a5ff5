"""
Timestamp normalization at the Firestore boundary.

Design:
- **Storage**: Firestore Timestamp. The Python client reads these back as
  `DatetimeWithNanoseconds`; we write the same type so a read-modify-write
  round trip never changes precision.
- **In memory**: plain tz-aware UTC `datetime`.

Rules:
- Naive `datetime` (no tzinfo) is assumed to be **UTC**.
- A bare `date` means midnight of that day in the planner timezone.
- ISO8601 strings ending with 'Z' are treated as UTC.
- Numeric epoch: values >= 1e12 are treated as milliseconds, otherwise seconds.
"""

from __future__ import annotations

import threading
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Optional

from google.api_core.datetime_helpers import DatetimeWithNanoseconds

UTC = timezone.utc


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_utc(value: Any, *, tz: tzinfo = UTC) -> datetime:
    """
    Coerce common timestamp shapes into a tz-aware UTC datetime.

    Naive datetimes and bare dates are read as wall-clock time in `tz`.
    Supported: datetime (naive or aware), date, ISO8601 strings, epoch numbers,
    protobuf Timestamp (anything exposing `ToDatetime`).
    """
    if value is None:
        raise TypeError("timestamp value is None")

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=tz).astimezone(UTC)
        return value.astimezone(UTC)

    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=tz).astimezone(UTC)

    if isinstance(value, bool):
        raise TypeError("bool is not a timestamp")

    if isinstance(value, (int, float)):
        v = float(value)
        seconds = (v / 1000.0) if abs(v) >= 1e12 else v
        return datetime.fromtimestamp(seconds, tz=UTC)

    if isinstance(value, str):
        s = value.strip()
        if not s:
            raise ValueError("timestamp string is empty")
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            return to_utc(datetime.fromisoformat(s), tz=tz)
        except ValueError as e:
            raise ValueError(f"Invalid timestamp string: {value!r}") from e

    to_dt = getattr(value, "ToDatetime", None)
    if callable(to_dt):
        # protobuf Timestamp.ToDatetime() is naive UTC
        return to_utc(to_dt())

    raise TypeError(f"Unsupported timestamp type: {type(value).__name__}")


def to_store_timestamp(value: Any, *, tz: tzinfo = UTC) -> DatetimeWithNanoseconds:
    """Convert an in-memory value to the store-native timestamp type."""
    if isinstance(value, DatetimeWithNanoseconds):
        return value
    dt = to_utc(value, tz=tz)
    return DatetimeWithNanoseconds(
        dt.year,
        dt.month,
        dt.day,
        dt.hour,
        dt.minute,
        dt.second,
        dt.microsecond,
        tzinfo=UTC,
    )


def from_store_timestamp(value: Any) -> Optional[datetime]:
    """Convert a store value to a plain UTC datetime (None stays None)."""
    if value is None:
        return None
    dt = to_utc(value)
    return datetime(
        dt.year,
        dt.month,
        dt.day,
        dt.hour,
        dt.minute,
        dt.second,
        dt.microsecond,
        tzinfo=UTC,
    )


def start_of_day(value: Any, *, tz: tzinfo = UTC) -> datetime:
    """Midnight (in `tz`) of the calendar day containing `value`, as UTC. Naive datetimes are `tz` wall-clock."""
    if isinstance(value, datetime):
        local_day = value.date() if value.tzinfo is None else value.astimezone(tz).date()
    elif isinstance(value, date):
        local_day = value
    else:
        local_day = to_utc(value, tz=tz).astimezone(tz).date()
    return datetime.combine(local_day, time.min, tzinfo=tz).astimezone(UTC)


def end_of_day(value: Any, *, tz: tzinfo = UTC) -> datetime:
    """Last representable instant (in `tz`) of the day containing `value`, as UTC."""
    start_local = start_of_day(value, tz=tz).astimezone(tz)
    next_local = datetime.combine(start_local.date() + timedelta(days=1), time.min, tzinfo=tz)
    return (next_local - timedelta(microseconds=1)).astimezone(UTC)


class MonotonicUtcClock:
    """
    Wall-clock UTC that never repeats or goes backwards within a process.

    Successive writes stamped by the same clock always get strictly
    increasing `updatedAt` values, even at coarse OS clock resolution.
    """

    def __init__(self, source=utc_now) -> None:
        self._source = source
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            now = to_utc(self._source())
            if self._last is not None and now <= self._last:
                now = self._last + timedelta(microseconds=1)
            self._last = now
            return now


monotonic_utc_now = MonotonicUtcClock()
