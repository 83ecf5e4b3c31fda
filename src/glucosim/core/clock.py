from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    """Source of wall-clock time. Engine functions take ``now`` explicitly instead."""

    def now(self) -> datetime:
        ...


class SystemClock:
    def __init__(self, tz: Optional[timezone] = timezone.utc) -> None:
        self.tz = tz

    def now(self) -> datetime:
        return datetime.now(self.tz)


class FixedClock:
    """
    Manually driven clock for tests and replays.
    """

    def __init__(self, current: datetime) -> None:
        self._current = current

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime) -> None:
        self._current = current

    def advance(self, minutes: float = 0.0, **kwargs: float) -> datetime:
        self._current = self._current + timedelta(minutes=minutes, **kwargs)
        return self._current


def as_utc(timestamp: datetime) -> datetime:
    """
    Express an aware timestamp in UTC; naive timestamps pass through.

    Arithmetic and comparisons between datetimes sharing a tzinfo run on wall
    time, which repeats or skips instants across DST changes. Converting to
    UTC first keeps both on the real timeline.
    """
    if timestamp.tzinfo is None:
        return timestamp
    return timestamp.astimezone(timezone.utc)
