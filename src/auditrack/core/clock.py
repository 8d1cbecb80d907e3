"""Clock collaborators: where "today" comes from."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    def today(self) -> date: ...


class SystemClock:
    """Calendar date of the host, or of *tz* when given (``Europe/Istanbul``)."""

    def __init__(self, tz: str | None = None) -> None:
        self._tz = ZoneInfo(tz) if tz else None

    def today(self) -> date:
        return datetime.now(self._tz).date()


class FixedClock:
    """A settable clock for tests and what-if runs."""

    def __init__(self, current: date) -> None:
        self.current = current

    def today(self) -> date:
        return self.current

    def advance(self, days: int = 1) -> None:
        self.current = self.current + timedelta(days=days)
