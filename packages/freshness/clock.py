"""Civil-day clock used for every "today" comparison."""
from __future__ import annotations

import os
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = os.getenv("SHELFWATCH_TIMEZONE", "Europe/Berlin")

NowProvider = Callable[[], datetime]


class Clock:
    """Supply "now" and "today" in a fixed civil timezone."""

    def __init__(self, timezone_name: str | None = None, *, now: Optional[NowProvider] = None) -> None:
        name = timezone_name or DEFAULT_TIMEZONE
        try:
            self.tz = ZoneInfo(name)
        except ZoneInfoNotFoundError:
            raise ValueError(f"Unknown timezone: {name!r}") from None
        self.timezone_name = name
        self._now = now

    def now(self) -> datetime:
        """Return the current moment as an aware datetime in the civil timezone."""

        current = self._now() if self._now is not None else datetime.now(timezone.utc)
        return _as_utc(current).astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()

    def civil_date(self, moment: datetime) -> date:
        """Return the civil date of ``moment``; naive values are read as UTC."""

        return _as_utc(moment).astimezone(self.tz).date()

    def day_bounds(self, day: date) -> Tuple[datetime, datetime]:
        """Return the UTC ``[start, end)`` interval covering the civil ``day``."""

        start = datetime.combine(day, time.min, tzinfo=self.tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self.tz)
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

    def is_today(self, moment: datetime | None, *, today: date | None = None) -> bool:
        if moment is None:
            return False
        return self.civil_date(moment) == (today or self.today())


def fixed_clock(moment: datetime, timezone_name: str | None = None) -> Clock:
    """Return a clock frozen at ``moment``."""

    return Clock(timezone_name, now=lambda: moment)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


__all__ = ["Clock", "DEFAULT_TIMEZONE", "NowProvider", "fixed_clock"]
