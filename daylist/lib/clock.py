"""Calendar dates for "today" and "yesterday" in one consistent zone.

Every date string is derived from a single zone held by the Clock, so
today(), yesterday() and to_date_string() never disagree across a DST
boundary. Timestamps are stored in UTC.
"""

from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone, tzinfo

from dateutil import tz

from .. import config

Instant = Callable[[], datetime]


def _system_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_zone(name: str | None) -> tzinfo:
    if not name:
        return tz.tzlocal()
    zone = tz.gettz(name)
    if zone is None:
        raise ValueError(f"unknown timezone '{name}'")
    return zone


class Clock:
    def __init__(self, zone: tzinfo | None = None, instant: Instant | None = None):
        self.zone = zone if zone is not None else tz.tzlocal()
        self._instant = instant or _system_now

    def now(self) -> datetime:
        current = self._instant()
        if current.tzinfo is None:
            current = current.replace(tzinfo=self.zone)
        return current.astimezone(self.zone)

    def utcnow(self) -> datetime:
        return self.now().astimezone(timezone.utc)

    def today_date(self) -> date:
        return self.now().date()

    def today(self) -> str:
        return self.today_date().isoformat()

    def yesterday(self) -> str:
        return self.days_ago(1)

    def days_ago(self, n: int) -> str:
        return (self.today_date() - timedelta(days=n)).isoformat()

    def to_date_string(self, moment: datetime) -> str:
        """Local calendar date of an instant. Naive values are taken as already local."""
        if moment.tzinfo is None:
            return moment.date().isoformat()
        return moment.astimezone(self.zone).date().isoformat()

    def stamp(self) -> str:
        """Current instant as a UTC ISO timestamp, the stored form."""
        return self.utcnow().isoformat(timespec="seconds")


_default: Clock | None = None


def default() -> Clock:
    global _default
    if _default is None:
        _default = Clock(zone=resolve_zone(config.get_timezone()))
    return _default


def use(clock: Clock | None) -> None:
    global _default
    _default = clock
