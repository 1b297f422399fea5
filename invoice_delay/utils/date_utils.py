"""Business-timezone clock and date arithmetic"""

import re
from datetime import datetime, time, timedelta, timezone, tzinfo
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S"

_FIXED_OFFSET = re.compile(r"^(?:UTC|GMT)?\s*([+-])(\d{1,2})(?::?(\d{2}))?$", re.IGNORECASE)


def resolve_timezone(name: str) -> tzinfo:
    """
    Resolve an IANA zone name or a fixed offset ("UTC+04:00", "+04:00", "GMT+4").

    Raises:
        ValueError: If the name is neither
    """
    match = _FIXED_OFFSET.match(name.strip())
    if match:
        sign, hours, minutes = match.groups()
        offset = timedelta(hours=int(hours), minutes=int(minutes or 0))
        if offset >= timedelta(hours=24):
            raise ValueError(f"Offset out of range: {name}")
        return timezone(-offset if sign == "-" else offset, name.strip())
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def format_instant(instant: datetime, tz: tzinfo) -> str:
    """Canonical display string in the given zone"""
    return instant.astimezone(tz).strftime(DISPLAY_FORMAT)


@dataclass(frozen=True)
class DayRange:
    """Business-day boundaries as epoch seconds and ISO dates"""

    start: int
    end: int
    start_date: str
    end_date: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start,
            "end": self.end,
            "start_date": self.start_date,
            "end_date": self.end_date,
        }


def _system_clock() -> datetime:
    return datetime.now(timezone.utc)


class TimeService:
    """
    Current instant and day boundaries in one business timezone.

    The clock is injectable so a run (or a test) can be pinned to a fixed
    instant. Callers capture now() once per run and pass it along.
    """

    def __init__(
        self,
        timezone_name: str = "Asia/Dubai",
        transfer_hour: int = 12,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.timezone_name = timezone_name
        self.tz = resolve_timezone(timezone_name)
        self.transfer_hour = transfer_hour
        self._clock = clock or _system_clock

    def now(self) -> datetime:
        return self._clock().astimezone(self.tz)

    def day_range(self, instant: datetime) -> DayRange:
        """Inclusive epoch-second bounds of the business day containing instant"""
        local = instant.astimezone(self.tz)
        start = datetime.combine(local.date(), time.min, tzinfo=self.tz)
        next_day = datetime.combine(local.date() + timedelta(days=1), time.min, tzinfo=self.tz)
        end = int(next_day.timestamp()) - 1
        return DayRange(
            start=int(start.timestamp()),
            end=end,
            start_date=start.date().isoformat(),
            end_date=local.date().isoformat(),
        )

    def due_date_for(self, days_offset: int, from_instant: datetime) -> datetime:
        """
        from_instant + days_offset calendar days, at the transfer hour.

        Days are added to the local calendar date, not as 24h multiples, so the
        transfer hour holds across DST changes in named zones.
        """
        local = from_instant.astimezone(self.tz)
        target = local.date() + timedelta(days=days_offset)
        return datetime.combine(target, time(hour=self.transfer_hour), tzinfo=self.tz)

    def format(self, instant: datetime) -> str:
        return format_instant(instant, self.tz)

    def is_past_transfer_time(self, instant: datetime) -> bool:
        local = instant.astimezone(self.tz)
        return local > local.replace(hour=self.transfer_hour, minute=0, second=0, microsecond=0)
