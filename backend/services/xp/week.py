"""Weekly windows: Monday 00:00 UTC to the following Monday, half-open."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from utils.utcnow import to_utc_naive, utcnow

WEEK = timedelta(days=7)


@dataclass(frozen=True)
class WeekRange:
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    def label(self) -> str:
        return f"{self.start.date().isoformat()}..{self.end.date().isoformat()}"


def week_range_for(moment: Union[date, datetime, str]) -> WeekRange:
    """The week containing ``moment`` (naive values are taken as UTC)."""
    if isinstance(moment, datetime) or isinstance(moment, str):
        parsed = to_utc_naive(moment)
        if parsed is None:
            raise ValueError(f"cannot interpret {moment!r} as a date")
        day = parsed.date()
    else:
        day = moment
    monday = day - timedelta(days=day.weekday())
    start = datetime.combine(monday, time.min)
    return WeekRange(start=start, end=start + WEEK)


def get_current_week_range(now: Optional[datetime] = None) -> WeekRange:
    return week_range_for(now or utcnow())


def get_previous_week_range(week: Optional[WeekRange] = None) -> WeekRange:
    week = week or get_current_week_range()
    return WeekRange(start=week.start - WEEK, end=week.start)
