from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @property
    def label(self) -> str:
        return f"{self.start.year:04d}-{self.start.month:02d}"


def local_date(moment: datetime, tz: Optional[str] = None) -> date:
    """Calendar date of a stored timestamp in the given timezone.

    Stored timestamps are naive UTC.
    """
    if tz is None:
        return moment.date()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(tz)).date()


def today_in(tz: str) -> date:
    return datetime.now(ZoneInfo(tz)).date()


def month_start(d: date) -> date:
    return d.replace(day=1)


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def month_period(d: date) -> Period:
    first = month_start(d)
    return Period("month", first, add_months(first, 1) - date.resolution)


def trailing_months(today: date, count: int = 6) -> list[Period]:
    """One period per calendar month ending with today's month, oldest first."""
    current = month_start(today)
    return [month_period(add_months(current, -offset)) for offset in range(count - 1, -1, -1)]


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if not period or period == "all":
        return Period("all", date(1970, 1, 1), today)
    if period == "today":
        return Period("today", today, today)
    if period == "week":
        return Period("week", today - timedelta(days=7), today)
    if period == "last_month":
        first_this = today.replace(day=1)
        last_month_end = first_this - date.resolution
        last_month_start = last_month_end.replace(day=1)
        return Period("last_month", last_month_start, last_month_end)
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)

    # this month
    this_month = month_period(today)
    return Period("this_month", this_month.start, this_month.end)
