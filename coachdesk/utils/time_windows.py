"""
Day-boundary helpers.

All boundaries are computed in the coach's timezone and returned as aware
datetimes. Ranges are inclusive on both ends.
"""

from datetime import date, datetime, time, timedelta, tzinfo


def _require_aware(now: datetime) -> None:
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")


def start_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def end_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.max, tzinfo=tz)


def local_date(moment: datetime, tz: tzinfo) -> date:
    _require_aware(moment)
    return moment.astimezone(tz).date()


def day_window(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    return start_of_day(day, tz), end_of_day(day, tz)


def tomorrow_window(now: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
    """[00:00:00, 23:59:59.999999] of the day after `now`, in `tz`."""
    return day_window(local_date(now, tz) + timedelta(days=1), tz)


def trailing_window(now: datetime, tz: tzinfo, days_back: int = 2) -> tuple[datetime, datetime]:
    """
    From the start of (today - days_back) to the end of today.

    With days_back=2 this is the 72-hour catch-up window used by the
    attendance sweep.
    """
    if days_back < 0:
        raise ValueError("days_back must be >= 0")
    today = local_date(now, tz)
    return start_of_day(today - timedelta(days=days_back), tz), end_of_day(today, tz)


def format_class_date(moment: datetime, tz: tzinfo) -> str:
    """e.g. 3/14 (Thursday)"""
    local = moment.astimezone(tz)
    return f"{local.month}/{local.day} ({local.strftime('%A')})"


def format_class_time(moment: datetime, tz: tzinfo) -> str:
    return moment.astimezone(tz).strftime("%H:%M")
