from datetime import datetime, timedelta

SECONDS_PER_DAY = 60 * 60 * 24


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def days_between(start: datetime, end: datetime) -> float:
    """Fractional number of days from ``start`` to ``end`` (negative if end is earlier)."""
    return (end - start).total_seconds() / SECONDS_PER_DAY


def format_date(value: datetime) -> str:
    return value.strftime("%d-%m-%Y")


def add_days(value: datetime, days: int) -> datetime:
    return value + timedelta(days=days)


def parse_datetime(value) -> datetime:
    """Accept a datetime or an ISO 8601 string, as found in snapshot files."""
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))
