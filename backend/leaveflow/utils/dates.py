from datetime import date, datetime, timedelta, timezone


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def diff_months(from_date: date, to_date: date) -> int:
    """Whole calendar months between two dates, ignoring the day of month."""
    return (to_date.year - from_date.year) * 12 + (to_date.month - from_date.month)


def is_weekend(value: date) -> bool:
    return value.weekday() >= 5


def iter_days(start: date, end: date):
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
