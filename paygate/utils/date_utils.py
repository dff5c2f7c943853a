"""Date manipulation utilities"""

from datetime import date, datetime, timedelta, timezone


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, matching how timestamps are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(moment: datetime) -> datetime:
    """Midnight of the given (naive UTC) moment's calendar day"""
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def add_business_days(from_date: date, days: int) -> date:
    """Add business days to a date, skipping weekends (doesn't account for holidays)"""
    current = from_date
    while days > 0:
        current += timedelta(days=1)
        if current.weekday() < 5:
            days -= 1
    return current
