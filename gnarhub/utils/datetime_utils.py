# gnarhub/utils/datetime_utils.py
from datetime import date, datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def today_utc() -> date:
    return utcnow().date()


def tomorrow_utc() -> date:
    return today_utc() + timedelta(days=1)
