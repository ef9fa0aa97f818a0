"""UTC clock helpers shared by the lifecycle manager and the resolver."""

import datetime
from collections.abc import Callable

__all__ = ["Clock", "utcnow", "ensure_utc"]

Clock = Callable[[], datetime.datetime]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def ensure_utc(value: datetime.datetime) -> datetime.datetime:
    # SQLite hands back naive datetimes; everything is written as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)
