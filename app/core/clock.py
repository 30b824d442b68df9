from datetime import datetime, timedelta, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utcnow_iso() -> str:
    return utcnow().isoformat()


def hours_from_now(hours: int) -> str:
    return (utcnow() + timedelta(hours=hours)).isoformat()


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse a PostgREST timestamp; naive values are treated as UTC"""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def is_past(value: Union[str, datetime, None]) -> bool:
    moment = parse_timestamp(value)
    return moment is not None and moment < utcnow()
