import os
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo


def _timezone() -> ZoneInfo:
    name = os.environ.get("APP_TIMEZONE", "Asia/Kolkata")
    return ZoneInfo(name)


def now_tz() -> datetime:
    return datetime.now(_timezone())


def ensure_timezone(dt: datetime) -> datetime:
    tz = _timezone()
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def format_event_datetime(dt: Optional[datetime]) -> str:
    if dt is None:
        return "To be announced"
    return ensure_timezone(dt).strftime("%d %b %Y, %I:%M %p")
