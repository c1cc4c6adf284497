import re
from datetime import datetime, timezone, timedelta

TIMEFRAME_RE = re.compile(r"(\d+)([hdw])")

# Analysis windows are capped at one year, matching the timeline range limit
MAX_TIMEFRAME_HOURS = 366 * 24

class TimeframeTooLargeError(ValueError):
    pass

def parse_timeframe(timeframe: str | None, default_hours: int) -> int:
    """Converts "12h" / "30d" / "2w" into hours. Anything else yields default_hours."""
    match = TIMEFRAME_RE.search(timeframe or "")
    if not match:
        return default_hours

    value = int(match.group(1))
    unit = match.group(2)
    if unit == "h":
        hours = value
    elif unit == "d":
        hours = value * 24
    else:
        hours = value * 24 * 7

    if hours > MAX_TIMEFRAME_HOURS:
        raise TimeframeTooLargeError(f"Timeframe {timeframe!r} exceeds the one year limit")
    return hours

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def window_start(timeframe: str | None, default_hours: int, now: datetime | None = None) -> datetime:
    now = now or utcnow()
    return now - timedelta(hours=parse_timeframe(timeframe, default_hours))

def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
