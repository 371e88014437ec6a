from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone


_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$", re.IGNORECASE)
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def to_iso(dt: datetime) -> str:
    """UTC ISO-8601 string with Z."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 string with Z."""
    return to_iso(utcnow())


def parse_iso(s: str) -> datetime:
    dt = datetime.fromisoformat(str(s).strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def today_utc() -> date:
    return utcnow().date()


def start_of_today_iso() -> str:
    """UTC midnight of the current day, comparable with stored timestamps."""
    d = today_utc()
    return to_iso(datetime(d.year, d.month, d.day, tzinfo=timezone.utc))


def days_ago_date(days: int) -> str:
    return (today_utc() - timedelta(days=int(days))).isoformat()


def parse_duration_seconds(value: str | int | None, default: int) -> int:
    """Parse "7d" / "12h" / "30m" / "45s" / "3600" into seconds."""
    if value is None:
        return default
    if isinstance(value, int):
        return value if value > 0 else default
    m = _DURATION_RE.match(str(value))
    if not m:
        return default
    n = int(m.group(1)) * _UNIT_SECONDS[m.group(2).lower()]
    return n if n > 0 else default
