from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC timestamp stored on every workflow row."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    """Business date that approval, return and incident dates may not exceed."""
    return utcnow().date()


def parse_iso_date(value: date | str | None) -> Optional[date]:
    """
    Coerce a date argument coming from a caller or the CLI.

    Accepts date objects, "YYYY-MM-DD", and full ISO timestamps (offsets are
    converted to UTC before the date is taken). Blank input gives None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    if not text:
        return None
    if "T" not in text:
        return date.fromisoformat(text)

    stamp = datetime.fromisoformat(text[:-1] + "+00:00" if text.endswith("Z") else text)
    if stamp.tzinfo is not None:
        stamp = stamp.astimezone(timezone.utc)
    return stamp.date()


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a stored timestamp as second-precision ISO-8601 with a 'Z' suffix."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def to_iso_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None
