from __future__ import annotations

from datetime import date, datetime, time

from flask import current_app

from .errors import ValidationError
from .time_utils import parse_iso_date, today


# Evidence references (stored upload paths) are opaque; only presence and length matter
MAX_REFERENCE_LENGTH = 512


def require_text(value: str | None, field: str, *, min_length: int = 1, max_length: int | None = None) -> str:
    """
    Normalize a required free-text field.

    Strips whitespace, then enforces presence and length bounds.
    """
    if value is None:
        raise ValidationError(f"{field} is required", field=field)
    cleaned = str(value).strip()
    if not cleaned:
        raise ValidationError(f"{field} is required", field=field)
    if len(cleaned) < min_length:
        raise ValidationError(
            f"{field} must be at least {min_length} characters",
            field=field,
        )
    if max_length is not None and len(cleaned) > max_length:
        raise ValidationError(
            f"{field} must be at most {max_length} characters",
            field=field,
        )
    return cleaned


def optional_text(value: str | None, field: str, *, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    if not cleaned:
        return None
    if max_length is not None and len(cleaned) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", field=field)
    return cleaned


def require_reason(value: str | None, field: str = "reason") -> str:
    """Rejection reasons must carry a minimum amount of explanation."""
    min_length = current_app.config.get("MIN_REASON_LENGTH", 10)
    return require_text(value, field, min_length=min_length, max_length=500)


def require_reference(value: str | None, field: str) -> str:
    """Proof-of-upload references (photo paths) are required but never parsed."""
    return require_text(value, field, max_length=MAX_REFERENCE_LENGTH)


def require_date(value: date | str | None, field: str) -> date:
    if value is None or value == "":
        raise ValidationError(f"{field} is required", field=field)
    try:
        parsed = parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 date", field=field)
    if parsed is None:
        raise ValidationError(f"{field} is required", field=field)
    return parsed


def require_past_or_today(value: date | str | None, field: str) -> date:
    """Dates describing something that already happened cannot be in the future."""
    parsed = require_date(value, field)
    if parsed > today():
        raise ValidationError(f"{field} cannot be in the future", field=field)
    return parsed


def require_time(value: time | str | None, field: str) -> time:
    if isinstance(value, time):
        return value
    if isinstance(value, datetime):
        return value.time()
    if not value:
        raise ValidationError(f"{field} is required", field=field)
    try:
        return time.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"{field} must be HH:MM", field=field)


def require_time_window(start: time | str | None, end: time | str | None) -> tuple[time, time]:
    start_time = require_time(start, "start_time")
    end_time = require_time(end, "end_time")
    if end_time <= start_time:
        raise ValidationError("end_time must be after start_time", field="end_time")
    return start_time, end_time


def require_choice(value, enum_cls, field: str):
    """Coerce a raw value into a member of a str-valued Enum."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}", field=field)
