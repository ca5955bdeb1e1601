"""Datetime parsing and normalization shared by negotiation and calendar code."""

from datetime import datetime, timezone
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import InvalidDateError

_datetime_adapter = TypeAdapter(datetime)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize to an aware UTC datetime; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(raw: Any, field: str) -> datetime:
    """
    Parse an ISO 8601 string into an aware UTC datetime.
    Anything else (numbers, null, garbage) is an InvalidDateError on `field`.
    """
    if not isinstance(raw, str):
        raise InvalidDateError(f"Invalid date format: {raw!r}", field=field)
    try:
        parsed = _datetime_adapter.validate_python(raw)
    except PydanticValidationError:
        raise InvalidDateError(f"Invalid date format: {raw!r}", field=field)
    return as_utc(parsed)
