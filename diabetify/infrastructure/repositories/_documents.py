"""Helpers shared by the MongoDB repositories."""

from datetime import datetime, timezone
from typing import Any, Optional


def as_datetime(value: Any) -> Optional[datetime]:
    """Normalise a stored timestamp to an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def as_optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def as_optional_bool(value: Any) -> Optional[bool]:
    return None if value is None else bool(value)


def as_optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)
