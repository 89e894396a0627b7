"""
Input validation helpers shared by services.

All of them raise InvalidArgumentError naming the offending field.
"""
from datetime import date
from typing import Any, Optional

from .exceptions import InvalidArgumentError
from .policy import MAX_EARN_POINTS, MIN_EARN_POINTS


def is_integer(value: Any) -> bool:
    # bool is an int subclass; True is not a points amount
    return isinstance(value, int) and not isinstance(value, bool)


def require_string(value: Any, field: str, min_length: int = 1, max_length: int = 128) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"{field} is required", field)
    value = value.strip()
    if not min_length <= len(value) <= max_length:
        raise InvalidArgumentError(
            f"{field} must be between {min_length} and {max_length} characters", field
        )
    return value


def optional_string(value: Any, field: str, max_length: int = 500):
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidArgumentError(f"{field} must be a string", field)
    value = value.strip()
    if len(value) > max_length:
        raise InvalidArgumentError(f"{field} must be at most {max_length} characters", field)
    return value or None


def require_int(value: Any, field: str, minimum: int = None, maximum: int = None) -> int:
    if not is_integer(value):
        raise InvalidArgumentError(f"{field} must be an integer", field)
    if minimum is not None and value < minimum:
        raise InvalidArgumentError(f"{field} must be at least {minimum}", field)
    if maximum is not None and value > maximum:
        raise InvalidArgumentError(f"{field} must be at most {maximum}", field)
    return value


def require_points(value: Any, field: str = 'points') -> int:
    """Points amount for a single earn or redeem call."""
    if not is_integer(value) or not MIN_EARN_POINTS <= value <= MAX_EARN_POINTS:
        raise InvalidArgumentError(
            f"{field} must be an integer between {MIN_EARN_POINTS} and {MAX_EARN_POINTS}", field
        )
    return value


def optional_dict(value: Any, field: str = 'metadata') -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidArgumentError(f"{field} must be an object", field)
    return value


def optional_date(value: Any, field: str) -> Optional[date]:
    """None, a date, or a YYYY-MM-DD string."""
    if value is None or value == '':
        return None
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidArgumentError(f"{field} must be a YYYY-MM-DD date", field)
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise InvalidArgumentError(f"{field} must be a YYYY-MM-DD date", field)
