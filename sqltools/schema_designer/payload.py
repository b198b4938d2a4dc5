"""
Shape checks for loosely typed JSON payloads.

Tool calls arrive as plain JSON objects. These helpers turn missing or
mistyped fields into InvalidRequestError with a message naming the field,
and normalize strings (trimmed; whitespace-only counts as missing).
"""

from __future__ import annotations

from typing import Any

from .errors import InvalidRequestError

_MISSING = object()


def require_mapping(value: Any, label: str) -> dict[str, Any]:
    """Return ``value`` if it is a JSON object, else raise."""
    if not isinstance(value, dict):
        raise InvalidRequestError(f"Missing {label} (object).")
    return value


def require_list(value: Any, label: str, *, non_empty: bool = False) -> list[Any]:
    """Return ``value`` if it is a JSON array, else raise."""
    if not isinstance(value, list):
        suffix = " (non-empty array)" if non_empty else " (array)"
        raise InvalidRequestError(f"Missing {label}{suffix}.")
    if non_empty and not value:
        raise InvalidRequestError(f"Missing {label} (non-empty array).")
    return value


def clean_str(value: Any, label: str) -> str | None:
    """Trim a string value.

    Returns None for an absent value or a whitespace-only string.

    Raises:
        InvalidRequestError: If the value is present but not a string
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRequestError(f"{label} must be a string.")
    value = value.strip()
    return value or None


def optional_str(data: dict[str, Any], key: str, label: str | None = None) -> str | None:
    return clean_str(data.get(key), label or key)


def required_str(data: dict[str, Any], key: str, label: str | None = None) -> str:
    value = clean_str(data.get(key), label or key)
    if value is None:
        raise InvalidRequestError(f"Missing {label or key}.")
    return value


def required_bool(data: dict[str, Any], key: str, label: str | None = None) -> bool:
    value = data.get(key, _MISSING)
    if not isinstance(value, bool):
        raise InvalidRequestError(f"Missing {label or key} (boolean).")
    return value


def optional_bool(data: dict[str, Any], key: str, label: str | None = None) -> bool | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise InvalidRequestError(f"{label or key} must be a boolean.")
    return value


def optional_int(data: dict[str, Any], key: str, label: str | None = None) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRequestError(f"{label or key} must be an integer.")
    return value
