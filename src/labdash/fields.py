"""Per-field validators for untyped JSON documents.

Each validator returns the typed value, or ``None`` when the input is absent
or has the wrong type. Callers substitute their own default for ``None``.
Strings are never parsed into numbers, and ``bool`` is not accepted where a
number is expected even though it subclasses ``int``.
"""

import math
from typing import Any


def as_text(value: Any) -> str | None:
    """Return a non-empty string, else None."""
    if isinstance(value, str) and value:
        return value
    return None


def as_float(value: Any) -> float | None:
    """Return a finite int or float as float, else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        result = float(value)
    except OverflowError:
        return None
    if not math.isfinite(result):
        return None
    return result


def as_int(value: Any) -> int | None:
    """Return an int, truncating finite floats, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        # Ints beyond float range cannot be charted or averaged
        return value if as_float(value) is not None else None
    number = as_float(value)
    if number is None:
        return None
    return int(number)


def as_mapping(value: Any) -> dict[str, Any] | None:
    """Return a JSON object, else None."""
    if isinstance(value, dict):
        return value
    return None


def as_list(value: Any) -> list[Any] | None:
    """Return a JSON array, else None."""
    if isinstance(value, list):
        return value
    return None


def text(data: dict[str, Any], key: str, default: str) -> str:
    value = as_text(data.get(key))
    return default if value is None else value


def integer(data: dict[str, Any], key: str, default: int = 0) -> int:
    value = as_int(data.get(key))
    return default if value is None else value


def number(data: dict[str, Any], key: str, default: float = 0.0) -> float:
    value = as_float(data.get(key))
    return default if value is None else value


def section(data: dict[str, Any] | None, key: str) -> dict[str, Any]:
    """Return the nested object under ``key``, or an empty dict."""
    if data is None:
        return {}
    value = as_mapping(data.get(key))
    return {} if value is None else value


def records(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    """Return the objects of the array under ``key``, skipping non-objects."""
    items = as_list(data.get(key))
    if items is None:
        return []
    return [item for item in items if isinstance(item, dict)]
