"""
Decode-with-default helpers for raw upstream payloads.

Both upstreams omit fields freely, send counters as strings and return a bare
scalar where a list is expected. Every normalizer reads raw values through
these helpers so that a given primitive gets the same default everywhere.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Union

Number = Union[int, float]


def is_absent(value: Any) -> bool:
    """True for values the upstream uses to mean "not set"."""
    return value is None or (isinstance(value, str) and value == "")


def as_str(value: Any, default: str = "") -> str:
    if is_absent(value):
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def as_optional_str(value: Any) -> Optional[str]:
    if is_absent(value):
        return None
    return as_str(value)


def as_counter_str(value: Any) -> str:
    """Counters stay decimal strings; "0" when absent or zero."""
    if is_absent(value) or value == 0:
        return "0"
    return as_str(value, "0")


def as_number(value: Any, default: Number = 0) -> Number:
    """Finite int/float, or a numeric string; anything else is ``default``."""
    if isinstance(value, bool) or is_absent(value):
        return default
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else default
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            parsed = float(text)
        except ValueError:
            return default
        return parsed if math.isfinite(parsed) else default
    return default


def as_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    return default


def as_mapping(value: Any) -> Dict[str, Any]:
    if isinstance(value, Mapping):
        return dict(value)
    return {}


def as_list(value: Any) -> List[Any]:
    """Lists pass through; anything else (including absent) is empty."""
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def as_str_list(value: Any) -> List[Any]:
    """
    Scalar-or-array coercion.

    A proper sequence is returned as-is (order preserved), a present scalar
    becomes a one-element list and an absent value becomes an empty list.
    """
    if isinstance(value, (list, tuple)):
        return list(value)
    if is_absent(value):
        return []
    return [value]


def entries(payload: Any) -> List[Any]:
    """The ``entry`` array of a management API envelope, or ``[]``."""
    if not isinstance(payload, Mapping):
        return []
    return as_list(payload.get("entry"))


def entry_content(entry: Any) -> Dict[str, Any]:
    if not isinstance(entry, Mapping):
        return {}
    return as_mapping(entry.get("content"))


__all__ = [
    "Number",
    "is_absent",
    "as_str",
    "as_optional_str",
    "as_counter_str",
    "as_number",
    "as_bool",
    "as_mapping",
    "as_list",
    "as_str_list",
    "entries",
    "entry_content",
]
