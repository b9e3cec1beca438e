"""
Shared utility functions for the choice logic engine.
"""

import math
import re
from typing import Any

# Plain decimal / scientific notation, optionally padded with whitespace.
# Stricter than float(): "inf", "nan" and "1_000" are not numbers.
_NUMERIC_PATTERN = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")

_TRUTHY_STRINGS = {"1", "true", "yes", "on"}


def parse_number(value: Any) -> float | None:
    """Parse a raw field or rule value into a float.

    Accepts ints, finite floats and numeric strings. Returns None for
    anything else, so numeric comparisons can fail closed.

    Args:
        value: The raw value to parse.

    Returns:
        The parsed float, or None if the value is not numeric.
    """
    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
        return number if not math.isnan(number) else None

    if not isinstance(value, str) or not _NUMERIC_PATTERN.match(value):
        return None

    try:
        return float(value)
    except (ValueError, OverflowError):
        return None


def normalize(value: Any) -> str:
    """Lower-case and trim a value for case/whitespace-insensitive matching."""
    if value is None:
        return ""
    return str(value).strip().lower()


def is_truthy(value: Any) -> bool:
    """Interpret a loosely typed flag (bool, number or string) as a bool."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY_STRINGS
    return bool(value)
