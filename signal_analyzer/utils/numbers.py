"""Lenient numeric coercion for spreadsheet and webhook values."""

import math
import re
from typing import Any

_NOISE = re.compile(r"[\s$£€¥,]")


def coerce_number(value: Any) -> float | None:
    """Convert a raw value to float, stripping currency symbols and separators.

    Returns None for empty, boolean or unparseable input.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int | float):
        number = float(value)
    else:
        cleaned = _NOISE.sub("", str(value))
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None

    if math.isnan(number) or math.isinf(number):
        return None
    return number
