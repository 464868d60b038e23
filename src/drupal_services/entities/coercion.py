"""Field type coercion for Drupal Services payloads.

Services serializes most scalar fields as strings, so integer and boolean
fields are normalized on the way in. On the way out, boolean fields can
only be expressed as ``True`` or absent (``None``): the API rejects an
explicit ``false``/``0`` for them (see drupal.org/node/1511662 and
drupal.org/node/1561292).

Malformed numeric input degrades to ``0``/``False`` unless ``strict`` is
set, in which case :class:`~drupal_services.errors.CoercionError` is raised.
"""

from __future__ import annotations

import math
import re
from typing import Any

from drupal_services.errors import CoercionError

_LEADING_INT = re.compile(r"^\s*([+-]?[0-9]+)")

_TRUE_STRINGS = frozenset({"1", "true"})


def parse_integer(value: Any) -> int | None:
    """Parse a leading integer from *value*, or return None when there is none.

    Strings are read up to the first non-digit (``"42px"`` → 42); floats are
    truncated toward zero.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return int(value)
    if value is None:
        return None

    match = _LEADING_INT.match(str(value))
    if match is None:
        return None
    return int(match.group(1))


def coerce_integer(value: Any, *, strict: bool = False, field: str | None = None) -> int:
    """Coerce *value* to a canonical integer (``True`` → 1, junk → 0)."""
    if isinstance(value, bool):
        return 1 if value else 0

    parsed = parse_integer(value)
    if parsed is None:
        if strict:
            raise CoercionError(field, value)
        return 0
    return parsed


def coerce_bool_input(value: Any, *, strict: bool = False, field: str | None = None) -> bool:
    """Coerce a wire value to a canonical boolean."""
    if isinstance(value, bool):
        return value

    parsed = parse_integer(value)
    if parsed is None:
        if strict:
            raise CoercionError(field, value)
        return False
    return parsed > 0


def coerce_bool_output(value: Any) -> bool | None:
    """Convert a canonical boolean to the only forms Services accepts."""
    if isinstance(value, bool):
        return True if value else None
    if isinstance(value, int | float):
        return True if value > 0 else None
    if isinstance(value, str) and value in _TRUE_STRINGS:
        return True
    return None
