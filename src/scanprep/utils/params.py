"""
ScanPrep - Parameter Coercion

Safe interpretation of loosely typed command parameters. Persisted pipelines
store values as text, numbers or booleans depending on who wrote them, so
every reader here returns a "not found" or the caller's default instead of
raising.
"""

import logging
import math
import numbers
from collections.abc import Mapping
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

import numpy as np

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

TRUE_WORDS = frozenset({"yes", "y", "on"})
FALSE_WORDS = frozenset({"no", "n", "off"})


def try_get_bool(bag: Mapping[str, Any] | None, key: str) -> tuple[bool, bool]:
    """Read a boolean-like value from a parameter bag.

    Accepted forms: native booleans, "true"/"false" text, integer text
    (nonzero is true), the synonyms yes/y/on and no/n/off, integer, float
    and Decimal numbers (nonzero is true, NaN is rejected) and any other
    value convertible to a number.

    Args:
        bag: Parameter mapping, may be None
        key: Key to look up (exact match)

    Returns:
        Tuple ``(value, found)``. ``found`` is False when the key is missing,
        the value is None or no recognised form matches; ``value`` is then
        False.
    """
    if bag is None:
        return False, False
    raw = bag.get(key)
    if raw is None:
        return False, False

    if isinstance(raw, (bool, np.bool_)):
        return bool(raw), True

    if isinstance(raw, str):
        return _parse_bool_text(raw)

    if isinstance(raw, (float, np.floating)):
        if math.isnan(raw):
            return False, False
        return raw != 0.0, True

    if isinstance(raw, Decimal):
        if raw.is_nan():
            return False, False
        return raw != 0, True

    if isinstance(raw, (numbers.Number, np.integer)):
        try:
            return bool(raw), True
        except (TypeError, ValueError):
            return False, False

    # Generic fallback for number-like objects
    if hasattr(raw, "__index__") or hasattr(raw, "__float__"):
        try:
            number = float(raw)
        except (TypeError, ValueError, OverflowError):
            return False, False
        if math.isnan(number):
            return False, False
        return number != 0.0, True

    return False, False


def get_bool_or_default(bag: Mapping[str, Any] | None, key: str, default: bool = False) -> bool:
    """Read a boolean-like value, falling back to ``default`` when not found."""
    value, found = try_get_bool(bag, key)
    return value if found else default


def _parse_bool_text(text: str) -> tuple[bool, bool]:
    s = text.strip()
    lowered = s.lower()
    if lowered == "true":
        return True, True
    if lowered == "false":
        return False, True

    try:
        return int(s) != 0, True
    except ValueError:
        pass

    if lowered in TRUE_WORDS:
        return True, True
    if lowered in FALSE_WORDS:
        return False, True
    return False, False


def safe_float(value: Any, default: float) -> float:
    """Convert ``value`` to a finite float, or return ``default``."""
    if value is None:
        return default
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
        if not value:
            return default
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        logger.debug(f"Cannot read {value!r} as a number, using {default}")
        return default
    if not math.isfinite(number):
        return default
    return number


def safe_int(value: Any, default: int) -> int:
    """Convert ``value`` to an int (rounding floats), or return ``default``."""
    if value is None:
        return default
    if isinstance(value, (bool, np.bool_)):
        return int(value)
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    number = safe_float(value, math.nan)
    if math.isnan(number):
        return default
    return int(round(number))


def safe_bool(value: Any, default: bool) -> bool:
    """Interpret a single loose value with the same rules as ``try_get_bool``."""
    return get_bool_or_default({"value": value}, "value", default)


def safe_enum(enum_cls: type[E], value: Any, default: E) -> E:
    """Resolve ``value`` to a member of ``enum_cls``.

    Names match case-insensitively, ignoring spaces, dashes and underscores
    ("By Contrast" matches ``BY_CONTRAST``). Enum values are accepted too.
    """
    if value is None:
        return default
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        wanted = normalize_key(value)
        for member in enum_cls:
            if normalize_key(member.name) == wanted:
                return member
            if isinstance(member.value, str) and normalize_key(member.value) == wanted:
                return member
    try:
        return enum_cls(value)
    except (TypeError, ValueError):
        logger.debug(f"Unknown {enum_cls.__name__} value {value!r}, using {default.name}")
        return default


def normalize_key(key: str) -> str:
    """Fold a parameter name so camelCase, snake_case and spaced forms match."""
    return "".join(ch for ch in str(key).lower() if ch not in " _-")


def normalize_bag(bag: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return a copy of ``bag`` keyed by ``normalize_key`` (None keys dropped)."""
    if not bag:
        return {}
    return {normalize_key(k): v for k, v in bag.items() if k is not None}
