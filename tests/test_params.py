"""Tests for parameter coercion helpers."""

from decimal import Decimal
from enum import Enum, auto

import numpy as np
import pytest

from scanprep.utils.params import (
    get_bool_or_default,
    normalize_bag,
    normalize_key,
    safe_bool,
    safe_enum,
    safe_float,
    safe_int,
    try_get_bool,
)


class _Mode(Enum):
    AUTO = auto()
    BY_CONTRAST = auto()


class _NumberLike:
    def __init__(self, value):
        self.value = value

    def __float__(self):
        return float(self.value)


# ── try_get_bool ─────────────────────────────────────────────────


class TestTryGetBool:
    """Boolean coercion table."""

    def test_none_bag(self):
        assert try_get_bool(None, "x") == (False, False)

    def test_missing_key(self):
        assert try_get_bool({}, "x") == (False, False)

    def test_none_value(self):
        assert try_get_bool({"x": None}, "x") == (False, False)

    @pytest.mark.parametrize("value", [True, np.bool_(True)])
    def test_native_true(self, value):
        assert try_get_bool({"x": value}, "x") == (True, True)

    def test_native_false(self):
        assert try_get_bool({"x": False}, "x") == (False, True)

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("true", True),
            ("TRUE", True),
            (" False ", False),
            ("1", True),
            ("0", False),
            ("-3", True),
            ("yes", True),
            ("Y", True),
            ("on", True),
            ("No", False),
            ("n", False),
            ("OFF", False),
        ],
    )
    def test_text_forms(self, text, expected):
        assert try_get_bool({"x": text}, "x") == (expected, True)

    @pytest.mark.parametrize("text", ["maybe", "", "1.5", "enabled"])
    def test_unrecognised_text(self, text):
        assert try_get_bool({"x": text}, "x") == (False, False)

    @pytest.mark.parametrize(
        "value, expected",
        [
            (0, False),
            (2, True),
            (0.0, False),
            (0.25, True),
            (np.int32(0), False),
            (np.int64(7), True),
            (np.float32(1.0), True),
            (Decimal("0"), False),
            (Decimal("0.1"), True),
        ],
    )
    def test_numbers(self, value, expected):
        assert try_get_bool({"x": value}, "x") == (expected, True)

    @pytest.mark.parametrize("value", [float("nan"), np.float64("nan"), Decimal("NaN")])
    def test_nan_not_found(self, value):
        assert try_get_bool({"x": value}, "x") == (False, False)

    def test_number_like_fallback(self):
        assert try_get_bool({"x": _NumberLike(3)}, "x") == (True, True)
        assert try_get_bool({"x": _NumberLike(0)}, "x") == (False, True)

    def test_unsupported_object(self):
        assert try_get_bool({"x": object()}, "x") == (False, False)
        assert try_get_bool({"x": [1]}, "x") == (False, False)


class TestGetBoolOrDefault:
    def test_found_value_wins(self):
        assert get_bool_or_default({"x": "off"}, "x", default=True) is False

    def test_default_when_missing(self):
        assert get_bool_or_default({}, "x", default=True) is True
        assert get_bool_or_default(None, "x") is False

    def test_default_when_unparseable(self):
        assert get_bool_or_default({"x": "sometimes"}, "x", default=True) is True


# ── Numeric helpers ──────────────────────────────────────────────


class TestSafeNumbers:
    def test_safe_float_text(self):
        assert safe_float("0.25", 1.0) == 0.25
        assert safe_float(" 1,5 ", 0.0) == 1.5

    def test_safe_float_fallbacks(self):
        assert safe_float(None, 2.0) == 2.0
        assert safe_float("abc", 2.0) == 2.0
        assert safe_float(float("nan"), 2.0) == 2.0
        assert safe_float(float("inf"), 2.0) == 2.0
        assert safe_float("", 2.0) == 2.0

    def test_safe_int(self):
        assert safe_int("31", 0) == 31
        assert safe_int(" 7 ", 0) == 7
        assert safe_int(3.7, 0) == 4
        assert safe_int("2.2", 0) == 2
        assert safe_int(np.int16(5), 0) == 5
        assert safe_int(True, 0) == 1

    def test_safe_int_fallbacks(self):
        assert safe_int(None, 9) == 9
        assert safe_int("big", 9) == 9
        assert safe_int(float("nan"), 9) == 9

    def test_safe_bool(self):
        assert safe_bool("yes", False) is True
        assert safe_bool(None, True) is True
        assert safe_bool("nope", False) is False


# ── Enums and keys ───────────────────────────────────────────────


class TestSafeEnum:
    def test_name_variants(self):
        assert safe_enum(_Mode, "By Contrast", _Mode.AUTO) == _Mode.BY_CONTRAST
        assert safe_enum(_Mode, "by_contrast", _Mode.AUTO) == _Mode.BY_CONTRAST
        assert safe_enum(_Mode, "ByContrast", _Mode.AUTO) == _Mode.BY_CONTRAST

    def test_member_passthrough(self):
        assert safe_enum(_Mode, _Mode.BY_CONTRAST, _Mode.AUTO) == _Mode.BY_CONTRAST

    def test_unknown_uses_default(self):
        assert safe_enum(_Mode, "diagonal", _Mode.AUTO) == _Mode.AUTO
        assert safe_enum(_Mode, None, _Mode.BY_CONTRAST) == _Mode.BY_CONTRAST
        assert safe_enum(_Mode, 99, _Mode.AUTO) == _Mode.AUTO


class TestKeys:
    def test_normalize_key(self):
        assert normalize_key("blockSize") == "blocksize"
        assert normalize_key("block_size") == "blocksize"
        assert normalize_key("Block Size") == "blocksize"

    def test_normalize_bag(self):
        bag = normalize_bag({"blockSize": 5, "mean-c": 2, None: 1})
        assert bag == {"blocksize": 5, "meanc": 2}
        assert normalize_bag(None) == {}
