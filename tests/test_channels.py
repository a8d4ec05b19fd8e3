"""Tests for channel layout helpers."""

import numpy as np
import pytest

from scanprep.services.channels import (
    channel_count,
    require_content,
    to_bgr,
    to_gray,
    to_working_layout,
    validate_image,
)
from scanprep.utils.exceptions import InvalidArgumentError, InvalidStateError


# ── Validation ───────────────────────────────────────────────────


class TestValidation:
    def test_none_rejected(self):
        with pytest.raises(InvalidArgumentError):
            validate_image(None)

    def test_float_rejected(self):
        with pytest.raises(InvalidArgumentError, match="8-bit"):
            validate_image(np.zeros((4, 4), dtype=np.float32))

    def test_uint16_rejected(self):
        with pytest.raises(InvalidArgumentError):
            validate_image(np.zeros((4, 4), dtype=np.uint16))

    def test_two_channels_rejected(self):
        with pytest.raises(InvalidArgumentError, match="channel"):
            validate_image(np.zeros((4, 4, 2), dtype=np.uint8))

    def test_not_an_array(self):
        with pytest.raises(InvalidArgumentError):
            validate_image([[0, 1], [2, 3]])

    @pytest.mark.parametrize("shape", [(4, 4), (4, 4, 1), (4, 4, 3), (4, 4, 4)])
    def test_supported_layouts(self, shape):
        img = np.zeros(shape, dtype=np.uint8)
        assert validate_image(img) is img

    def test_require_content_empty(self):
        with pytest.raises(InvalidStateError):
            require_content(np.zeros((0, 0), dtype=np.uint8), "deskew")

    def test_require_content_none(self):
        with pytest.raises(InvalidArgumentError):
            require_content(None, "deskew")


# ── Conversions ──────────────────────────────────────────────────


class TestConversions:
    def test_channel_count(self):
        assert channel_count(np.zeros((2, 2), dtype=np.uint8)) == 1
        assert channel_count(np.zeros((2, 2, 1), dtype=np.uint8)) == 1
        assert channel_count(np.zeros((2, 2, 4), dtype=np.uint8)) == 4

    def test_to_gray_from_bgra(self):
        img = np.full((3, 5, 4), 200, dtype=np.uint8)
        gray = to_gray(img)
        assert gray.shape == (3, 5)
        assert gray.dtype == np.uint8
        assert int(gray[0, 0]) == 200

    def test_to_gray_returns_copy(self):
        img = np.full((3, 5), 7, dtype=np.uint8)
        gray = to_gray(img)
        gray[0, 0] = 0
        assert img[0, 0] == 7

    def test_to_bgr_from_gray(self):
        img = np.full((3, 5, 1), 90, dtype=np.uint8)
        bgr = to_bgr(img)
        assert bgr.shape == (3, 5, 3)
        assert np.all(bgr == 90)

    def test_to_bgr_copies(self):
        img = np.zeros((2, 2, 3), dtype=np.uint8)
        assert to_bgr(img) is not img

    def test_working_layout(self):
        assert to_working_layout(np.zeros((4, 6, 1), dtype=np.uint8)).shape == (4, 6)
        assert to_working_layout(np.zeros((4, 6, 4), dtype=np.uint8)).shape == (4, 6, 3)
