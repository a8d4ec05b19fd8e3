"""Tests for skew detection and correction."""

import cv2
import numpy as np
import pytest

from scanprep.services.deskewer import (
    _fold_angle,
    crop_to_content,
    deskew,
    estimate_skew_angle,
    rotate_expanded,
)
from scanprep.utils.exceptions import InvalidArgumentError, InvalidStateError, OperationCancelledError


# ── Helpers ──────────────────────────────────────────────────────


def _make_block_page(angle=0.0, h=300, w=400):
    """White page with one dark text-like block, rotated by ``angle`` degrees."""
    img = np.full((h, w), 255, dtype=np.uint8)
    img[120:180, 80:320] = 0
    if angle:
        matrix = cv2.getRotationMatrix2D((w / 2.0, h / 2.0), angle, 1.0)
        img = cv2.warpAffine(img, matrix, (w, h), borderValue=255)
    return img


# ── estimate_skew_angle ──────────────────────────────────────────


class TestEstimateSkewAngle:
    def test_axis_aligned_block(self):
        angle = estimate_skew_angle(_make_block_page())
        assert angle is not None
        assert abs(angle) < 1.0

    @pytest.mark.parametrize("skew", [3.0, 4.0, -6.0, -8.0])
    def test_rotation_undoes_skew(self, skew):
        angle = estimate_skew_angle(_make_block_page(skew))
        assert angle is not None
        assert angle == pytest.approx(-skew, abs=1.0)

    def test_blank_page(self):
        assert estimate_skew_angle(np.full((50, 50), 255, dtype=np.uint8)) is None


class TestFoldAngle:
    @pytest.mark.parametrize(
        "reported, folded",
        [
            (-5.0, -5.0),
            (85.0, -5.0),
            (5.0, 5.0),
            (-85.0, 5.0),
            (90.0, 0.0),
            (-90.0, 0.0),
            (45.0, 45.0),
            (-45.0, 45.0),
        ],
    )
    def test_same_rectangle_same_angle(self, reported, folded):
        assert _fold_angle(reported) == pytest.approx(folded)


# ── deskew ───────────────────────────────────────────────────────


class TestDeskew:
    @pytest.mark.parametrize("skew", [3.0, 5.0, -5.0, -8.0])
    def test_straightens_block(self, skew):
        before = abs(estimate_skew_angle(_make_block_page(skew)))
        after = abs(estimate_skew_angle(deskew(_make_block_page(skew))))
        assert after < 1.0
        assert after < before

    def test_blank_page_unchanged(self, blank_page):
        result = deskew(blank_page)
        np.testing.assert_array_equal(result, blank_page)
        assert result is not blank_page

    def test_gray_stays_gray(self, gray_text_page):
        result = deskew(gray_text_page)
        assert result.ndim == 2
        assert result.dtype == np.uint8

    def test_bgra_becomes_bgr(self, bgra_text_page):
        result = deskew(bgra_text_page)
        assert result.ndim == 3 and result.shape[2] == 3

    def test_single_channel_3d_becomes_2d(self, gray_text_page):
        result = deskew(gray_text_page[:, :, np.newaxis])
        assert result.ndim == 2

    def test_none_rejected(self):
        with pytest.raises(InvalidArgumentError):
            deskew(None)

    def test_empty_rejected(self):
        with pytest.raises(InvalidStateError):
            deskew(np.zeros((0, 0, 3), dtype=np.uint8))

    def test_cancelled(self, text_page, cancelled_token):
        with pytest.raises(OperationCancelledError):
            deskew(text_page, cancelled_token)


# ── Geometry helpers ─────────────────────────────────────────────


class TestGeometry:
    def test_rotate_expanded_keeps_corners(self):
        img = np.zeros((100, 200), dtype=np.uint8)
        result = rotate_expanded(img, 90.0)
        assert result.shape == (200, 100)

    def test_rotate_fills_white(self):
        img = np.zeros((50, 50, 3), dtype=np.uint8)
        result = rotate_expanded(img, 45.0)
        assert result[0, 0].tolist() == [255, 255, 255]

    def test_crop_to_content_margin(self):
        img = _make_block_page()
        result = crop_to_content(img, margin=10)
        assert result.shape == (80, 260)

    def test_crop_blank_returns_input(self):
        img = np.full((20, 20), 255, dtype=np.uint8)
        assert crop_to_content(img) is img
