"""Tests for border, speck, dot and line removal."""

import cv2
import numpy as np
import pytest

from scanprep.services.cleanup import (
    LineOrientation,
    ManualCutMode,
    despeckle,
    remove_borders_auto,
    remove_borders_by_contrast,
    remove_borders_manual,
    remove_dots,
    remove_lines,
)
from scanprep.utils.exceptions import InvalidArgumentError, InvalidStateError, OperationCancelledError


# ── Helpers ──────────────────────────────────────────────────────


def _ink(img):
    """Number of dark pixels."""
    gray = img if img.ndim == 2 else cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    return int(np.count_nonzero(gray < 128))


# ── Borders ──────────────────────────────────────────────────────


class TestBordersAuto:
    def test_dark_edge_strip_removed(self, text_page):
        img = text_page.copy()
        img[:, :12] = 0
        result = remove_borders_auto(None, img)
        assert np.all(result[:, :12] == 255)
        np.testing.assert_array_equal(result[:, 20:], img[:, 20:])

    def test_clean_page_is_copy(self, text_page):
        result = remove_borders_auto(None, text_page)
        assert result is not text_page
        np.testing.assert_array_equal(result, text_page)

    def test_bgra_becomes_bgr(self, bgra_text_page):
        assert remove_borders_auto(None, bgra_text_page).shape == (300, 400, 3)

    def test_empty_rejected(self):
        with pytest.raises(InvalidStateError):
            remove_borders_auto(None, np.zeros((0, 0), dtype=np.uint8))

    def test_cancelled(self, cancelled_token, text_page):
        with pytest.raises(OperationCancelledError):
            remove_borders_auto(cancelled_token, text_page)


class TestBordersByContrast:
    def test_dark_top_rows_removed(self):
        img = np.full((100, 120), 230, dtype=np.uint8)
        img[:10] = 30
        result = remove_borders_by_contrast(None, img)
        assert result.shape == (100, 120)
        assert np.all(result[:10] == 255)
        np.testing.assert_array_equal(result[10:], img[10:])

    def test_all_sides(self):
        img = np.full((100, 120, 3), 220, dtype=np.uint8)
        img[:5] = 0
        img[-7:] = 0
        img[:, :4] = 0
        img[:, -6:] = 0
        result = remove_borders_by_contrast(None, img)
        gray = cv2.cvtColor(result, cv2.COLOR_BGR2GRAY)
        assert np.all(gray[:5] == 255)
        assert np.all(gray[-7:] == 255)
        assert np.all(gray[:, :4] == 255)
        assert np.all(gray[:, -6:] == 255)
        assert np.all(gray[5:-7, 4:-6] == 220)

    def test_cut_is_capped(self):
        img = np.full((100, 100), 20, dtype=np.uint8)
        img[40:60, 40:60] = 240
        result = remove_borders_by_contrast(
            None, img, central_sample=0.1, max_remove_fraction=0.1
        )
        assert np.all(result[:10] == 255)
        assert np.all(result[10:90, 10:90] == img[10:90, 10:90])


class TestBordersManual:
    def test_cut_crops(self):
        img = np.full((50, 60, 3), 200, dtype=np.uint8)
        result = remove_borders_manual(None, img, 5, 10, 3, 7, ManualCutMode.CUT)
        assert result.shape == (35, 50, 3)

    def test_fill_uses_paper_tone(self):
        img = np.zeros((50, 60, 3), dtype=np.uint8)
        img[5:40, 3:53] = (250, 240, 230)
        result = remove_borders_manual(None, img, 5, 10, 3, 7, ManualCutMode.FILL)
        assert result.shape == img.shape
        assert result[0, 0].tolist() == [250, 240, 230]
        assert result[-1, -1].tolist() == [250, 240, 230]

    def test_fill_dark_page_uses_white(self):
        img = np.full((20, 20), 40, dtype=np.uint8)
        result = remove_borders_manual(None, img, 2, 2, 2, 2)
        assert result[0, 0] == 255
        assert result[10, 10] == 40

    def test_oversized_margins_clamped(self):
        img = np.full((50, 60), 200, dtype=np.uint8)
        result = remove_borders_manual(None, img, 100, 0, 0, 0, ManualCutMode.CUT)
        assert result.shape == (1, 60)

    def test_none_rejected(self):
        with pytest.raises(InvalidArgumentError):
            remove_borders_manual(None, None, 1, 1, 1, 1)


# ── Despeckle ────────────────────────────────────────────────────


class TestDespeckle:
    def test_isolated_speck_removed(self, text_page):
        img = text_page.copy()
        img[280:283, 350:353] = 0
        result = despeckle(None, img)
        assert np.all(result[278:284, 348:354] == 255)

    def test_text_preserved(self, text_page):
        img = text_page.copy()
        img[280:283, 350:353] = 0
        result = despeckle(None, img)
        assert _ink(result[:230]) >= 0.98 * _ink(img[:230])

    def test_full_stop_next_to_text_kept(self, text_page):
        img = text_page.copy()
        (text_w, _), _ = cv2.getTextSize("third line", cv2.FONT_HERSHEY_SIMPLEX, 1.2, 3)
        x = 30 + text_w + 6
        img[186:190, x : x + 4] = 0
        result = despeckle(None, img)
        assert np.all(result[186:190, x : x + 4] == 0)

    def test_blank_page_is_copy(self, blank_page):
        result = despeckle(None, blank_page)
        np.testing.assert_array_equal(result, blank_page)
        assert result is not blank_page

    def test_gray_stays_gray(self, gray_text_page):
        assert despeckle(None, gray_text_page).shape == gray_text_page.shape

    def test_absolute_threshold(self, text_page):
        img = text_page.copy()
        img[280:283, 350:353] = 0
        result = despeckle(None, img, small_area_relative=False, small_area_absolute_px=16)
        assert np.all(result[280:283, 350:353] == 255)

    def test_cancelled(self, cancelled_token, text_page):
        with pytest.raises(OperationCancelledError):
            despeckle(cancelled_token, text_page)


# ── Dots ─────────────────────────────────────────────────────────


class TestRemoveDots:
    def test_small_round_dot_removed(self, blank_page):
        img = blank_page.copy()
        img[60:63, 80:83] = 0
        result = remove_dots(None, img)
        assert np.all(result == 255)

    def test_elongated_mark_kept(self, blank_page):
        img = blank_page.copy()
        img[60:62, 40:55] = 0
        result = remove_dots(None, img)
        np.testing.assert_array_equal(result, img)

    def test_large_blob_kept(self, blank_page):
        img = blank_page.copy()
        cv2.circle(img, (80, 60), 10, (0, 0, 0), -1)
        result = remove_dots(None, img, max_dot_area_px=30)
        np.testing.assert_array_equal(result, img)

    def test_gray_stays_gray(self, gray_text_page):
        assert remove_dots(None, gray_text_page).shape == gray_text_page.shape


# ── Lines ────────────────────────────────────────────────────────


class TestRemoveLines:
    def _page_with_rules(self, text_page):
        img = text_page.copy()
        img[259:261, 10:390] = 0
        img[10:290, 379:381] = 0
        return img

    def test_both(self, text_page):
        img = self._page_with_rules(text_page)
        result = remove_lines(None, img, LineOrientation.BOTH)
        assert np.all(result[259:261, 10:370] == 255)
        assert np.all(result[10:290, 379:381] == 255)
        np.testing.assert_array_equal(result[:220, :370], img[:220, :370])

    def test_horizontal_only(self, text_page):
        img = self._page_with_rules(text_page)
        result = remove_lines(None, img, LineOrientation.HORIZONTAL)
        assert np.all(result[259:261, 10:370] == 255)
        assert np.all(result[20:250, 379:381] == 0)

    def test_vertical_only(self, text_page):
        img = self._page_with_rules(text_page)
        result = remove_lines(None, img, LineOrientation.VERTICAL)
        assert np.all(result[10:290, 379:381] == 255)
        assert np.all(result[259:261, 10:370] == 0)

    def test_no_lines_is_copy(self, text_page):
        result = remove_lines(None, text_page)
        np.testing.assert_array_equal(result, text_page)

    def test_cancelled(self, cancelled_token, text_page):
        with pytest.raises(OperationCancelledError):
            remove_lines(cancelled_token, text_page)
