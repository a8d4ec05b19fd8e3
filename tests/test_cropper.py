"""Tests for content-aware cropping."""

import cv2
import numpy as np
import pytest

from scanprep.services.cropper import find_content_box, smart_crop
from scanprep.utils.exceptions import InvalidStateError, OperationCancelledError


def _ink(img):
    gray = img if img.ndim == 2 else cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    return int(np.count_nonzero(gray < 128))


class TestFindContentBox:
    def test_blank_has_no_box(self):
        assert find_content_box(np.full((80, 100), 255, dtype=np.uint8)) is None

    def test_box_surrounds_block(self):
        gray = np.full((100, 120), 255, dtype=np.uint8)
        gray[30:60, 40:90] = 0
        x0, y0, x1, y1 = find_content_box(gray)
        assert x0 <= 40 and y0 <= 30
        assert x1 >= 90 and y1 >= 60
        assert x0 >= 30 and y1 <= 70


class TestSmartCrop:
    def test_crops_to_text(self, text_page):
        result = smart_crop(None, text_page)
        assert result.shape[0] < text_page.shape[0]
        assert result.shape[1] < text_page.shape[1]
        assert _ink(result) == _ink(text_page)

    def test_margin_is_kept(self):
        img = np.full((200, 200), 255, dtype=np.uint8)
        img[90:110, 90:110] = 0
        result = smart_crop(None, img, margin_px=15)
        assert result.ndim == 2
        assert 46 <= result.shape[0] <= 66
        assert np.all(result[:5] == 255)

    def test_blank_page_unchanged(self, blank_page):
        result = smart_crop(None, blank_page)
        np.testing.assert_array_equal(result, blank_page)
        assert result is not blank_page

    def test_wide_page_is_analysed_downscaled(self):
        img = np.full((300, 1600), 255, dtype=np.uint8)
        cv2.putText(img, "wide scan", (600, 160), cv2.FONT_HERSHEY_SIMPLEX, 2.0, 0, 4)
        result = smart_crop(None, img)
        assert result.shape[1] < 1600
        assert _ink(result) == _ink(img)

    def test_bgra_becomes_bgr(self, bgra_text_page):
        assert smart_crop(None, bgra_text_page).ndim == 3
        assert smart_crop(None, bgra_text_page).shape[2] == 3

    def test_tiny_image(self):
        img = np.zeros((2, 2), dtype=np.uint8)
        np.testing.assert_array_equal(smart_crop(None, img), img)

    def test_empty_rejected(self):
        with pytest.raises(InvalidStateError):
            smart_crop(None, np.zeros((0, 3, 3), dtype=np.uint8))

    def test_cancelled(self, cancelled_token, text_page):
        with pytest.raises(OperationCancelledError):
            smart_crop(cancelled_token, text_page)
