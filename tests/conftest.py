"""Pytest configuration for scanprep tests.

Shared synthetic page images, built with numpy and cv2 drawing primitives,
and cancellation tokens.
"""

import cv2
import numpy as np
import pytest

from scanprep.services.cancellation import CancellationToken


def make_text_page(h=300, w=400, channels=3):
    """White page with a few lines of dark text."""
    img = np.full((h, w, 3), 255, dtype=np.uint8)
    for i, text in enumerate(["Scanned page", "second line", "third line"]):
        cv2.putText(img, text, (30, 70 + i * 60), cv2.FONT_HERSHEY_SIMPLEX, 1.2, (0, 0, 0), 3)
    if channels == 1:
        return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    if channels == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGR2BGRA)
    return img


@pytest.fixture
def text_page():
    """3-channel BGR text page."""
    return make_text_page()


@pytest.fixture
def gray_text_page():
    return make_text_page(channels=1)


@pytest.fixture
def bgra_text_page():
    return make_text_page(channels=4)


@pytest.fixture
def blank_page():
    return np.full((120, 160, 3), 255, dtype=np.uint8)


@pytest.fixture
def token():
    """A token nobody cancels."""
    return CancellationToken()


@pytest.fixture
def cancelled_token():
    t = CancellationToken()
    t.cancel()
    return t
