"""Memory growth checks for repeated processing.

Repeated runs of the heavier algorithms must not accumulate memory. The
bound is generous; it only catches leaks that grow with every call.
"""

import gc

import numpy as np
import psutil
import pytest

from scanprep.services.binarizer import BinarizeMethod, BinarizeParameters, binarize
from scanprep.services.enhancer import homomorphic_retinex
from scanprep.services.punch_holes import PunchShape, PunchSpec, remove_punch_holes

MAX_GROWTH_MB = 200


def _rss_mb():
    return psutil.Process().memory_info().rss / (1024 * 1024)


def _run_repeatedly(func, iterations):
    func()
    gc.collect()
    before = _rss_mb()
    for _ in range(iterations):
        func()
    gc.collect()
    return _rss_mb() - before


@pytest.fixture
def noisy_page():
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, (256, 256, 3), dtype=np.uint8)


class TestMemoryGrowth:
    def test_retinex(self, noisy_page):
        growth = _run_repeatedly(lambda: homomorphic_retinex(None, noisy_page), 50)
        assert growth < MAX_GROWTH_MB

    def test_punch_holes(self):
        img = np.full((200, 300, 3), 255, dtype=np.uint8)
        img[90:110, 10:30] = 0
        specs = [PunchSpec(shape=PunchShape.BOTH, diameter=20)]
        growth = _run_repeatedly(
            lambda: remove_punch_holes(None, img, specs, 0.9, 0.9, 50, 50, 50, 50), 30
        )
        assert growth < MAX_GROWTH_MB

    def test_binarizer(self, noisy_page):
        params = BinarizeParameters(sauvola_use_clahe=True)
        growth = _run_repeatedly(
            lambda: binarize(noisy_page, BinarizeMethod.SAUVOLA, params), 40
        )
        assert growth < MAX_GROWTH_MB
