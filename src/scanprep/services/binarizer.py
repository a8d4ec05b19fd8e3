"""
Binarization of document images.

Three strategies produce a single-channel mask with values in {0, 255}:

- THRESHOLD: one global level, fixed or taken from a histogram percentile
- ADAPTIVE: local (mean or Gaussian-weighted) threshold over a block
- SAUVOLA: local mean / standard deviation threshold, robust to stains and
  pencil strokes

Block and window sizes are silently made odd and clamped to the smaller
image dimension, so even 1x1 and 2x2 images binarize without errors.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

import cv2
import numpy as np

from scanprep.constants import (
    ADAPTIVE_BLOCK_DIVISOR,
    ADAPTIVE_BLOCK_MAX,
    ADAPTIVE_BLOCK_MIN,
    DEFAULT_ADAPTIVE_C,
    DEFAULT_MORPH_ITERATIONS,
    DEFAULT_MORPH_KERNEL,
    DEFAULT_THRESHOLD,
    SAUVOLA_CLAHE_CLIP,
    SAUVOLA_CLAHE_GRID,
    SAUVOLA_K,
    SAUVOLA_R,
    SAUVOLA_WINDOW,
)
from scanprep.services.channels import require_content, to_gray
from scanprep.utils.exceptions import InvalidArgumentError
from scanprep.utils.params import normalize_bag, safe_bool, safe_enum, safe_float, safe_int

logger = logging.getLogger(__name__)


class BinarizeMethod(Enum):
    """Thresholding strategy."""

    THRESHOLD = auto()
    ADAPTIVE = auto()
    SAUVOLA = auto()


@dataclass
class BinarizeParameters:
    """Tuning knobs for all binarization methods.

    Attributes:
        method: Strategy used when dispatching through the processor
        threshold: Fixed global level for THRESHOLD
        threshold_factor: Optional fraction in [0, 1]; when set, THRESHOLD
            takes its level from the cumulative histogram at this fraction
        block_size: Adaptive block; None or <= 0 picks min(H, W) / 30
        mean_c: Constant subtracted from the adaptive local mean
        use_gaussian: Gaussian-weighted instead of plain local mean
        use_morphology: Morphological opening after adaptive thresholding
        morph_kernel: Elliptic kernel size for the opening
        morph_iterations: Opening iterations
        sauvola_window_size: Sauvola window
        sauvola_k: Sauvola sensitivity
        sauvola_r: Dynamic range of the standard deviation
        sauvola_use_clahe: Local contrast equalization before Sauvola
        sauvola_clahe_clip: CLAHE clip limit for the Sauvola pre-pass
        sauvola_clahe_grid: CLAHE tile grid for the Sauvola pre-pass
        sauvola_morph_radius: Open+close radius after Sauvola (0 disables)
        pencil_stroke_boost: Added to the Sauvola threshold so faint pencil
            strokes fall on the foreground side
    """

    method: BinarizeMethod = BinarizeMethod.THRESHOLD
    threshold: int = DEFAULT_THRESHOLD
    threshold_factor: float | None = None
    block_size: int | None = None
    mean_c: float = DEFAULT_ADAPTIVE_C
    use_gaussian: bool = False
    use_morphology: bool = False
    morph_kernel: int = DEFAULT_MORPH_KERNEL
    morph_iterations: int = DEFAULT_MORPH_ITERATIONS
    sauvola_window_size: int = SAUVOLA_WINDOW
    sauvola_k: float = SAUVOLA_K
    sauvola_r: float = SAUVOLA_R
    sauvola_use_clahe: bool = False
    sauvola_clahe_clip: float = SAUVOLA_CLAHE_CLIP
    sauvola_clahe_grid: int = SAUVOLA_CLAHE_GRID
    sauvola_morph_radius: int = 0
    pencil_stroke_boost: int = 0

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, Any] | None) -> "BinarizeParameters":
        """Build parameters from a loosely typed bag.

        Keys match field names case-insensitively in either camelCase or
        snake_case (``blockSize`` and ``block_size`` are the same key).
        """
        bag = normalize_bag(parameters)
        defaults = cls()

        factor = bag.get("thresholdfactor")
        block = bag.get("blocksize")
        return cls(
            method=safe_enum(BinarizeMethod, bag.get("method"), defaults.method),
            threshold=safe_int(bag.get("threshold"), defaults.threshold),
            threshold_factor=None if factor is None else safe_float(factor, 0.5),
            block_size=None if block is None else safe_int(block, 0),
            mean_c=safe_float(bag.get("meanc"), defaults.mean_c),
            use_gaussian=safe_bool(bag.get("usegaussian"), defaults.use_gaussian),
            use_morphology=safe_bool(bag.get("usemorphology"), defaults.use_morphology),
            morph_kernel=safe_int(bag.get("morphkernel"), defaults.morph_kernel),
            morph_iterations=safe_int(bag.get("morphiterations"), defaults.morph_iterations),
            sauvola_window_size=safe_int(
                bag.get("sauvolawindowsize"), defaults.sauvola_window_size
            ),
            sauvola_k=safe_float(bag.get("sauvolak"), defaults.sauvola_k),
            sauvola_r=safe_float(bag.get("sauvolar"), defaults.sauvola_r),
            sauvola_use_clahe=safe_bool(bag.get("sauvolauseclahe"), defaults.sauvola_use_clahe),
            sauvola_clahe_clip=safe_float(
                bag.get("sauvolaclaheclip"), defaults.sauvola_clahe_clip
            ),
            sauvola_clahe_grid=safe_int(
                bag.get("sauvolaclahegrid"), defaults.sauvola_clahe_grid
            ),
            sauvola_morph_radius=safe_int(
                bag.get("sauvolamorphradius"), defaults.sauvola_morph_radius
            ),
            pencil_stroke_boost=safe_int(
                bag.get("pencilstrokeboost"), defaults.pencil_stroke_boost
            ),
        )


def effective_window(requested: int, shape: tuple[int, ...]) -> int:
    """Make a block/window size odd, at least 3, and no larger than the image.

    The upper bound is min(H, W) rounded down to odd, which wins over the
    lower bound: a 1x1 or 2x2 image gets a window of 1.

    Args:
        requested: Caller-supplied size (any integer)
        shape: Image shape

    Returns:
        Odd window size >= 1
    """
    size = max(int(requested), ADAPTIVE_BLOCK_MIN)
    if size % 2 == 0:
        size += 1
    limit = min(shape[0], shape[1])
    if limit % 2 == 0:
        limit -= 1
    return max(1, min(size, limit))


def binarize(
    img: np.ndarray,
    method: BinarizeMethod | None = None,
    params: BinarizeParameters | None = None,
) -> np.ndarray:
    """Binarize an image with the requested strategy.

    Args:
        img: 8-bit image with 1, 3 or 4 channels
        method: Strategy; defaults to ``params.method``
        params: Tuning parameters (defaults when None)

    Returns:
        New single-channel uint8 mask of the same size, values in {0, 255}

    Raises:
        InvalidArgumentError: ``img`` is None or has an unsupported layout,
            or ``method`` is not a BinarizeMethod
        InvalidStateError: ``img`` is empty
    """
    require_content(img, "binarize")
    if params is None:
        params = BinarizeParameters()
    if method is None:
        method = params.method

    gray = to_gray(img)

    if method == BinarizeMethod.THRESHOLD:
        return _binarize_threshold(gray, params)
    if method == BinarizeMethod.ADAPTIVE:
        return _binarize_adaptive(gray, params)
    if method == BinarizeMethod.SAUVOLA:
        return _binarize_sauvola(gray, params)
    raise InvalidArgumentError("method", f"unknown binarization method {method!r}")


def _percentile_level(gray: np.ndarray, fraction: float) -> int:
    """Gray level at which the cumulative histogram reaches ``fraction``."""
    fraction = min(1.0, max(0.0, fraction))
    hist = np.bincount(gray.ravel(), minlength=256)
    cdf = np.cumsum(hist)
    target = fraction * cdf[-1]
    return int(np.searchsorted(cdf, target, side="left"))


def _binarize_threshold(gray: np.ndarray, params: BinarizeParameters) -> np.ndarray:
    if params.threshold_factor is not None:
        level = _percentile_level(gray, params.threshold_factor)
        logger.debug(f"Percentile threshold {params.threshold_factor:.2f} -> level {level}")
    else:
        level = int(np.clip(params.threshold, 0, 255))

    _, binary = cv2.threshold(gray, level, 255, cv2.THRESH_BINARY)
    return binary


def _adaptive_block(gray: np.ndarray, params: BinarizeParameters) -> int:
    if params.block_size is not None and params.block_size > 0:
        requested = params.block_size
    else:
        # heuristic: block ~ min(width, height) / 30
        requested = min(gray.shape[0], gray.shape[1]) // ADAPTIVE_BLOCK_DIVISOR
        requested = max(ADAPTIVE_BLOCK_MIN, min(ADAPTIVE_BLOCK_MAX, requested))
    return effective_window(requested, gray.shape)


def _binarize_adaptive(gray: np.ndarray, params: BinarizeParameters) -> np.ndarray:
    block = _adaptive_block(gray, params)

    if block >= 3:
        adaptive_type = (
            cv2.ADAPTIVE_THRESH_GAUSSIAN_C if params.use_gaussian else cv2.ADAPTIVE_THRESH_MEAN_C
        )
        binary = cv2.adaptiveThreshold(
            gray, 255, adaptive_type, cv2.THRESH_BINARY, block, params.mean_c
        )
    else:
        # adaptiveThreshold needs block >= 3; compare against the local mean directly
        logger.debug(f"Image {gray.shape} too small for adaptive block, using block={block}")
        local_mean = cv2.blur(gray.astype(np.float32), (block, block))
        binary = np.where(gray > local_mean - params.mean_c, 255, 0).astype(np.uint8)

    if params.use_morphology and params.morph_kernel > 0:
        kernel = cv2.getStructuringElement(
            cv2.MORPH_ELLIPSE, (params.morph_kernel, params.morph_kernel)
        )
        binary = cv2.morphologyEx(
            binary, cv2.MORPH_OPEN, kernel, iterations=max(1, params.morph_iterations)
        )

    return binary


def _binarize_sauvola(gray: np.ndarray, params: BinarizeParameters) -> np.ndarray:
    window = effective_window(params.sauvola_window_size, gray.shape)
    grid = max(1, params.sauvola_clahe_grid)

    work = gray
    if params.sauvola_use_clahe:
        if min(gray.shape) >= grid:
            clahe = cv2.createCLAHE(clipLimit=params.sauvola_clahe_clip, tileGridSize=(grid, grid))
            work = clahe.apply(gray)
        else:
            logger.debug(f"Skipping CLAHE pre-pass, image {gray.shape} smaller than grid {grid}")

    src = work.astype(np.float64)
    mean = cv2.boxFilter(
        src, cv2.CV_64F, (window, window), normalize=True, borderType=cv2.BORDER_REFLECT_101
    )
    mean_sq = cv2.boxFilter(
        src * src, cv2.CV_64F, (window, window), normalize=True, borderType=cv2.BORDER_REFLECT_101
    )
    std = np.sqrt(np.maximum(mean_sq - mean * mean, 0.0))

    r = params.sauvola_r if params.sauvola_r > 0 else SAUVOLA_R
    thresh = mean * (1.0 + params.sauvola_k * (std / r - 1.0)) + params.pencil_stroke_boost
    np.minimum(thresh, 255.0, out=thresh)

    binary = np.where(src > thresh, 255, 0).astype(np.uint8)

    if params.sauvola_morph_radius > 0:
        size = 2 * params.sauvola_morph_radius + 1
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (size, size))
        binary = cv2.morphologyEx(binary, cv2.MORPH_OPEN, kernel)
        binary = cv2.morphologyEx(binary, cv2.MORPH_CLOSE, kernel)

    logger.debug(f"Sauvola window={window} k={params.sauvola_k} R={r}")
    return binary
