"""
Contrast, illumination and colour enhancement.

Contains the local-contrast equalization (CLAHE on the lightness channel),
homomorphic retinex illumination correction, percentile levels with gamma,
and the colour / brightness-contrast corrections used by the channels
correction command.

Every function returns a new array and checks the cancellation token at its
stage boundaries.
"""

import logging
from enum import Enum, auto

import cv2
import numpy as np

from scanprep.constants import (
    CLAHE_CLIP_LIMIT,
    CLAHE_GRID_SIZE,
    LEVELS_BLACK_PCT,
    LEVELS_GAMMA,
    LEVELS_TARGET_WHITE,
    LEVELS_WHITE_PCT,
    RETINEX_EPS,
    RETINEX_EXP_CLAMP,
    RETINEX_FLAT_RANGE,
    RETINEX_GAMMA_HIGH,
    RETINEX_GAMMA_LOW,
    RETINEX_HIST_BINS,
    RETINEX_P_HIGH,
    RETINEX_P_LOW,
    RETINEX_SIGMA,
)
from scanprep.services.cancellation import CancellationToken, ensure_token
from scanprep.services.channels import channel_count, to_bgr, to_gray, validate_image
from scanprep.utils.exceptions import InvalidArgumentError

logger = logging.getLogger(__name__)

# Images larger than this (either side) are sampled at half size for percentiles
PERCENTILE_SAMPLE_MAX_SIDE = 900


class RetinexOutputMode(Enum):
    """What the homomorphic filter returns before 8-bit normalization."""

    FILTERED = auto()  # gamma_high * log-domain high-pass; best before binarization
    RECONSTRUCT_EXP = auto()  # exp(gamma_high * high + gamma_low * low)


# ── CLAHE ──────────────────────────────────────────────────────────────


def apply_clahe(
    token: CancellationToken | None,
    img: np.ndarray,
    clip_limit: float = CLAHE_CLIP_LIMIT,
    grid_size: int = CLAHE_GRID_SIZE,
) -> np.ndarray:
    """Apply Contrast Limited Adaptive Histogram Equalization.

    Gray images are equalized directly. Colour images are equalized on the
    Lab lightness channel and recombined with the original chrominance;
    alpha is dropped.

    Args:
        token: Cancellation token (None means never cancelled)
        img: 8-bit image with 1, 3 or 4 channels
        clip_limit: CLAHE clip limit
        grid_size: CLAHE tile grid (grid_size x grid_size)

    Returns:
        1-channel result for gray input, 3-channel BGR otherwise. Gray input
        without midtones or with a single value is returned as an exact copy.

    Raises:
        InvalidArgumentError: None, non-uint8 or unsupported channel count
        OperationCancelledError: The token is already signalled
    """
    if img is None:
        raise InvalidArgumentError("image", "image is required")
    ensure_token(token).raise_if_cancelled("clahe")
    validate_image(img)

    grid = max(1, int(grid_size))
    clahe = cv2.createCLAHE(clipLimit=clip_limit, tileGridSize=(grid, grid))

    if channel_count(img) == 1:
        gray = to_gray(img)
        if gray.size == 0:
            return gray
        has_midtones = bool(np.any((gray >= 1) & (gray <= 254)))
        if not has_midtones or gray.min() == gray.max():
            logger.debug("CLAHE skipped: gray image has no tonal variation")
            return gray
        return clahe.apply(gray)

    bgr = to_bgr(img)
    if bgr.size == 0:
        return bgr
    lab = cv2.cvtColor(bgr, cv2.COLOR_BGR2LAB)
    l_channel, a_channel, b_channel = cv2.split(lab)
    del lab
    l_channel = clahe.apply(l_channel)
    return cv2.cvtColor(cv2.merge([l_channel, a_channel, b_channel]), cv2.COLOR_LAB2BGR)


# ── Homomorphic retinex ────────────────────────────────────────────────


def homomorphic_retinex(
    token: CancellationToken | None,
    img: np.ndarray,
    output_mode: RetinexOutputMode = RetinexOutputMode.FILTERED,
    use_lab_l: bool = True,
    robust_normalize: bool = True,
    sigma: float = RETINEX_SIGMA,
    gamma_high: float = RETINEX_GAMMA_HIGH,
    gamma_low: float = RETINEX_GAMMA_LOW,
    eps: float = RETINEX_EPS,
    p_low: float = RETINEX_P_LOW,
    p_high: float = RETINEX_P_HIGH,
    hist_bins: int = RETINEX_HIST_BINS,
    exp_clamp_abs: float = RETINEX_EXP_CLAMP,
) -> np.ndarray:
    """Correct uneven illumination with a log-domain Gaussian high-pass.

    The illumination channel is moved to the log domain, its Gaussian
    low-pass (the illumination estimate) is subtracted, and the remaining
    reflectance detail is either used directly (FILTERED) or recombined
    with an attenuated illumination and exponentiated (RECONSTRUCT_EXP).
    The result is stretched to 8 bits.

    Args:
        token: Cancellation token (None means never cancelled)
        img: 8-bit image with 1, 3 or 4 channels
        output_mode: FILTERED or RECONSTRUCT_EXP
        use_lab_l: Use Lab lightness (True) or plain gray as illumination channel
        robust_normalize: Clip at percentiles ``p_low``/``p_high`` before
            stretching; plain min-max otherwise
        sigma: Gaussian sigma of the illumination estimate
        gamma_high: Gain of the high-frequency (reflectance) part
        gamma_low: Gain of the low-frequency (illumination) part
        eps: Floor applied before the logarithm
        p_low: Lower clipping percentile
        p_high: Upper clipping percentile
        hist_bins: Histogram resolution for the percentile search
        exp_clamp_abs: Clamp of the log signal before exponentiation

    Returns:
        New single-channel uint8 image of the input size. Empty input gives
        an empty array; a flat input gives a flat output.

    Raises:
        InvalidArgumentError: ``img`` is None or has an unsupported layout
        OperationCancelledError: Cancellation observed at a stage boundary
    """
    if img is None:
        raise InvalidArgumentError("image", "image is required")
    token = ensure_token(token)
    if img.size == 0:
        return np.zeros((0, 0), dtype=np.uint8)
    validate_image(img)

    token.raise_if_cancelled("retinex:log")
    gray8u = _illumination_channel(img, use_lab_l)

    # float64 keeps the high-pass of a flat image exactly flat
    log_i = np.log(np.maximum(gray8u.astype(np.float64) / 255.0, eps))
    del gray8u

    low = cv2.GaussianBlur(log_i, (0, 0), sigmaX=sigma, sigmaY=sigma, borderType=cv2.BORDER_REFLECT_101)
    high = log_i - low
    del log_i

    token.raise_if_cancelled("retinex:filter")

    if output_mode == RetinexOutputMode.FILTERED:
        out = gamma_high * high
    else:
        token.raise_if_cancelled("retinex:reconstruct")
        out_log = gamma_high * high + gamma_low * low
        np.clip(out_log, -exp_clamp_abs, exp_clamp_abs, out=out_log)
        out = np.exp(out_log)
    del high, low

    return _normalize_to_8u(token, out, robust_normalize, p_low, p_high, hist_bins)


def _illumination_channel(img: np.ndarray, use_lab_l: bool) -> np.ndarray:
    if channel_count(img) == 1:
        return to_gray(img)
    bgr = to_bgr(img)
    if not use_lab_l:
        return cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)
    # Lab lightness is more stable for paper shading
    lab = cv2.cvtColor(bgr, cv2.COLOR_BGR2LAB)
    return lab[:, :, 0].copy()


def _normalize_to_8u(
    token: CancellationToken,
    src: np.ndarray,
    robust: bool,
    p_low: float,
    p_high: float,
    hist_bins: int,
) -> np.ndarray:
    """Stretch a float image to uint8, optionally clipping at percentiles."""
    token.raise_if_cancelled("retinex:normalize")

    if robust:
        h, w = src.shape[:2]
        if h > PERCENTILE_SAMPLE_MAX_SIDE or w > PERCENTILE_SAMPLE_MAX_SIDE:
            sample = cv2.resize(src, None, fx=0.5, fy=0.5, interpolation=cv2.INTER_AREA)
        else:
            sample = src
    else:
        sample = src

    min_v = float(sample.min())
    max_v = float(sample.max())
    if max_v <= min_v + RETINEX_FLAT_RANGE:
        return np.zeros(src.shape[:2], dtype=np.uint8)

    if not robust:
        return _min_max_to_8u(src)

    bins = max(2, int(hist_bins))
    hist, _ = np.histogram(sample, bins=bins, range=(min_v, max_v))
    cdf = np.cumsum(hist)
    total = float(sample.size)

    token.raise_if_cancelled("retinex:percentiles")
    idx_low = int(np.searchsorted(cdf, total * (p_low / 100.0), side="left"))
    idx_high = int(np.searchsorted(cdf, total * (p_high / 100.0), side="left"))
    idx_low = min(idx_low, bins - 1)
    idx_high = min(idx_high, bins - 1)

    span = max_v - min_v
    lo = min_v + (idx_low / (bins - 1)) * span
    hi = min_v + (idx_high / (bins - 1)) * span
    if hi <= lo + RETINEX_FLAT_RANGE:
        return _min_max_to_8u(src)

    scaled = (np.clip(src, lo, hi) - lo) * (255.0 / (hi - lo))
    return np.clip(np.rint(scaled), 0, 255).astype(np.uint8)


def _min_max_to_8u(src: np.ndarray) -> np.ndarray:
    min_v = float(src.min())
    max_v = float(src.max())
    if max_v <= min_v + RETINEX_FLAT_RANGE:
        return np.zeros(src.shape[:2], dtype=np.uint8)
    scaled = (src - min_v) * (255.0 / (max_v - min_v))
    return np.clip(np.rint(scaled), 0, 255).astype(np.uint8)


# ── Levels & gamma ─────────────────────────────────────────────────────


def levels_and_gamma_8u(
    img: np.ndarray,
    token: CancellationToken | None,
    black_pct: float = LEVELS_BLACK_PCT,
    white_pct: float = LEVELS_WHITE_PCT,
    gamma: float = LEVELS_GAMMA,
    target_white: int = LEVELS_TARGET_WHITE,
) -> np.ndarray:
    """Percentile levels stretch followed by gamma correction.

    Black and white points come from the cumulative 256-bin histogram at
    ``black_pct`` / ``white_pct``. An inverted or collapsed range falls back
    to the full [0, 255] range.

    Raises:
        InvalidArgumentError: Input is not single-channel uint8
        OperationCancelledError: The token is already signalled
    """
    token = ensure_token(token)
    token.raise_if_cancelled("levels")
    if img is None:
        raise InvalidArgumentError("image", "image is required")
    if img.size == 0:
        return np.zeros((0, 0), dtype=np.uint8)
    if img.dtype != np.uint8 or channel_count(img) != 1:
        raise InvalidArgumentError("image", "expected single-channel 8-bit image")

    gray = img.reshape(img.shape[:2])
    hist = np.bincount(gray.ravel(), minlength=256)
    cdf = np.cumsum(hist)
    total = float(gray.size)

    black = min(255, int(np.searchsorted(cdf, total * (black_pct / 100.0), side="left")))
    white = min(255, int(np.searchsorted(cdf, total * (white_pct / 100.0), side="left")))
    if white <= black:
        logger.debug(f"Levels range collapsed (black={black}, white={white}), using 0..255")
        black, white = 0, 255

    token.raise_if_cancelled("levels:lut")
    denom = max(1.0, float(white - black))
    x = np.clip((np.arange(256, dtype=np.float64) - black) / denom, 0.0, 1.0)
    lut = np.clip(np.rint(np.power(x, gamma) * target_white), 0, 255).astype(np.uint8)

    return cv2.LUT(gray, lut)


# ── Colour corrections ─────────────────────────────────────────────────


def adjust_color(
    token: CancellationToken | None,
    img: np.ndarray,
    red_pct: float = 0.0,
    green_pct: float = 0.0,
    blue_pct: float = 0.0,
    hue_degrees: float = 0.0,
    saturation_pct: float = 0.0,
) -> np.ndarray:
    """Scale RGB channels, rotate hue and scale saturation.

    Percentages are relative changes (+10 means x1.1). Hue is shifted in
    OpenCV half-degree units, clamped to +/-90.

    Returns:
        New 3-channel BGR image (empty input gives an empty array)
    """
    if img is None:
        raise InvalidArgumentError("image", "image is required")
    if img.size == 0:
        return np.zeros((0, 0, 3), dtype=np.uint8)
    validate_image(img)
    token = ensure_token(token)
    token.raise_if_cancelled("color")

    working = to_bgr(img)

    scales = [max(0.0, 1.0 + pct / 100.0) for pct in (blue_pct, green_pct, red_pct)]
    if any(abs(s - 1.0) > 1e-4 for s in scales):
        channels = list(cv2.split(working))
        for i, scale in enumerate(scales):
            channels[i] = cv2.LUT(channels[i], _scale_lut(scale))
        working = cv2.merge(channels)

    hue_shift = int(np.clip(round(hue_degrees / 2.0), -90, 90))
    sat_scale = max(0.0, 1.0 + saturation_pct / 100.0)
    if hue_shift != 0 or abs(sat_scale - 1.0) > 1e-4:
        token.raise_if_cancelled("color:hsv")
        hsv = cv2.cvtColor(working, cv2.COLOR_BGR2HSV)
        h, s, v = cv2.split(hsv)
        if hue_shift != 0:
            h = cv2.LUT(h, _hue_lut(hue_shift))
        if abs(sat_scale - 1.0) > 1e-4:
            s = cv2.LUT(s, _scale_lut(sat_scale))
        working = cv2.cvtColor(cv2.merge([h, s, v]), cv2.COLOR_HSV2BGR)

    return working


def adjust_brightness_contrast(
    token: CancellationToken | None,
    img: np.ndarray,
    brightness: float = 0.0,
    contrast: float = 0.0,
) -> np.ndarray:
    """Linear brightness/contrast: ``out = alpha * in + beta``.

    ``alpha = (contrast + 100) / 100`` clamped to [0, 3] and
    ``beta = brightness`` clamped to [-255, 255].
    """
    if img is None:
        raise InvalidArgumentError("image", "image is required")
    if img.size == 0:
        return np.zeros((0, 0, 3), dtype=np.uint8)
    validate_image(img)
    ensure_token(token).raise_if_cancelled("brightness_contrast")

    alpha = float(np.clip((contrast + 100.0) / 100.0, 0.0, 3.0))
    beta = float(np.clip(brightness, -255.0, 255.0))
    scaled = to_bgr(img).astype(np.float32) * alpha + beta
    return np.clip(np.rint(scaled), 0, 255).astype(np.uint8)


def _scale_lut(scale: float) -> np.ndarray:
    return np.clip(np.rint(np.arange(256) * scale), 0, 255).astype(np.uint8)


def _hue_lut(shift: int) -> np.ndarray:
    lut = np.arange(256, dtype=np.int32)
    lut[:180] = (lut[:180] + shift) % 180
    return lut.astype(np.uint8)
