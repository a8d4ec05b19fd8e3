"""
Skew detection and correction for scanned pages.

The page's foreground is merged into blobs with a wide horizontal closing,
the largest blob's minimum-area rectangle gives the skew angle, the page is
rotated onto an enlarged white canvas so no corner is clipped, and the
result is cropped back to the content with a small margin.
"""

import logging
import math

import cv2
import numpy as np

from scanprep.constants import (
    DESKEW_CLOSE_KERNEL,
    DESKEW_CROP_MARGIN_PX,
    DESKEW_FILL_VALUE,
    DESKEW_MIN_AREA_FRACTION,
    DESKEW_RECROP_KERNEL,
)
from scanprep.services.cancellation import CancellationToken, ensure_token
from scanprep.services.channels import require_content, to_gray, to_working_layout

logger = logging.getLogger(__name__)


def _foreground_mask(gray: np.ndarray, kernel_size: tuple[int, int]) -> np.ndarray:
    """Otsu foreground (bright on dark) merged with a rectangular closing."""
    _, bw = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    bw = cv2.bitwise_not(bw)
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, kernel_size)
    return cv2.morphologyEx(bw, cv2.MORPH_CLOSE, kernel)


def _largest_contour(mask: np.ndarray) -> tuple[np.ndarray | None, float]:
    contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    best, best_area = None, 0.0
    for contour in contours:
        area = cv2.contourArea(contour)
        if area > best_area:
            best, best_area = contour, area
    return best, best_area


def _fold_angle(angle: float) -> float:
    """Fold a minAreaRect angle into (-45, 45].

    OpenCV 4.5.1+ reports (0, 90], other releases [-90, 0). The folded value
    is the tilt from the nearest axis on either.
    """
    if angle > 45.0:
        return angle - 90.0
    if angle <= -45.0:
        return angle + 90.0
    return angle


def estimate_skew_angle(gray: np.ndarray) -> float | None:
    """Return the rotation (degrees, counter-clockwise) that straightens the page.

    The value is meant for ``cv2.getRotationMatrix2D``: a page drawn rotated
    by ``a`` degrees yields roughly ``-a``. None means no usable foreground:
    no contour at all, or the largest one covers less than 0.1% of the image.
    """
    mask = _foreground_mask(gray, DESKEW_CLOSE_KERNEL)
    contour, area = _largest_contour(mask)
    image_area = gray.shape[0] * gray.shape[1]
    if contour is None or area < image_area * DESKEW_MIN_AREA_FRACTION:
        return None

    return _fold_angle(cv2.minAreaRect(contour)[-1])


def rotate_expanded(img: np.ndarray, rotation: float) -> np.ndarray:
    """Rotate about the image centre onto a canvas large enough for every corner.

    Exposed background is filled with white.
    """
    h, w = img.shape[:2]
    rad = math.radians(rotation)
    abs_cos = abs(math.cos(rad))
    abs_sin = abs(math.sin(rad))
    new_w = int(round(w * abs_cos + h * abs_sin))
    new_h = int(round(w * abs_sin + h * abs_cos))

    center = (w / 2.0, h / 2.0)
    matrix = cv2.getRotationMatrix2D(center, rotation, 1.0)
    # Shift so the original centre lands on the centre of the new canvas
    matrix[0, 2] += new_w / 2.0 - center[0]
    matrix[1, 2] += new_h / 2.0 - center[1]

    fill = (DESKEW_FILL_VALUE,) * (3 if img.ndim == 3 else 1)
    return cv2.warpAffine(
        img,
        matrix,
        (max(1, new_w), max(1, new_h)),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=fill,
    )


def crop_to_content(img: np.ndarray, margin: int = DESKEW_CROP_MARGIN_PX) -> np.ndarray:
    """Crop to the largest foreground blob plus ``margin``; full image if none."""
    mask = _foreground_mask(to_gray(img), DESKEW_RECROP_KERNEL)
    contour, _ = _largest_contour(mask)
    if contour is None:
        return img

    x, y, bw, bh = cv2.boundingRect(contour)
    height, width = img.shape[:2]
    x0 = max(0, x - margin)
    y0 = max(0, y - margin)
    cw = min(width - x0, bw + margin * 2)
    ch = min(height - y0, bh + margin * 2)
    if cw <= 0 or ch <= 0:
        return img
    return img[y0 : y0 + ch, x0 : x0 + cw].copy()


def deskew(img: np.ndarray, token: CancellationToken | None = None) -> np.ndarray:
    """Straighten a skewed page.

    Args:
        img: 8-bit image with 1, 3 or 4 channels
        token: Optional cancellation token, checked between stages

    Returns:
        New image: gray stays gray, colour comes back as 3-channel BGR.
        Pages without usable foreground are returned as an unchanged copy.

    Raises:
        InvalidArgumentError: ``img`` is None or has an unsupported layout
        InvalidStateError: ``img`` is empty
        OperationCancelledError: Cancellation observed between stages
    """
    require_content(img, "deskew")
    token = ensure_token(token)

    src = to_working_layout(img)

    token.raise_if_cancelled("deskew:detect")
    rotation = estimate_skew_angle(to_gray(src))
    if rotation is None:
        logger.debug("No dominant foreground found, skipping deskew")
        return src

    logger.debug(f"Deskew rotation: {rotation:.2f} degrees")
    token.raise_if_cancelled("deskew:rotate")
    rotated = rotate_expanded(src, rotation)

    token.raise_if_cancelled("deskew:crop")
    return crop_to_content(rotated)
