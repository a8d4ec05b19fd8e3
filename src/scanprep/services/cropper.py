"""
Content-aware page cropping.

Printed text, handwriting and ruled edges are detected as three masks on a
downscaled copy, merged, and the bounding box of all significant components
(plus a margin) becomes the crop rectangle.
"""

import logging

import cv2
import numpy as np

from scanprep.constants import (
    CROP_ADAPTIVE_C,
    CROP_ANALYSIS_MAX_WIDTH,
    CROP_HAND_BLOCK,
    CROP_MARGIN_PX,
    CROP_MIN_COMPONENT_FRACTION,
    CROP_PRINTED_BLOCK,
)
from scanprep.services.cancellation import CancellationToken, ensure_token
from scanprep.services.channels import require_content, to_gray, to_working_layout

logger = logging.getLogger(__name__)


def _content_mask(gray: np.ndarray) -> np.ndarray:
    small_kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))

    printed = cv2.adaptiveThreshold(
        gray,
        255,
        cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
        cv2.THRESH_BINARY_INV,
        CROP_PRINTED_BLOCK,
        CROP_ADAPTIVE_C,
    )
    printed = cv2.morphologyEx(printed, cv2.MORPH_CLOSE, small_kernel)

    # bigger block and dilation join thin handwritten strokes
    hand = cv2.adaptiveThreshold(
        cv2.GaussianBlur(gray, (3, 3), 0),
        255,
        cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
        cv2.THRESH_BINARY_INV,
        CROP_HAND_BLOCK,
        CROP_ADAPTIVE_C,
    )
    hand = cv2.dilate(hand, small_kernel, iterations=2)

    edges = cv2.dilate(cv2.Canny(gray, 50, 150), small_kernel)

    combined = printed | hand | edges
    return cv2.morphologyEx(
        combined, cv2.MORPH_CLOSE, cv2.getStructuringElement(cv2.MORPH_RECT, (5, 5))
    )


def find_content_box(
    gray: np.ndarray, min_component_area_fraction: float = CROP_MIN_COMPONENT_FRACTION
) -> tuple[int, int, int, int] | None:
    """Bounding box ``(x0, y0, x1, y1)`` of the significant content, or None."""
    mask = _content_mask(gray)
    num_labels, _, stats, _ = cv2.connectedComponentsWithStats(mask)
    min_area = max(1.0, mask.size * min_component_area_fraction)

    keep = [i for i in range(1, num_labels) if stats[i, cv2.CC_STAT_AREA] >= min_area]
    if not keep:
        return None

    boxes = stats[keep]
    x0 = int(boxes[:, cv2.CC_STAT_LEFT].min())
    y0 = int(boxes[:, cv2.CC_STAT_TOP].min())
    x1 = int((boxes[:, cv2.CC_STAT_LEFT] + boxes[:, cv2.CC_STAT_WIDTH]).max())
    y1 = int((boxes[:, cv2.CC_STAT_TOP] + boxes[:, cv2.CC_STAT_HEIGHT]).max())
    return x0, y0, x1, y1


def smart_crop(
    token: CancellationToken | None,
    img: np.ndarray,
    margin_px: int = CROP_MARGIN_PX,
    min_component_area_fraction: float = CROP_MIN_COMPONENT_FRACTION,
) -> np.ndarray:
    """Crop the page to its content plus ``margin_px`` on every side.

    Args:
        token: Cancellation token (None means never cancelled)
        img: 8-bit image with 1, 3 or 4 channels
        margin_px: Margin kept around the content, in original pixels
        min_component_area_fraction: Components smaller than this fraction
            of the page are ignored as noise

    Returns:
        New cropped image (gray stays gray, colour becomes BGR). A page
        without detectable content comes back whole.
    """
    require_content(img, "smart_crop")
    token = ensure_token(token)
    token.raise_if_cancelled("crop:analyze")

    working = to_working_layout(img)
    height, width = working.shape[:2]
    if min(height, width) < 3:
        return working

    gray = to_gray(working)
    scale = 1.0
    if width > CROP_ANALYSIS_MAX_WIDTH:
        scale = CROP_ANALYSIS_MAX_WIDTH / float(width)
        gray = cv2.resize(
            gray, (int(width * scale), max(1, int(height * scale))), interpolation=cv2.INTER_AREA
        )

    box = find_content_box(gray, min_component_area_fraction)
    token.raise_if_cancelled("crop:apply")
    if box is None:
        logger.debug("Smart crop: no content found")
        return working

    x0, y0, x1, y1 = (int(round(v / scale)) for v in box)
    x0 = max(0, x0 - margin_px)
    y0 = max(0, y0 - margin_px)
    x1 = min(width, x1 + margin_px)
    y1 = min(height, y1 + margin_px)
    if x1 <= x0 or y1 <= y0:
        return working

    logger.debug(f"Smart crop to x={x0} y={y0} w={x1 - x0} h={y1 - y0}")
    return working[y0:y1, x0:x1].copy()
