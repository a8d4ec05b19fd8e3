"""
Page cleanup operations.

Border removal (dark scanner edges), despeckling, isolated dot removal and
long ruled-line removal. All of them repaint unwanted pixels with paper
white and return a new image: gray input stays gray, colour input (with or
without alpha) comes back as 3-channel BGR. The manual border cut is the
only operation that changes the image size.
"""

import logging
import math
from enum import Enum, auto

import cv2
import numpy as np

from scanprep.constants import (
    BORDER_CENTRAL_SAMPLE,
    BORDER_CONTRAST_THRESHOLD,
    BORDER_DILATE_ITERATIONS,
    BORDER_EDGE_MARGIN_PX,
    BORDER_MAX_AREA_FRACTION,
    BORDER_MAX_REMOVE_FRACTION,
    BORDER_THRESH_FRACTION,
    DESPECKLE_ADAPTIVE_C,
    DESPECKLE_AREA_MULTIPLIER,
    DESPECKLE_DEFAULT_CHAR_HEIGHT,
    DESPECKLE_MAX_DOT_HEIGHT_FRACTION,
    DESPECKLE_PROXIMITY_FRACTION,
    DESPECKLE_SMALL_AREA_PX,
    DESPECKLE_SQUARENESS_TOLERANCE,
    DOTS_MAX_AREA_PX,
    DOTS_MIN_CIRCULARITY,
    LINES_DEFAULT_WIDTH_PX,
    LINES_MIN_LENGTH_FRACTION,
)
from scanprep.services.cancellation import CancellationToken, ensure_token
from scanprep.services.channels import require_content, to_gray, to_working_layout

logger = logging.getLogger(__name__)

PAPER_WHITE = 255


class BorderMode(Enum):
    """How BORDERS_REMOVE finds the border."""

    AUTO = auto()  # dark components touching the edges
    BY_CONTRAST = auto()  # rows/columns that differ from the page centre
    MANUAL = auto()  # caller-supplied page rectangle


class ManualCutMode(Enum):
    FILL = auto()
    CUT = auto()


class LineOrientation(Enum):
    HORIZONTAL = auto()
    VERTICAL = auto()
    BOTH = auto()


def _paint_white(img: np.ndarray, mask: np.ndarray) -> np.ndarray:
    result = to_working_layout(img)
    result[mask > 0] = PAPER_WHITE
    return result


def _dark_foreground(gray: np.ndarray) -> np.ndarray:
    """Otsu mask with dark ink as 255."""
    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)
    return binary


# ── Borders ────────────────────────────────────────────────────────────


def remove_borders_auto(
    token: CancellationToken | None,
    img: np.ndarray,
    edge_margin: int = BORDER_EDGE_MARGIN_PX,
    max_area_fraction: float = BORDER_MAX_AREA_FRACTION,
    dilate_iterations: int = BORDER_DILATE_ITERATIONS,
) -> np.ndarray:
    """Whiten dark components that touch the image edges.

    A component counts as border when its bounding box comes within
    ``edge_margin`` pixels of any edge and it covers at most
    ``max_area_fraction`` of the page (a page-sized component is content).

    Raises:
        InvalidArgumentError: ``img`` is None or has an unsupported layout
        InvalidStateError: ``img`` is empty
        OperationCancelledError: Cancellation observed between stages
    """
    require_content(img, "remove_borders")
    token = ensure_token(token)
    token.raise_if_cancelled("borders:threshold")

    gray = to_gray(img)
    h, w = gray.shape
    binary = _dark_foreground(gray)
    num_labels, labels, stats, _ = cv2.connectedComponentsWithStats(binary, connectivity=8)

    token.raise_if_cancelled("borders:components")
    max_area = h * w * max_area_fraction
    border_labels = []
    for i in range(1, num_labels):
        x, y, w_b, h_b, area = stats[i]
        touches_edge = (
            x <= edge_margin
            or y <= edge_margin
            or x + w_b >= w - edge_margin
            or y + h_b >= h - edge_margin
        )
        if touches_edge and area <= max_area:
            border_labels.append(i)

    if not border_labels:
        logger.debug("No border components found")
        return to_working_layout(img)

    border_mask = np.isin(labels, border_labels).astype(np.uint8) * 255
    if dilate_iterations > 0:
        kernel = np.ones((5, 5), dtype=np.uint8)
        border_mask = cv2.dilate(border_mask, kernel, iterations=dilate_iterations)

    logger.debug(f"Removing {len(border_labels)} border component(s)")
    return _paint_white(img, border_mask)


def remove_borders_by_contrast(
    token: CancellationToken | None,
    img: np.ndarray,
    thresh_fraction: float = BORDER_THRESH_FRACTION,
    contrast_threshold: int = BORDER_CONTRAST_THRESHOLD,
    central_sample: float = BORDER_CENTRAL_SAMPLE,
    max_remove_fraction: float = BORDER_MAX_REMOVE_FRACTION,
) -> np.ndarray:
    """Whiten edge rows and columns that do not look like the page.

    The page tone is the median of a central sample. Scanning inwards from
    each edge, a row (column) is border while more than ``thresh_fraction``
    of its pixels differ from that tone by more than ``contrast_threshold``.
    No side removes more than ``max_remove_fraction`` of the image.
    """
    require_content(img, "remove_borders")
    token = ensure_token(token)
    token.raise_if_cancelled("borders:sample")

    gray = to_gray(img)
    h, w = gray.shape
    central_sample = min(0.9, max(0.05, central_sample))
    thresh_fraction = min(0.99, max(0.01, thresh_fraction))
    max_remove_fraction = min(0.5, max(0.01, max_remove_fraction))

    cx0 = min(w - 1, max(0, int(round(w * (0.5 - central_sample / 2.0)))))
    cy0 = min(h - 1, max(0, int(round(h * (0.5 - central_sample / 2.0)))))
    cx1 = max(cx0 + 1, min(w, int(round(w * (0.5 + central_sample / 2.0)))))
    cy1 = max(cy0 + 1, min(h, int(round(h * (0.5 + central_sample / 2.0)))))
    page_tone = float(np.median(gray[cy0:cy1, cx0:cx1]))

    token.raise_if_cancelled("borders:profile")
    off_page = np.abs(gray.astype(np.int16) - page_tone) > contrast_threshold
    row_frac = off_page.sum(axis=1) / float(w)
    col_frac = off_page.sum(axis=0) / float(h)

    top = _run_length(row_frac > thresh_fraction)
    bottom = _run_length((row_frac > thresh_fraction)[::-1])
    left = _run_length(col_frac > thresh_fraction)
    right = _run_length((col_frac > thresh_fraction)[::-1])

    max_rows = int(round(max_remove_fraction * h))
    max_cols = int(round(max_remove_fraction * w))
    top, bottom = min(top, max_rows), min(bottom, max_rows)
    left, right = min(left, max_cols), min(right, max_cols)
    logger.debug(
        f"Border cuts top={top} bottom={bottom} left={left} right={right} "
        f"(page tone {page_tone:.0f})"
    )

    mask = np.zeros((h, w), dtype=np.uint8)
    mask[:top, :] = 255
    mask[:, :left] = 255
    if bottom:
        mask[h - bottom :, :] = 255
    if right:
        mask[:, w - right :] = 255
    return _paint_white(img, mask)


def _run_length(flags: np.ndarray) -> int:
    """Number of leading True values."""
    if flags.size == 0 or not flags[0]:
        return 0
    misses = np.flatnonzero(~flags)
    return int(misses[0]) if misses.size else int(flags.size)


def remove_borders_manual(
    token: CancellationToken | None,
    img: np.ndarray,
    top: int,
    bottom: int,
    left: int,
    right: int,
    mode: ManualCutMode = ManualCutMode.FILL,
) -> np.ndarray:
    """Treat fixed margins as border.

    The page rectangle left after removing the margins is clamped to the
    image and is at least 1x1. FILL paints the margins with the page's
    paper tone, CUT crops to the page rectangle.
    """
    require_content(img, "remove_borders")
    ensure_token(token).raise_if_cancelled("borders:manual")

    working = to_working_layout(img)
    rows, cols = working.shape[:2]
    x = max(0, min(cols - 1, int(left)))
    y = max(0, min(rows - 1, int(top)))
    width = max(1, min(cols - x, cols - int(left) - int(right)))
    height = max(1, min(rows - y, rows - int(top) - int(bottom)))

    if mode == ManualCutMode.CUT:
        return working[y : y + height, x : x + width].copy()

    fill = _paper_tone(working[y : y + height, x : x + width])
    outside = np.ones((rows, cols), dtype=bool)
    outside[y : y + height, x : x + width] = False
    working[outside] = fill
    return working


def _paper_tone(region: np.ndarray) -> np.ndarray:
    """Median of the bright pixels of ``region``; white when there are none."""
    gray = region if region.ndim == 2 else cv2.cvtColor(region, cv2.COLOR_BGR2GRAY)
    bright = gray >= int(0.7 * 255)
    if not np.any(bright):
        return np.full(region.shape[2:], PAPER_WHITE, dtype=np.uint8)
    return np.median(region[bright], axis=0).astype(np.uint8)


# ── Despeckle ──────────────────────────────────────────────────────────


def _text_mask(token: CancellationToken, gray: np.ndarray) -> np.ndarray:
    """Binary mask with ink as 255 and paper as 0.

    Even lighting uses Otsu; uneven lighting (background range of 30 or
    more) switches to a Gaussian adaptive threshold.
    """
    cols = gray.shape[1]
    bg_kernel = min(max(cols // 30, 51), max(51, cols // 10)) | 1
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (bg_kernel, bg_kernel))
    background = cv2.morphologyEx(gray, cv2.MORPH_CLOSE, kernel)
    bg_range = int(background.max()) - int(background.min())

    token.raise_if_cancelled("despeckle:threshold")
    denoised = cv2.medianBlur(gray, 3)
    if bg_range < 30:
        _, binary = cv2.threshold(denoised, 0, 255, cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)
    else:
        block = min(max(cols // 40, 11), 101) | 1
        binary = cv2.adaptiveThreshold(
            denoised,
            255,
            cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
            cv2.THRESH_BINARY_INV,
            block,
            DESPECKLE_ADAPTIVE_C,
        )

    # ink must be the minority
    if cv2.countNonZero(binary) >= binary.size / 2.0:
        binary = cv2.bitwise_not(binary)
    return binary


def despeckle(
    token: CancellationToken | None,
    img: np.ndarray,
    small_area_relative: bool = True,
    small_area_multiplier: float = DESPECKLE_AREA_MULTIPLIER,
    small_area_absolute_px: int = DESPECKLE_SMALL_AREA_PX,
    max_dot_height_fraction: float = DESPECKLE_MAX_DOT_HEIGHT_FRACTION,
    keep_clusters: bool = True,
    proximity_radius_fraction: float = DESPECKLE_PROXIMITY_FRACTION,
) -> np.ndarray:
    """Remove specks while protecting punctuation and diacritics.

    Ink components are measured against the median character height.
    Small components far from text are removed; small components inside
    text are kept when they sit close to a character, are roughly square on
    a text line (full stops), or belong to a cluster of other small marks
    on the same line (dotted leaders, ellipses).

    Args:
        token: Cancellation token (None means never cancelled)
        img: 8-bit image with 1, 3 or 4 channels
        small_area_relative: Size threshold relative to character height
            (``multiplier * median_height ** 2``) instead of absolute pixels
        small_area_multiplier: Factor for the relative threshold
        small_area_absolute_px: Absolute threshold in pixels
        max_dot_height_fraction: Components not taller than this fraction of
            the median height are speck candidates regardless of area
        keep_clusters: Protect groups of small marks on a text line
        proximity_radius_fraction: Distance (fraction of median height)
            within which a small mark counts as part of a character

    Returns:
        New image with removed specks painted white
    """
    require_content(img, "despeckle")
    token = ensure_token(token)
    token.raise_if_cancelled("despeckle:start")

    gray = to_gray(img)
    binary = _text_mask(token, gray)
    rows, cols = binary.shape

    token.raise_if_cancelled("despeckle:components")
    labeling = cv2.dilate(binary, cv2.getStructuringElement(cv2.MORPH_RECT, (1, 3)))
    num_labels, labels, stats, centroids = cv2.connectedComponentsWithStats(labeling, connectivity=8)
    if num_labels <= 1:
        logger.debug("Despeckle: no ink components")
        return to_working_layout(img)

    comp_stats = stats[1:]
    lefts = comp_stats[:, cv2.CC_STAT_LEFT]
    tops = comp_stats[:, cv2.CC_STAT_TOP]
    widths = comp_stats[:, cv2.CC_STAT_WIDTH]
    heights = comp_stats[:, cv2.CC_STAT_HEIGHT]
    areas = comp_stats[:, cv2.CC_STAT_AREA]

    tall = np.sort(heights[heights >= 3])
    median_height = int(tall[len(tall) // 2]) if tall.size else DESPECKLE_DEFAULT_CHAR_HEIGHT

    if small_area_relative:
        small_thr = max(1, int(round(small_area_multiplier * median_height * median_height)))
    else:
        small_thr = max(1, int(small_area_absolute_px))
    max_dot_height = max(1, int(round(max_dot_height_fraction * median_height)))
    radius = max(1.0, proximity_radius_fraction * median_height)
    row_range = max(1, median_height // 3)
    cluster_horiz = max(3, int(median_height * 0.6))

    projection = (binary > 0).sum(axis=1)
    text_rows = projection > max(10, cols // 40)

    big = (heights >= median_height * 0.6) | (areas > small_thr * 4)
    big_boxes = np.stack(
        [lefts[big], tops[big], lefts[big] + widths[big], tops[big] + heights[big]], axis=1
    )

    small_idx = np.flatnonzero((areas < small_thr) | (heights <= max_dot_height))
    centers_x = lefts + widths // 2
    centers_y = tops + heights // 2

    buckets: dict[tuple[int, int], list[int]] = {}
    if keep_clusters and small_idx.size > 1:
        for i in small_idx:
            key = (int(centers_x[i]) // cluster_horiz, int(centers_y[i]) // row_range)
            buckets.setdefault(key, []).append(int(i))

    to_remove = []
    for n, i in enumerate(small_idx):
        if n % 128 == 0:
            token.raise_if_cancelled("despeckle:classify")

        cx, cy = int(centers_x[i]), int(centers_y[i])
        near_big = False
        if big_boxes.size:
            dx = np.maximum(np.maximum(big_boxes[:, 0] - cx, 0), cx - big_boxes[:, 2])
            dy = np.maximum(np.maximum(big_boxes[:, 1] - cy, 0), cy - big_boxes[:, 3])
            near_big = bool(np.any(dx * dx + dy * dy < radius * radius))

        on_text_line = bool(np.any(text_rows[max(0, cy - row_range) : cy + row_range + 1]))
        if not (near_big or on_text_line):
            to_remove.append(int(i) + 1)
            continue

        square_like = abs(int(widths[i]) - int(heights[i])) <= max(
            1, heights[i] * DESPECKLE_SQUARENESS_TOLERANCE
        )
        in_cluster = bool(buckets) and _has_cluster_neighbour(
            buckets, int(i), cx, cy, centers_x, centers_y, cluster_horiz, row_range
        )
        if not (near_big or (on_text_line and (square_like or in_cluster))):
            to_remove.append(int(i) + 1)

    logger.debug(
        f"Despeckle: components={num_labels - 1} small={small_idx.size} "
        f"removed={len(to_remove)} median_height={median_height}"
    )
    if not to_remove:
        return to_working_layout(img)

    token.raise_if_cancelled("despeckle:paint")
    return _paint_white(img, np.isin(labels, to_remove).astype(np.uint8))


def _has_cluster_neighbour(
    buckets: dict[tuple[int, int], list[int]],
    index: int,
    cx: int,
    cy: int,
    centers_x: np.ndarray,
    centers_y: np.ndarray,
    cluster_horiz: int,
    row_range: int,
) -> bool:
    gx, gy = cx // cluster_horiz, cy // row_range
    for bx in (gx - 1, gx, gx + 1):
        for by in (gy - 1, gy, gy + 1):
            for j in buckets.get((bx, by), ()):
                if j == index:
                    continue
                if abs(int(centers_x[j]) - cx) <= cluster_horiz and abs(int(centers_y[j]) - cy) <= row_range:
                    return True
    return False


# ── Dots ───────────────────────────────────────────────────────────────


def remove_dots(
    token: CancellationToken | None,
    img: np.ndarray,
    max_dot_area_px: int = DOTS_MAX_AREA_PX,
    min_circularity: float = DOTS_MIN_CIRCULARITY,
) -> np.ndarray:
    """Whiten small, round, isolated ink blobs.

    Circularity is ``4 * pi * area / perimeter ** 2`` (1.0 for a disc);
    blobs too small to have a perimeter count as round.
    """
    require_content(img, "remove_dots")
    token = ensure_token(token)
    token.raise_if_cancelled("dots:threshold")

    binary = _dark_foreground(to_gray(img))
    # invert when dark pixels dominate so the dots are the foreground
    if cv2.countNonZero(binary) >= binary.size / 2.0:
        binary = cv2.bitwise_not(binary)

    num_labels, labels, stats, _ = cv2.connectedComponentsWithStats(binary, connectivity=8)
    dots = []
    for i in range(1, num_labels):
        if i % 256 == 0:
            token.raise_if_cancelled("dots:classify")
        x, y, w_b, h_b, area = stats[i]
        if area > max_dot_area_px:
            continue
        component = (labels[y : y + h_b, x : x + w_b] == i).astype(np.uint8)
        contours, _ = cv2.findContours(component, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_NONE)
        perimeter = max((cv2.arcLength(c, True) for c in contours), default=0.0)
        circularity = 1.0 if perimeter <= 0 else 4.0 * math.pi * area / (perimeter * perimeter)
        if circularity >= min_circularity:
            dots.append(i)

    logger.debug(f"Removing {len(dots)} dot(s)")
    if not dots:
        return to_working_layout(img)
    return _paint_white(img, np.isin(labels, dots).astype(np.uint8))


# ── Lines ──────────────────────────────────────────────────────────────


def remove_lines(
    token: CancellationToken | None,
    img: np.ndarray,
    orientation: LineOrientation = LineOrientation.BOTH,
    line_width: int = LINES_DEFAULT_WIDTH_PX,
    min_length_fraction: float = LINES_MIN_LENGTH_FRACTION,
) -> np.ndarray:
    """Whiten long straight rules (table lines, underlines, scanner streaks).

    A horizontal line is any ink run at least ``min_length_fraction`` of the
    image width long; vertical lines are measured against the height. The
    detected lines are widened by ``line_width`` before painting.
    """
    require_content(img, "remove_lines")
    token = ensure_token(token)
    token.raise_if_cancelled("lines:threshold")

    gray = to_gray(img)
    h, w = gray.shape
    binary = _dark_foreground(gray)
    if cv2.countNonZero(binary) >= binary.size / 2.0:
        binary = cv2.bitwise_not(binary)

    fraction = min(1.0, max(0.01, min_length_fraction))
    lines_mask = np.zeros_like(binary)
    if orientation in (LineOrientation.HORIZONTAL, LineOrientation.BOTH):
        token.raise_if_cancelled("lines:horizontal")
        length = max(1, int(round(w * fraction)))
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (length, 1))
        lines_mask |= cv2.morphologyEx(binary, cv2.MORPH_OPEN, kernel)
    if orientation in (LineOrientation.VERTICAL, LineOrientation.BOTH):
        token.raise_if_cancelled("lines:vertical")
        length = max(1, int(round(h * fraction)))
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (1, length))
        lines_mask |= cv2.morphologyEx(binary, cv2.MORPH_OPEN, kernel)

    if cv2.countNonZero(lines_mask) == 0:
        logger.debug("No long lines found")
        return to_working_layout(img)

    grow = max(1, int(line_width))
    lines_mask = cv2.dilate(lines_mask, cv2.getStructuringElement(cv2.MORPH_RECT, (grow, grow)))
    return _paint_white(img, lines_mask)
