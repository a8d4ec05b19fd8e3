"""
Punch-hole removal.

Binder holes sit in bands along the page edges. For each search template
(circle or rectangle) the band is scanned for candidates of the expected
size; a candidate is accepted only when it contrasts with the paper around
it. Accepted holes are painted into a mask, the mask is feathered, and the
holes are repainted with Navier-Stokes inpainting so surrounding texture is
continued instead of flat-filled.

Ownership contract of ``remove_punch_holes``:

- ``None`` in, ``None`` out
- empty array in, the same object out
- anything else: a new array, never the input
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum, auto

import cv2
import numpy as np

from scanprep.constants import (
    PUNCH_BLUR_KERNEL,
    PUNCH_BLUR_SIGMA,
    PUNCH_DEFAULT_DIAMETER,
    PUNCH_FEATHER_KERNEL,
    PUNCH_FEATHER_THRESHOLD,
    PUNCH_HOUGH_PARAM1,
    PUNCH_MIN_CONTOUR_AREA,
    PUNCH_MIN_CONTRAST,
    PUNCH_MIN_INPAINT_RADIUS,
    PUNCH_RECT_BLOCK,
    PUNCH_RECT_C,
)
from scanprep.services.cancellation import CancellationToken, ensure_token
from scanprep.services.channels import (
    channel_count,
    to_bgr,
    to_gray,
    to_working_layout,
    validate_image,
)

logger = logging.getLogger(__name__)


class PunchShape(Enum):
    """Template shape. BOTH is expanded into a CIRCLE and a RECT spec."""

    CIRCLE = auto()
    RECT = auto()
    BOTH = auto()


@dataclass
class PunchSpec:
    """One search template.

    Attributes:
        shape: CIRCLE or RECT
        diameter: Expected circle diameter in pixels
        rect_size: Expected rectangle (width, height) in pixels
        density: >= 0.5 expects holes darker than the paper; below that
            either polarity is accepted
        size_tolerance_fraction: Accepted oversize (0.2 = up to +20%);
            candidates smaller than expected are rejected
    """

    shape: PunchShape = PunchShape.CIRCLE
    diameter: int = 20
    rect_size: tuple[int, int] = (20, 20)
    density: float = 0.5
    size_tolerance_fraction: float = 0.4


@dataclass
class Offsets:
    """Band widths, in pixels, measured from each page edge."""

    top: int = 0
    bottom: int = 0
    left: int = 0
    right: int = 0


@dataclass
class _SearchState:
    gray: np.ndarray
    search_mask: np.ndarray
    holes_mask: np.ndarray
    found: int = 0
    rejected: list[str] = field(default_factory=list)


def expand_specs(specs: list[PunchSpec]) -> list[PunchSpec]:
    """Replace every BOTH spec with one CIRCLE and one RECT spec of the same sizes."""
    expanded: list[PunchSpec] = []
    for spec in specs:
        if spec.shape == PunchShape.BOTH:
            for shape in (PunchShape.CIRCLE, PunchShape.RECT):
                expanded.append(
                    PunchSpec(
                        shape=shape,
                        diameter=spec.diameter,
                        rect_size=spec.rect_size,
                        density=spec.density,
                        size_tolerance_fraction=spec.size_tolerance_fraction,
                    )
                )
        else:
            expanded.append(spec)
    return expanded


def build_search_mask(shape: tuple[int, int], offsets: Offsets) -> np.ndarray:
    """Mask of the edge bands where holes are searched.

    Horizontal bands skip the left/right offset columns and vertical bands
    skip the top/bottom offset rows; the mask is then dilated by 3x3.
    """
    h, w = shape
    mask = np.zeros((h, w), dtype=np.uint8)

    inner_w = w - offsets.left - offsets.right
    inner_h = h - offsets.top - offsets.bottom
    if offsets.top > 0 and inner_w > 0:
        x0 = max(0, offsets.left)
        mask[0 : min(offsets.top, h), x0 : x0 + inner_w] = 255
    if offsets.bottom > 0 and inner_w > 0:
        x0 = max(0, offsets.left)
        mask[max(0, h - offsets.bottom) : h, x0 : x0 + inner_w] = 255
    if offsets.left > 0 and inner_h > 0:
        y0 = max(0, offsets.top)
        mask[y0 : y0 + inner_h, 0 : min(offsets.left, w)] = 255
    if offsets.right > 0 and inner_h > 0:
        y0 = max(0, offsets.top)
        mask[y0 : y0 + inner_h, max(0, w - offsets.right) : w] = 255

    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))
    return cv2.dilate(mask, kernel)


def _density_ok(density: float, contrast: float) -> bool:
    if density >= 0.5:
        return contrast > PUNCH_MIN_CONTRAST
    return abs(contrast) > PUNCH_MIN_CONTRAST


def _find_circles(
    token: CancellationToken, state: _SearchState, spec: PunchSpec, roundness: float
) -> None:
    masked = cv2.bitwise_and(state.gray, state.gray, mask=state.search_mask)
    if cv2.countNonZero(masked) == 0:
        logger.debug("Circle search skipped: search band holds no signal")
        return

    radius = int(spec.diameter / 2.0)
    min_r = max(1, radius)
    max_r = max(min_r, int(math.ceil(radius * (1.0 + spec.size_tolerance_fraction))))
    min_dist = max(10.0, radius * 2.0)

    try:
        circles = cv2.HoughCircles(
            masked,
            cv2.HOUGH_GRADIENT_ALT,
            dp=1,
            minDist=min_dist,
            param1=PUNCH_HOUGH_PARAM1,
            param2=roundness,
            minRadius=min_r,
            maxRadius=max_r,
        )
    except cv2.error as e:
        logger.warning(f"Circle Hough transform failed: {e}")
        return
    if circles is None:
        return

    h, w = state.gray.shape
    for cx, cy, r in circles.reshape(-1, 3):
        token.raise_if_cancelled("punch:circle-candidate")
        center = (int(cx), int(cy))
        if not (0 <= center[0] < w and 0 <= center[1] < h):
            continue
        if state.search_mask[center[1], center[0]] == 0:
            continue
        r_found = int(round(float(r)))

        inner = np.zeros_like(state.gray)
        cv2.circle(inner, center, r_found, 255, -1)
        hole_mean = cv2.mean(state.gray, mask=inner)[0]

        ring = np.zeros_like(state.gray)
        cv2.circle(ring, center, min(w + h, r_found + 6), 255, -1)
        cv2.circle(ring, center, r_found + 3, 0, -1)
        paper_mean = cv2.mean(state.gray, mask=ring)[0]

        contrast = paper_mean - hole_mean
        if _density_ok(spec.density, contrast):
            cv2.circle(state.holes_mask, center, int(r_found * 1.1), 255, -1)
            state.found += 1
        else:
            state.rejected.append(f"circle@{center} contrast={contrast:.1f}")


def _find_rects(
    token: CancellationToken, state: _SearchState, spec: PunchSpec, fill_ratio: float
) -> None:
    masked = cv2.bitwise_and(state.gray, state.gray, mask=state.search_mask)

    token.raise_if_cancelled("punch:rect-threshold")
    thr = cv2.adaptiveThreshold(
        masked,
        255,
        cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
        cv2.THRESH_BINARY_INV,
        PUNCH_RECT_BLOCK,
        PUNCH_RECT_C,
    )
    contours, _ = cv2.findContours(thr, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

    exp_w, exp_h = spec.rect_size
    max_w = exp_w * (1.0 + spec.size_tolerance_fraction)
    max_h = exp_h * (1.0 + spec.size_tolerance_fraction)
    h, w = state.gray.shape

    for contour in contours:
        token.raise_if_cancelled("punch:rect-candidate")
        area = cv2.contourArea(contour)
        if area < PUNCH_MIN_CONTOUR_AREA:
            continue

        x, y, bw, bh = cv2.boundingRect(contour)
        # Only sizes between expected and expected * (1 + tolerance)
        if bw < exp_w or bh < exp_h or bw > max_w or bh > max_h:
            continue
        if area / float(bw * bh) < fill_ratio:
            continue

        cx, cy = x + bw // 2, y + bh // 2
        if state.search_mask[cy, cx] == 0:
            continue

        inner = np.zeros_like(state.gray)
        cv2.rectangle(inner, (x, y), (x + bw - 1, y + bh - 1), 255, -1)
        hole_mean = cv2.mean(state.gray, mask=inner)[0]

        bx, by = max(0, x - 4), max(0, y - 4)
        bx2, by2 = min(w, x + bw + 4), min(h, y + bh + 4)
        ring = np.zeros_like(state.gray)
        ring[by:by2, bx:bx2] = 255
        ring[y : y + bh, x : x + bw] = 0
        paper_mean = cv2.mean(state.gray, mask=ring)[0]

        contrast = paper_mean - hole_mean
        if _density_ok(spec.density, contrast):
            state.holes_mask[y : y + bh, x : x + bw] = 255
            state.found += 1
        else:
            state.rejected.append(f"rect@{(x, y)} contrast={contrast:.1f}")


def remove_punch_holes(
    token: CancellationToken | None,
    img: np.ndarray | None,
    specs: list[PunchSpec],
    roundness: float,
    fr: float,
    offset_top: int,
    offset_bottom: int,
    offset_left: int,
    offset_right: int,
) -> np.ndarray | None:
    """Detect punch holes near the page edges and inpaint them.

    Args:
        token: Cancellation token (None means never cancelled)
        img: 8-bit image with 1, 3 or 4 channels, or None
        specs: Search templates; BOTH specs are expanded
        roundness: Circle accumulator threshold (HOUGH_GRADIENT_ALT param2,
            a perfectness measure close to 1 for clean circles)
        fr: Minimum fill ratio (contour area / bounding box) for rectangles
        offset_top: Height of the top search band
        offset_bottom: Height of the bottom search band
        offset_left: Width of the left search band
        offset_right: Width of the right search band

    Returns:
        None for None input, the same object for an empty array, otherwise a
        new image: gray input gives gray output, colour input gives 3-channel
        BGR, also when nothing is found. With no specs at all the result is a
        plain copy that keeps the input layout.

    Raises:
        InvalidArgumentError: Unsupported dtype or channel count
        OperationCancelledError: Cancellation observed; no partial result
    """
    if img is None:
        return None
    if img.size == 0:
        return img

    token = ensure_token(token)
    token.raise_if_cancelled("punch:start")
    validate_image(img)

    specs = expand_specs(list(specs or []))
    if not specs:
        return img.copy()

    gray = to_gray(img)
    gray = cv2.GaussianBlur(
        gray, (PUNCH_BLUR_KERNEL, PUNCH_BLUR_KERNEL), PUNCH_BLUR_SIGMA, sigmaY=PUNCH_BLUR_SIGMA
    )

    offsets = Offsets(top=offset_top, bottom=offset_bottom, left=offset_left, right=offset_right)
    state = _SearchState(
        gray=gray,
        search_mask=build_search_mask(gray.shape, offsets),
        holes_mask=np.zeros_like(gray),
    )

    for spec in specs:
        token.raise_if_cancelled("punch:spec")
        if spec.shape == PunchShape.CIRCLE:
            _find_circles(token, state, spec, roundness)
        elif spec.shape == PunchShape.RECT:
            _find_rects(token, state, spec, fr)

    if state.rejected:
        logger.debug(f"Rejected punch-hole candidates: {', '.join(state.rejected)}")

    if cv2.countNonZero(state.holes_mask) == 0:
        logger.debug("No punch holes found")
        return to_working_layout(img)

    logger.info(f"Removing {state.found} punch hole(s)")
    feathered = cv2.GaussianBlur(state.holes_mask, (PUNCH_FEATHER_KERNEL, PUNCH_FEATHER_KERNEL), 0)
    _, feathered = cv2.threshold(feathered, PUNCH_FEATHER_THRESHOLD, 255, cv2.THRESH_BINARY)

    diameters = [s.diameter for s in specs if s.shape == PunchShape.CIRCLE]
    mean_diameter = float(np.mean(diameters)) if diameters else float(PUNCH_DEFAULT_DIAMETER)
    inpaint_radius = max(PUNCH_MIN_INPAINT_RADIUS, int(mean_diameter / 2.0))

    token.raise_if_cancelled("punch:inpaint")
    if channel_count(img) == 1:
        return cv2.inpaint(to_gray(img), feathered, inpaint_radius, cv2.INPAINT_NS)
    return cv2.inpaint(to_bgr(img), feathered, inpaint_radius, cv2.INPAINT_NS)
