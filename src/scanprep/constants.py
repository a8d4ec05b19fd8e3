"""
ScanPrep - Numeric Constants

Simple numeric constants with ZERO internal imports to avoid circular dependencies.
For application-level constants (names, logging), use config.py.
"""

from typing import Final

# ============================================================================
# Binarization
# ============================================================================

DEFAULT_THRESHOLD: Final[int] = 128
ADAPTIVE_BLOCK_DIVISOR: Final[int] = 30
ADAPTIVE_BLOCK_MIN: Final[int] = 3
ADAPTIVE_BLOCK_MAX: Final[int] = 201
DEFAULT_ADAPTIVE_C: Final[float] = 10.0
DEFAULT_MORPH_KERNEL: Final[int] = 3
DEFAULT_MORPH_ITERATIONS: Final[int] = 1

SAUVOLA_WINDOW: Final[int] = 25
SAUVOLA_K: Final[float] = 0.34
SAUVOLA_R: Final[float] = 180.0
SAUVOLA_CLAHE_CLIP: Final[float] = 12.0
SAUVOLA_CLAHE_GRID: Final[int] = 8

# ============================================================================
# Enhancement
# ============================================================================

CLAHE_CLIP_LIMIT: Final[float] = 4.0
CLAHE_GRID_SIZE: Final[int] = 8

RETINEX_SIGMA: Final[float] = 50.0
RETINEX_GAMMA_HIGH: Final[float] = 1.8
RETINEX_GAMMA_LOW: Final[float] = 0.6
RETINEX_EPS: Final[float] = 1e-6
RETINEX_P_LOW: Final[float] = 0.5
RETINEX_P_HIGH: Final[float] = 99.5
RETINEX_HIST_BINS: Final[int] = 2048
RETINEX_EXP_CLAMP: Final[float] = 4.0
RETINEX_FLAT_RANGE: Final[float] = 1e-12

LEVELS_BLACK_PCT: Final[float] = 1.0
LEVELS_WHITE_PCT: Final[float] = 95.0
LEVELS_GAMMA: Final[float] = 0.85
LEVELS_TARGET_WHITE: Final[int] = 255

# ============================================================================
# Deskew
# ============================================================================

DESKEW_CLOSE_KERNEL: Final[tuple[int, int]] = (15, 3)
DESKEW_RECROP_KERNEL: Final[tuple[int, int]] = (5, 3)
DESKEW_MIN_AREA_FRACTION: Final[float] = 0.001
DESKEW_CROP_MARGIN_PX: Final[int] = 10
DESKEW_FILL_VALUE: Final[int] = 255

# ============================================================================
# Punch-hole removal
# ============================================================================

PUNCH_BLUR_KERNEL: Final[int] = 9
PUNCH_BLUR_SIGMA: Final[float] = 2.0
PUNCH_HOUGH_PARAM1: Final[float] = 300.0
PUNCH_MIN_CONTRAST: Final[float] = 8.0
PUNCH_MIN_CONTOUR_AREA: Final[float] = 10.0
PUNCH_RECT_BLOCK: Final[int] = 11
PUNCH_RECT_C: Final[float] = 2.0
PUNCH_FEATHER_KERNEL: Final[int] = 15
PUNCH_FEATHER_THRESHOLD: Final[int] = 10
PUNCH_DEFAULT_DIAMETER: Final[int] = 10
PUNCH_MIN_INPAINT_RADIUS: Final[int] = 3

# ============================================================================
# Page Cleanup
# ============================================================================

BORDER_EDGE_MARGIN_PX: Final[int] = 2
BORDER_MAX_AREA_FRACTION: Final[float] = 0.5
BORDER_DILATE_ITERATIONS: Final[int] = 2
BORDER_THRESH_FRACTION: Final[float] = 0.6
BORDER_CONTRAST_THRESHOLD: Final[int] = 30
BORDER_CENTRAL_SAMPLE: Final[float] = 0.3
BORDER_MAX_REMOVE_FRACTION: Final[float] = 0.25

DESPECKLE_SMALL_AREA_PX: Final[int] = 64
DESPECKLE_AREA_MULTIPLIER: Final[float] = 0.25
DESPECKLE_MAX_DOT_HEIGHT_FRACTION: Final[float] = 0.35
DESPECKLE_PROXIMITY_FRACTION: Final[float] = 0.8
DESPECKLE_SQUARENESS_TOLERANCE: Final[float] = 0.6
DESPECKLE_DEFAULT_CHAR_HEIGHT: Final[int] = 20
DESPECKLE_ADAPTIVE_C: Final[float] = 14.0

DOTS_MAX_AREA_PX: Final[int] = 30
DOTS_MIN_CIRCULARITY: Final[float] = 0.6

LINES_MIN_LENGTH_FRACTION: Final[float] = 0.5
LINES_DEFAULT_WIDTH_PX: Final[int] = 3

CROP_MARGIN_PX: Final[int] = 20
CROP_MIN_COMPONENT_FRACTION: Final[float] = 0.0003
CROP_ANALYSIS_MAX_WIDTH: Final[int] = 1200
CROP_PRINTED_BLOCK: Final[int] = 31
CROP_HAND_BLOCK: Final[int] = 51
CROP_ADAPTIVE_C: Final[float] = 10.0

# ============================================================================
# Encoding
# ============================================================================

DEFAULT_JPEG_QUALITY: Final[int] = 90
