"""
Channel layout helpers.

Every algorithm accepts 8-bit images with 1, 3 (BGR) or 4 (BGRA) channels.
These helpers validate that contract and convert between the layouts an
algorithm works in, dropping alpha where present. They always return new
arrays.
"""

import logging

import cv2
import numpy as np

from scanprep.utils.exceptions import InvalidArgumentError, InvalidStateError

logger = logging.getLogger(__name__)

SUPPORTED_CHANNELS = (1, 3, 4)


def channel_count(img: np.ndarray) -> int:
    """Number of channels of an image array (2-D arrays count as 1)."""
    if img.ndim == 2:
        return 1
    if img.ndim == 3:
        return img.shape[2]
    return 0


def validate_image(img: np.ndarray | None, name: str = "image") -> np.ndarray:
    """Check that ``img`` is a uint8 array with 1, 3 or 4 channels.

    Args:
        img: Image to check
        name: Argument name used in error messages

    Returns:
        The image itself

    Raises:
        InvalidArgumentError: None, wrong dtype or unsupported channel count
    """
    if img is None:
        raise InvalidArgumentError(name, "image is required")
    if not isinstance(img, np.ndarray):
        raise InvalidArgumentError(name, f"expected numpy.ndarray, got {type(img).__name__}")
    if img.dtype != np.uint8:
        raise InvalidArgumentError(name, f"only 8-bit images are supported, got {img.dtype}")
    channels = channel_count(img)
    if channels not in SUPPORTED_CHANNELS:
        raise InvalidArgumentError(name, f"unsupported channel count {channels} (shape {img.shape})")
    return img


def require_content(img: np.ndarray | None, operation: str) -> np.ndarray:
    """Validate ``img`` and additionally reject empty images.

    Raises:
        InvalidArgumentError: See ``validate_image``
        InvalidStateError: The image has zero pixels
    """
    if img is None:
        raise InvalidArgumentError("image", "image is required")
    if isinstance(img, np.ndarray) and img.size == 0:
        raise InvalidStateError(operation)
    return validate_image(img)


def to_gray(img: np.ndarray) -> np.ndarray:
    """Convert a 1/3/4-channel image to a new single-channel image."""
    channels = channel_count(img)
    if channels == 1:
        return img.reshape(img.shape[:2]).copy()
    if channels == 3:
        return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    if channels == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
    raise InvalidArgumentError("image", f"unsupported channel count {channels}")


def to_bgr(img: np.ndarray) -> np.ndarray:
    """Convert a 1/3/4-channel image to a new 3-channel BGR image."""
    channels = channel_count(img)
    if channels == 1:
        return cv2.cvtColor(img.reshape(img.shape[:2]), cv2.COLOR_GRAY2BGR)
    if channels == 3:
        return img.copy()
    if channels == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2BGR)
    raise InvalidArgumentError("image", f"unsupported channel count {channels}")


def to_working_layout(img: np.ndarray) -> np.ndarray:
    """New copy as 2-D gray (1-channel input) or 3-channel BGR (colour input)."""
    if channel_count(img) == 1:
        return img.reshape(img.shape[:2]).copy()
    return to_bgr(img)
