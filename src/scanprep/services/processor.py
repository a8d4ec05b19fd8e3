"""
ScanPrep - Image Processing Backend

An image processor owns one current image, applies processor commands to it
and publishes every outcome to its subscribers: exactly one
``image_updated`` (PNG bytes) on success or one ``error_occurred``
(message) on failure, never both.

Backends are interchangeable behind the ``ImageProcessor`` protocol and are
obtained from ``ImageProcessorFactory``.
"""

import io
import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import asdict
from enum import Enum, auto
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import cv2
import numpy as np
from PIL import Image

from scanprep.config import DEFAULT_PROCESSOR_TYPE
from scanprep.constants import DEFAULT_JPEG_QUALITY
from scanprep.services.binarizer import binarize
from scanprep.services.cancellation import CancellationToken
from scanprep.services.channels import channel_count, to_gray, to_working_layout, validate_image
from scanprep.services.cleanup import (
    BorderMode,
    despeckle,
    remove_borders_auto,
    remove_borders_by_contrast,
    remove_borders_manual,
    remove_dots,
    remove_lines,
)
from scanprep.services.commands import (
    BordersConfig,
    ChannelsConfig,
    EnhanceConfig,
    EnhanceMethod,
    ProcessorCommand,
    PunchHolesConfig,
    build_config,
)
from scanprep.services.cropper import smart_crop
from scanprep.services.deskewer import deskew
from scanprep.services.enhancer import (
    adjust_brightness_contrast,
    adjust_color,
    apply_clahe,
    homomorphic_retinex,
    levels_and_gamma_8u,
)
from scanprep.services.punch_holes import remove_punch_holes
from scanprep.utils.exceptions import (
    BackendUnavailableError,
    ImageLoadError,
    InvalidArgumentError,
    OperationCancelledError,
    ScanPrepError,
)

logger = logging.getLogger(__name__)


class ImageFormat(Enum):
    PNG = "PNG"
    JPEG = "JPEG"
    BMP = "BMP"
    TIFF = "TIFF"


class TiffCompression(Enum):
    """TIFF compression schemes, mapped to Pillow's encoder names."""

    NONE = "raw"
    LZW = "tiff_lzw"
    DEFLATE = "tiff_adobe_deflate"
    PACKBITS = "packbits"
    CCITT_G3 = "group3"
    CCITT_G4 = "group4"
    JPEG = "jpeg"


# CCITT fax encodings only accept bilevel images
BILEVEL_COMPRESSIONS = (TiffCompression.CCITT_G3, TiffCompression.CCITT_G4)


class ImageProcessorType(Enum):
    OPENCV = auto()
    LEADTOOLS = auto()
    IMAGEMAGICK = auto()


# ── Notifications ──────────────────────────────────────────────────────


class Notifier:
    """A named list of subscriber callbacks.

    Subscribers are called in connection order. An exception raised by one
    subscriber is logged and does not stop delivery to the others.

    Usage:
        processor.image_updated.connect(on_image)
        processor.error_occurred.connect(on_error)
    """

    def __init__(self, name: str):
        self.name = name
        self._handlers: list[tuple[int, Callable[..., Any]]] = []
        self._next_id = 1
        self._lock = threading.Lock()

    def connect(self, callback: Callable[..., Any]) -> int:
        """Subscribe ``callback`` and return its handler id."""
        with self._lock:
            handler_id = self._next_id
            self._next_id += 1
            self._handlers.append((handler_id, callback))
        return handler_id

    def disconnect(self, handler: int | Callable[..., Any]) -> bool:
        """Remove a subscriber by handler id or by the callback itself.

        Returns:
            True if a subscriber was removed
        """
        with self._lock:
            for index, (handler_id, callback) in enumerate(self._handlers):
                if handler == handler_id or handler is callback:
                    del self._handlers[index]
                    return True
        return False

    def disconnect_all(self) -> None:
        with self._lock:
            self._handlers.clear()

    def emit(self, *args: Any) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for _, callback in handlers:
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Subscriber of '{self.name}' failed: {e}")

    def __len__(self) -> int:
        return len(self._handlers)


# ── Protocol ───────────────────────────────────────────────────────────


@runtime_checkable
class ImageProcessor(Protocol):
    """Capability surface shared by all processing backends."""

    image_updated: Notifier
    error_occurred: Notifier

    @property
    def current_image(self) -> np.ndarray | None: ...

    @current_image.setter
    def current_image(self, image: np.ndarray | None) -> None: ...

    def load(self, path: str | Path) -> bool: ...

    def update_cancellation_token(self, token: CancellationToken | None) -> None: ...

    def apply_command(
        self, command: ProcessorCommand, parameters: Mapping[str, Any] | None = None
    ) -> bool: ...

    def get_stream_for_saving(
        self,
        image_format: ImageFormat = ImageFormat.PNG,
        compression: TiffCompression = TiffCompression.NONE,
    ) -> io.BytesIO | None: ...


# ── OpenCV backend ─────────────────────────────────────────────────────


def encode_png(image: np.ndarray) -> bytes:
    ok, buffer = cv2.imencode(".png", image)
    if not ok:
        raise InvalidArgumentError("image", "PNG encoding failed")
    return buffer.tobytes()


def read_image(path: str | Path) -> np.ndarray:
    """Decode an image file into an 8-bit 1/3/4-channel array.

    16-bit images are scaled down to 8 bits. Paths with non-ASCII characters
    work because the file bytes are decoded in memory.

    Raises:
        ImageLoadError: Missing, unreadable or undecodable file
    """
    try:
        data = np.fromfile(str(path), dtype=np.uint8)
    except OSError as e:
        raise ImageLoadError(str(path), str(e)) from e

    image = cv2.imdecode(data, cv2.IMREAD_UNCHANGED) if data.size else None
    if image is None:
        raise ImageLoadError(str(path), "not a supported image format")

    if image.dtype == np.uint16:
        image = (image.astype(np.float32) / 257.0).round().astype(np.uint8)
    elif image.dtype != np.uint8:
        raise ImageLoadError(str(path), f"unsupported sample type {image.dtype}")

    if channel_count(image) == 2:
        # gray + alpha
        image = image[:, :, 0].copy()
    return image


class OpenCVImageProcessor:
    """Image processor backed by OpenCV.

    Command application is serialised with a lock; notifications are
    delivered after the lock is released so subscribers may call back into
    the processor.
    """

    def __init__(self, token: CancellationToken | None = None):
        self.image_updated = Notifier("image_updated")
        self.error_occurred = Notifier("error_occurred")
        self._lock = threading.Lock()
        self._image: np.ndarray | None = None
        self._token = token if token is not None else CancellationToken.none()

    @property
    def current_image(self) -> np.ndarray | None:
        return self._image

    @current_image.setter
    def current_image(self, image: np.ndarray | None) -> None:
        if image is not None:
            validate_image(image)
        with self._lock:
            self._image = image

    @property
    def cancellation_token(self) -> CancellationToken:
        return self._token

    def update_cancellation_token(self, token: CancellationToken | None) -> None:
        self._token = token if token is not None else CancellationToken.none()

    def load(self, path: str | Path) -> bool:
        """Load ``path`` as the current image and publish it.

        Returns:
            True on success; on failure an error is published instead
        """
        try:
            image = read_image(path)
            validate_image(image)
            png = encode_png(image)
        except (ScanPrepError, cv2.error) as e:
            logger.error(f"Failed to load {path}: {e}")
            self.error_occurred.emit(str(e))
            return False

        with self._lock:
            self._image = image
        logger.info(f"Loaded {path} ({image.shape[1]}x{image.shape[0]}, {channel_count(image)} ch)")
        self.image_updated.emit(png)
        return True

    def apply_command(
        self, command: ProcessorCommand, parameters: Mapping[str, Any] | None = None
    ) -> bool:
        """Apply ``command`` to the current image.

        Fires exactly one notification: ``image_updated`` with the PNG of the
        new image, or ``error_occurred`` with a message (no image, invalid
        input, cancellation, OpenCV failure).

        Returns:
            True if the current image was replaced
        """
        png = None
        message = None
        with self._lock:
            token = self._token
            if self._image is None or self._image.size == 0:
                message = "No image loaded"
            else:
                try:
                    token.raise_if_cancelled(f"command:{command.name}")
                    config = build_config(command, parameters)
                    result = self._run(command, config, self._image, token)
                    png = encode_png(result)
                    self._image = result
                except OperationCancelledError as e:
                    logger.info(f"{command.name} cancelled")
                    message = str(e)
                except (ScanPrepError, cv2.error) as e:
                    logger.error(f"{command.name} failed: {e}")
                    message = f"{command.name} failed: {e}"

        if png is None:
            self.error_occurred.emit(message)
            return False
        self.image_updated.emit(png)
        return True

    def _run(
        self,
        command: ProcessorCommand,
        config: Any,
        image: np.ndarray,
        token: CancellationToken,
    ) -> np.ndarray:
        logger.debug(f"Running {command.name} with {config}")
        if command == ProcessorCommand.DESKEW:
            return deskew(image, token)
        if command == ProcessorCommand.BINARIZE:
            return binarize(image, config.method, config)
        if command == ProcessorCommand.BORDERS_REMOVE:
            return self._remove_borders(config, image, token)
        if command == ProcessorCommand.DESPECKLE:
            return despeckle(token, image, **asdict(config))
        if command == ProcessorCommand.SMART_CROP:
            return smart_crop(token, image, config.margin_px, config.min_component_area_fraction)
        if command == ProcessorCommand.LINES_REMOVE:
            return remove_lines(
                token, image, config.orientation, config.line_width, config.min_length_fraction
            )
        if command == ProcessorCommand.DOTS_REMOVE:
            return remove_dots(token, image, config.max_dot_area_px, config.min_circularity)
        if command == ProcessorCommand.PUNCH_HOLES_REMOVE:
            return self._remove_punch_holes(config, image, token)
        if command == ProcessorCommand.CHANNELS_CORRECTION:
            return self._correct_channels(config, image, token)
        if command == ProcessorCommand.ENHANCE:
            return self._enhance(config, image, token)
        raise InvalidArgumentError("command", f"unsupported command {command}")

    @staticmethod
    def _remove_borders(
        config: BordersConfig, image: np.ndarray, token: CancellationToken
    ) -> np.ndarray:
        if config.mode == BorderMode.BY_CONTRAST:
            return remove_borders_by_contrast(
                token,
                image,
                config.thresh_fraction,
                config.contrast_threshold,
                config.central_sample,
                config.max_remove_fraction,
            )
        if config.mode == BorderMode.MANUAL:
            return remove_borders_manual(
                token,
                image,
                config.manual_top,
                config.manual_bottom,
                config.manual_left,
                config.manual_right,
                config.cut_mode,
            )
        return remove_borders_auto(
            token, image, config.edge_margin, config.max_area_fraction, config.dilate_iterations
        )

    @staticmethod
    def _remove_punch_holes(
        config: PunchHolesConfig, image: np.ndarray, token: CancellationToken
    ) -> np.ndarray:
        offsets = config.offsets()
        return remove_punch_holes(
            token,
            image,
            config.specs(),
            config.roundness,
            config.fill_ratio,
            offsets.top,
            offsets.bottom,
            offsets.left,
            offsets.right,
        )

    @staticmethod
    def _correct_channels(
        config: ChannelsConfig, image: np.ndarray, token: CancellationToken
    ) -> np.ndarray:
        result = image
        if config.changes_color:
            result = adjust_color(
                token, result, config.red, config.green, config.blue, config.hue, config.saturation
            )
        if config.changes_tone:
            result = adjust_brightness_contrast(token, result, config.brightness, config.contrast)
        if result is image:
            return to_working_layout(image)
        return result

    @staticmethod
    def _enhance(config: EnhanceConfig, image: np.ndarray, token: CancellationToken) -> np.ndarray:
        if config.method == EnhanceMethod.RETINEX:
            return homomorphic_retinex(
                token,
                image,
                output_mode=config.output_mode,
                use_lab_l=config.use_lab_l,
                robust_normalize=config.robust_normalize,
                sigma=config.sigma,
            )
        if config.method == EnhanceMethod.LEVELS:
            return levels_and_gamma_8u(
                to_gray(image), token, config.black_pct, config.white_pct, config.gamma
            )
        return apply_clahe(token, image, config.clip_limit, config.grid_size)

    def get_stream_for_saving(
        self,
        image_format: ImageFormat = ImageFormat.PNG,
        compression: TiffCompression = TiffCompression.NONE,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
    ) -> io.BytesIO | None:
        """Encode the current image for saving.

        Args:
            image_format: Container format
            compression: TIFF compression (ignored for other formats)
            jpeg_quality: Quality for JPEG output and JPEG-in-TIFF

        Returns:
            Stream positioned at 0, or None when there is no current image or
            encoding failed (an error is published in that case)
        """
        with self._lock:
            image = self._image
        if image is None or image.size == 0:
            return None

        try:
            stream = encode_for_saving(image, image_format, compression, jpeg_quality)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to encode image as {image_format.value}: {e}")
            self.error_occurred.emit(f"Failed to encode image as {image_format.value}: {e}")
            return None
        return stream


def to_pil(image: np.ndarray) -> Image.Image:
    """Convert an OpenCV array (gray, BGR or BGRA) to a Pillow image."""
    channels = channel_count(image)
    if channels == 1:
        return Image.fromarray(image.reshape(image.shape[:2]))
    if channels == 4:
        return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA))
    return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))


def encode_for_saving(
    image: np.ndarray,
    image_format: ImageFormat,
    compression: TiffCompression = TiffCompression.NONE,
    jpeg_quality: int = DEFAULT_JPEG_QUALITY,
) -> io.BytesIO:
    """Encode ``image`` with Pillow and return a rewound stream."""
    pil_img = to_pil(image)
    buf = io.BytesIO()

    if image_format == ImageFormat.JPEG:
        if pil_img.mode == "RGBA":
            pil_img = pil_img.convert("RGB")
        pil_img.save(buf, format="JPEG", quality=jpeg_quality, optimize=True)
    elif image_format == ImageFormat.TIFF:
        if compression in BILEVEL_COMPRESSIONS:
            pil_img = pil_img.convert("L").convert("1", dither=Image.Dither.NONE)
        elif compression == TiffCompression.JPEG and pil_img.mode == "RGBA":
            pil_img = pil_img.convert("RGB")
        options = {"compression": compression.value}
        if compression == TiffCompression.JPEG:
            options["quality"] = jpeg_quality
        pil_img.save(buf, format="TIFF", **options)
    else:
        pil_img.save(buf, format=image_format.value)

    buf.seek(0)
    return buf


# ── Factory ────────────────────────────────────────────────────────────


class ImageProcessorFactory:
    """Creates processing backends by type."""

    @staticmethod
    def create_processor(
        processor_type: ImageProcessorType | str = DEFAULT_PROCESSOR_TYPE,
        token: CancellationToken | None = None,
    ) -> ImageProcessor:
        """Create a new processor.

        Args:
            processor_type: Backend kind, as enum member or member name
            token: Initial cancellation token

        Raises:
            BackendUnavailableError: Unknown backend, or one that needs an
                external SDK not shipped with ScanPrep
        """
        if isinstance(processor_type, str):
            try:
                processor_type = ImageProcessorType[processor_type.strip().upper()]
            except KeyError:
                raise BackendUnavailableError(processor_type, "unknown processor type") from None

        if processor_type == ImageProcessorType.OPENCV:
            return OpenCVImageProcessor(token)

        raise BackendUnavailableError(
            processor_type.name, "requires an external imaging SDK that is not bundled"
        )
