"""
ScanPrep - Services Package

Image algorithms, command configurations and the processing backend.
"""

from scanprep.services.cancellation import CancellationToken
from scanprep.services.commands import ProcessorCommand
from scanprep.services.processor import (
    ImageFormat,
    ImageProcessor,
    ImageProcessorFactory,
    ImageProcessorType,
    OpenCVImageProcessor,
    TiffCompression,
)

__all__ = [
    "CancellationToken",
    "ProcessorCommand",
    "ImageFormat",
    "ImageProcessor",
    "ImageProcessorFactory",
    "ImageProcessorType",
    "OpenCVImageProcessor",
    "TiffCompression",
]
