"""
ScanPrep - Utils Package

Utility modules for the application.
"""

from scanprep.utils.exceptions import (
    BackendUnavailableError,
    ImageLoadError,
    InvalidArgumentError,
    InvalidStateError,
    OperationCancelledError,
    ScanPrepError,
)
from scanprep.utils.i18n import _
from scanprep.utils.params import get_bool_or_default, try_get_bool

__all__ = [
    "_",
    "ScanPrepError",
    "InvalidArgumentError",
    "InvalidStateError",
    "OperationCancelledError",
    "BackendUnavailableError",
    "ImageLoadError",
    "get_bool_or_default",
    "try_get_bool",
]
