#!/usr/bin/env python3
"""
ScanPrep - Configuration Module

This module contains application-level constants: identity, logging
defaults and backend selection.
"""

import logging
from typing import Final

from scanprep.utils.i18n import _

# ============================================================================
# Application Constants
# ============================================================================

APP_NAME: Final[str] = "ScanPrep"
APP_VERSION: Final[str] = "1.0.0"
APP_DESCRIPTION: Final[str] = _("Clean up scanned document pages before storage or OCR")


# ============================================================================
# Backend Selection
# ============================================================================

# Name of the ImageProcessorType member used when none is requested
DEFAULT_PROCESSOR_TYPE: Final[str] = "OPENCV"


# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: int = logging.INFO
LOG_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT: Final[str] = "%H:%M:%S"
LOGGER_NAME: Final[str] = "scanprep"
