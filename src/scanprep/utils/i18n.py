#!/usr/bin/env python3
"""
ScanPrep - Internationalization Module

This module initializes gettext for translatable CLI and log messages.
"""

import gettext
import os
import sys
from collections.abc import Callable

TEXT_DOMAIN = "scanprep"


def _dummy_translate(text: str) -> str:
    """Fallback translation function that returns the original text.

    Args:
        text: The text to translate.

    Returns:
        The original text unchanged.
    """
    return text


# Initialize _ with the fallback function
_: Callable[[str], str] = _dummy_translate

locale_dirs = [
    "/usr/share/locale",
    os.path.join(sys.prefix, "share", "locale"),
    os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "locale"),
]

# Own catalog only; the process default domain is never changed
for locale_dir in locale_dirs:
    if gettext.find(TEXT_DOMAIN, locale_dir):
        _ = gettext.translation(TEXT_DOMAIN, locale_dir, fallback=True).gettext
        break
