#!/usr/bin/env python3
"""
ScanPrep - Entry point for python -m scanprep

This module allows the package to be run as a module:
    python -m scanprep
"""

import sys

from scanprep import main

if __name__ == "__main__":
    sys.exit(main())
