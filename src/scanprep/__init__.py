"""
ScanPrep - Python package for preparing scanned document pages

This package provides the pixel-processing core used before storage or OCR:
binarization, contrast and illumination enhancement, deskew, punch-hole
removal and page cleanup, plus a command-dispatch backend and a CLI.
"""

__version__ = "1.0.0"
__author__ = "ScanPrep Team"
__license__ = "GPL-3.0"


def main(argv: list[str] | None = None) -> int:
    """Run the command line interface.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Process exit code
    """
    from scanprep.cli import main as cli_main

    return cli_main(argv)
