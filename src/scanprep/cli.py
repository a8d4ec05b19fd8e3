#!/usr/bin/env python3
"""
ScanPrep CLI - scanned page cleanup from the terminal.

Usage:
    python -m scanprep <command> input -o output [-p key=value ...]

Commands:
    deskew       Straighten a skewed page
    binarize     Convert to black and white (threshold, adaptive, sauvola)
    clahe        Local contrast equalization
    retinex      Uneven illumination correction
    levels       Percentile levels and gamma (grayscale output)
    punch-holes  Remove binder punch holes near the page edges
    borders      Remove dark scanner borders
    despeckle    Remove specks while keeping punctuation
    dots         Remove small round dots
    lines        Remove long ruled lines
    crop         Crop the page to its content
    channels     Colour, brightness and contrast correction

Examples:
    scanprep deskew scan.png -o straight.png
    scanprep binarize scan.png -o bw.tif -p method=sauvola --compression ccitt_g4
    scanprep punch-holes scan.jpg -o clean.jpg -p punchShape=Both -p leftOffset=150
    scanprep borders scan.png -o clean.png -p mode="By Contrast"
"""

import argparse
import logging
import sys
from pathlib import Path

from scanprep.config import APP_DESCRIPTION, APP_VERSION
from scanprep.services.commands import ProcessorCommand
from scanprep.services.processor import ImageFormat, ImageProcessorFactory, TiffCompression
from scanprep.utils.i18n import _
from scanprep.utils.logger import setup_logger

# ---------------------------------------------------------------------------
# Sub-command table
# ---------------------------------------------------------------------------

# name -> (help, command, preset parameters)
SUBCOMMANDS: dict[str, tuple[str, ProcessorCommand, dict[str, str]]] = {
    "deskew": (_("Straighten a skewed page"), ProcessorCommand.DESKEW, {}),
    "binarize": (_("Convert to black and white"), ProcessorCommand.BINARIZE, {}),
    "clahe": (_("Local contrast equalization"), ProcessorCommand.ENHANCE, {"method": "Clahe"}),
    "retinex": (
        _("Uneven illumination correction"),
        ProcessorCommand.ENHANCE,
        {"method": "Retinex"},
    ),
    "levels": (_("Percentile levels and gamma"), ProcessorCommand.ENHANCE, {"method": "Levels"}),
    "punch-holes": (
        _("Remove binder punch holes"),
        ProcessorCommand.PUNCH_HOLES_REMOVE,
        {},
    ),
    "borders": (_("Remove dark scanner borders"), ProcessorCommand.BORDERS_REMOVE, {}),
    "despeckle": (_("Remove specks"), ProcessorCommand.DESPECKLE, {}),
    "dots": (_("Remove small round dots"), ProcessorCommand.DOTS_REMOVE, {}),
    "lines": (_("Remove long ruled lines"), ProcessorCommand.LINES_REMOVE, {}),
    "crop": (_("Crop the page to its content"), ProcessorCommand.SMART_CROP, {}),
    "channels": (
        _("Colour, brightness and contrast correction"),
        ProcessorCommand.CHANNELS_CORRECTION,
        {},
    ),
}

SUFFIX_FORMATS = {
    ".png": ImageFormat.PNG,
    ".jpg": ImageFormat.JPEG,
    ".jpeg": ImageFormat.JPEG,
    ".bmp": ImageFormat.BMP,
    ".tif": ImageFormat.TIFF,
    ".tiff": ImageFormat.TIFF,
}


def _parse_param(text: str) -> tuple[str, str]:
    """Parse one ``key=value`` parameter."""
    key, sep, value = text.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(
            f"Invalid parameter '{text}'. Use key=value, e.g. blockSize=31."
        )
    return key.strip(), value.strip()


def _resolve_format(args) -> ImageFormat:
    if args.format:
        return ImageFormat[args.format.upper()]
    return SUFFIX_FORMATS.get(args.output.suffix.lower(), ImageFormat.PNG)


# ---------------------------------------------------------------------------
# Argument parser construction
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with subcommands."""
    p = argparse.ArgumentParser(
        prog="scanprep",
        description=APP_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("-v", "--verbose", action="store_true", help=_("Verbose logging (DEBUG)"))
    p.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")

    sub = p.add_subparsers(dest="command", help=_("Available commands"))

    for name, (help_text, _command, _preset) in SUBCOMMANDS.items():
        cmd_p = sub.add_parser(name, help=help_text)
        cmd_p.add_argument("input", type=Path, help=_("Input image file"))
        cmd_p.add_argument("-o", "--output", type=Path, required=True, help=_("Output image file"))
        cmd_p.add_argument(
            "-p",
            "--param",
            dest="params",
            type=_parse_param,
            action="append",
            default=[],
            metavar="KEY=VALUE",
            help=_("Command parameter (repeatable), e.g. -p blockSize=31"),
        )
        cmd_p.add_argument(
            "--format",
            choices=[f.name.lower() for f in ImageFormat],
            default=None,
            help=_("Output format. Default: from the output file extension."),
        )
        cmd_p.add_argument(
            "--compression",
            choices=[c.name.lower() for c in TiffCompression],
            default="none",
            help=_("TIFF compression (default: none)"),
        )

    return p


# ---------------------------------------------------------------------------
# Command handler
# ---------------------------------------------------------------------------


def _cmd_process(args, logger) -> int:
    """Load, apply one processor command and save."""
    _help, command, preset = SUBCOMMANDS[args.command]
    parameters = {**preset, **dict(args.params)}

    processor = ImageProcessorFactory.create_processor()
    errors: list[str] = []
    processor.error_occurred.connect(errors.append)

    if not processor.load(args.input) or not processor.apply_command(command, parameters):
        print(f"Error: {errors[-1] if errors else 'processing failed'}", file=sys.stderr)
        return 1

    image_format = _resolve_format(args)
    compression = TiffCompression[args.compression.upper()]
    stream = processor.get_stream_for_saving(image_format, compression)
    if stream is None:
        print(f"Error: {errors[-1] if errors else 'nothing to save'}", file=sys.stderr)
        return 1

    try:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_bytes(stream.getvalue())
    except OSError as e:
        print(f"Error: cannot write {args.output}: {e}", file=sys.stderr)
        return 1

    logger.debug(f"{command.name} parameters: {parameters}")
    print(f"{args.command}: {args.input} → {args.output}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    # Configure logging
    setup_logger(logging.DEBUG if args.verbose else logging.WARNING)
    logger = logging.getLogger("scanprep.cli")

    if not args.input.exists():
        print(f"Error: {args.input} not found", file=sys.stderr)
        return 1

    return _cmd_process(args, logger)


if __name__ == "__main__":
    sys.exit(main())
