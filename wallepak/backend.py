"""The WALL-E archive backend and its command line."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Iterable
from pathlib import Path

from wallepak.classes import DEFAULT_VERSION_STRING
from wallepak.create import create as create_archive
from wallepak.extract import extract as extract_archive
from wallepak.manifest import Manifest
from wallepak.objects import split_object as split_object_file
from wallepak.options import Options
from wallepak.structures import DpcError, PrimaryHeader
from wallepak.validate import validate as validate_archive

DEFAULT_SOUND_SAMPLE_RATE = 22050


class _RaisingParser(argparse.ArgumentParser):
    """Argument parser that raises DpcError instead of exiting."""

    def error(self, message: str):  # type: ignore[override]
        raise DpcError(f"invalid backend arguments: {message}")


def _backend_parser() -> argparse.ArgumentParser:
    parser = _RaisingParser(prog="wall-e dpc backend", description="WALL-E", add_help=False)
    parser.add_argument(
        "-p",
        "--unoptimized-pool",
        action="store_true",
        help="Don't minify the pool manifest",
    )
    parser.add_argument("-n", "--no-pool", action="store_true", help="Don't use a pool")
    parser.add_argument(
        "-s", "--sound-sample-rate", help="Default sample rate to use for sounds"
    )
    parser.add_argument(
        "-T", "--effective-version-string", help="Version string to compare against"
    )
    return parser


def _sample_rate(text: str | None) -> int:
    if text is None:
        return DEFAULT_SOUND_SAMPLE_RATE
    digits = text[1:] if text.startswith("+") else text
    if not digits or not digits.isascii() or not digits.isdigit():
        return DEFAULT_SOUND_SAMPLE_RATE
    value = int(digits)
    return value if value <= 0xFFFFFFFF else DEFAULT_SOUND_SAMPLE_RATE


class WalleDpc:
    """Archive operations for WALL-E DPC files, configured by backend arguments."""

    def __init__(self, options: Options | None = None, custom_args: Iterable[str] | None = None):
        self.options = options if options is not None else Options()
        parsed = _backend_parser().parse_args([str(arg) for arg in (custom_args or [])])
        self.unoptimized_pool: bool = parsed.unoptimized_pool
        self.no_pool: bool = parsed.no_pool
        self.sound_sample_rate: int = _sample_rate(parsed.sound_sample_rate)
        self.effective_version_string: str = (
            parsed.effective_version_string
            if parsed.effective_version_string is not None
            else DEFAULT_VERSION_STRING
        )
        self.version: str = DEFAULT_VERSION_STRING

    def extract(self, input_path, output_path) -> Manifest | None:
        """Unpack a DPC file into a directory."""
        manifest = extract_archive(input_path, output_path, self.options)
        if manifest is not None:
            self.version = manifest.header.version_string
        return manifest

    def create(self, input_path, output_path) -> PrimaryHeader | None:
        """Pack an extracted directory into a DPC file."""
        header = create_archive(
            input_path,
            output_path,
            self.options,
            no_pool=self.no_pool,
            unoptimized_pool=self.unoptimized_pool,
        )
        if header is not None:
            self.version = header.version_string
        return header

    def validate(self, input_path, output_path):
        """Check a DPC file and write its layout as JSON."""
        return validate_archive(input_path, output_path, self.options)

    def split_object(self, input_path, output_path) -> tuple[Path, Path]:
        """Split an object file into class object and data files."""
        return split_object_file(input_path, output_path)


_COMMANDS = ("extract", "create", "validate", "split")


def _main_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wallepak",
        description="Extract, create and validate WALL-E DPC archives. "
        "Backend arguments follow a '--'.",
    )
    parser.add_argument("command", choices=_COMMANDS)
    parser.add_argument("input")
    parser.add_argument("output")
    parser.add_argument("-f", "--force", action="store_true", help="Overwrite outputs")
    parser.add_argument("-u", "--unsafe", action="store_true", help="Skip safety checks")
    parser.add_argument("-q", "--quiet", action="store_true", help="Print less")
    parser.add_argument("-l", "--lz", action="store_true", help="Use LZ (de)compression")
    parser.add_argument(
        "-O", "--optimization", action="store_true", help="Optimize the output"
    )
    parser.add_argument(
        "-r", "--recursive", action="store_true", help="Process object formats too"
    )
    return parser


def main(argv=None) -> int:
    """Run the command line; return the exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    if "--" in args:
        split_at = args.index("--")
        args, custom_args = args[:split_at], args[split_at + 1 :]
    else:
        custom_args = []
    parsed = _main_parser().parse_args(args)
    options = Options(
        is_force=parsed.force,
        is_unsafe=parsed.unsafe,
        is_quiet=parsed.quiet,
        is_lz=parsed.lz,
        is_optimization=parsed.optimization,
        is_recursive=parsed.recursive,
    )
    try:
        backend = WalleDpc(options, custom_args)
        operation = {
            "extract": backend.extract,
            "create": backend.create,
            "validate": backend.validate,
            "split": backend.split_object,
        }[parsed.command]
        operation(parsed.input, parsed.output)
    except (DpcError, OSError) as error:
        print(f"error: {error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())