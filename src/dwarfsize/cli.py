"""Console entry point: attribute a binary's code size and print it folded."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import IO, Mapping

from colored import attr, fg, stylize
from elftools.common.exceptions import DWARFError, ELFError

from dwarfsize.analysis import analyze
from dwarfsize.elf import open_debug_info
from dwarfsize.exceptions import DwarfSizeError
from dwarfsize.report import largest, total_size, write_folded
from dwarfsize.types import DwarfAnalysisOpts

LOG_FORMAT = "%(levelname)s:%(name)s:%(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dwarfsize",
        description=(
            "Attribute the code size of an ELF binary to source files and "
            "functions using its DWARF debugging information. Prints "
            "folded-stack lines suitable for flame-graph tools."
        ),
    )
    parser.add_argument("binary", help="ELF file with DWARF debugging information")
    parser.add_argument(
        "-o", "--output", help="write the folded lines here instead of stdout"
    )
    parser.add_argument("--prefix", help="label used as the first frame of every line")
    parser.add_argument(
        "--compilation-units",
        action="store_true",
        help="partition the report by compilation unit",
    )
    parser.add_argument(
        "--no-split-paths",
        dest="split_paths",
        action="store_false",
        help="keep each source directory as a single frame",
    )
    parser.add_argument(
        "--skip-unmapped",
        action="store_true",
        help="skip functions without code instead of failing",
    )
    parser.add_argument(
        "--sort", action="store_true", help="print the largest contributors first"
    )
    parser.add_argument(
        "--summary",
        type=int,
        default=0,
        metavar="N",
        help="print the N largest contributors to stderr",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="log progress (-v) or debugging details (-vv)",
    )
    return parser


def _log_level(verbosity: int) -> int:
    if verbosity >= 2:
        return logging.DEBUG
    if verbosity == 1:
        return logging.INFO
    return logging.WARNING


def print_summary(contributors: Mapping[str, int], limit: int, stream: IO[str]) -> None:
    """Print the *limit* largest contributors with their share of the total."""
    total = total_size(contributors)
    stream.write(stylize(f"Total: {total} bytes", attr("bold")) + "\n")
    for key, size in largest(contributors, limit):
        share = 100 if total == 0 else size / total * 100
        size_text = stylize(f"{size:>10}", fg("yellow"))
        stream.write(f"{size_text} {share:6.2f}%  {key}\n")


def main(argv: list[str] | None = None) -> int:
    """Run the analysis for the command-line arguments *argv*."""

    args = build_parser().parse_args(argv)
    logging.basicConfig(level=_log_level(args.verbose), format=LOG_FORMAT)

    opts = DwarfAnalysisOpts(
        prefix=args.prefix,
        compilation_units=args.compilation_units,
        split_paths=args.split_paths,
        skip_unmapped=args.skip_unmapped,
    )
    try:
        contributors = analyze(open_debug_info(args.binary), opts)
        if args.output:
            with open(args.output, "w", encoding="utf-8") as out:
                write_folded(contributors, out, sort=args.sort)
        else:
            write_folded(contributors, sys.stdout, sort=args.sort)
    except (DwarfSizeError, ELFError, DWARFError, OSError) as e:
        print(stylize(f"error: {e}", fg("red")), file=sys.stderr)
        return 1

    if args.summary:
        print_summary(contributors, args.summary, sys.stderr)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI passthrough only
    sys.exit(main())
