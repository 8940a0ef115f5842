"""Command line entry point for the NIST statistical test suite."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .app import NistCheckApp
from .checkpoint import always_continue, console_prompt, decline
from .errors import (
    ConfigurationError,
    InvalidInputError,
    MissingFileError,
)

EXIT_SUCCESS = 0
EXIT_MISSING_FILE = 2
EXIT_INVALID_CONFIG = 3
EXIT_TEST_FAILURE = 4
EXIT_ABORTED = 5
EXIT_UNEXPECTED_ERROR = 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nistcheck",
        description="Evaluate bit streams with the NIST SP 800-22 statistical test battery.",
    )
    parser.add_argument(
        "--input",
        "-i",
        type=Path,
        required=True,
        help="Path to the file containing the bits to evaluate.",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        help="Optional INI configuration file; without it every test runs with derived parameters.",
    )
    parser.add_argument(
        "--format",
        "-f",
        choices=("ascii", "binary"),
        help="Input encoding: '0'/'1' characters or raw bytes.",
    )
    parser.add_argument(
        "--stream-length",
        "-n",
        type=int,
        help="Number of bits per stream.",
    )
    parser.add_argument(
        "--streams",
        "-m",
        type=int,
        help="Number of consecutive streams to evaluate.",
    )
    parser.add_argument(
        "--report",
        "-r",
        type=Path,
        help="Optional path where a markdown report will be written.",
    )
    parser.add_argument(
        "--jobs",
        "-j",
        type=int,
        help="Run the tests following the frequency test on this many threads.",
    )
    answer = parser.add_mutually_exclusive_group()
    answer.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Continue without asking when the frequency test flags sequences.",
    )
    answer.add_argument(
        "--no-input",
        action="store_true",
        help="Stop without asking when the frequency test flags sequences.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Print provider details and progress information.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if args.yes:
        decide = always_continue
    elif args.no_input:
        decide = decline
    else:
        decide = console_prompt()

    app = NistCheckApp(max_workers=args.jobs)
    try:
        result = app.run(
            input_path=args.input,
            config_path=args.config,
            report_path=args.report,
            verbose=args.verbose,
            decide=decide,
            stream_length=args.stream_length,
            streams=args.streams,
            fmt=args.format,
        )
    except MissingFileError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_MISSING_FILE
    except (ConfigurationError, InvalidInputError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_INVALID_CONFIG
    except Exception as exc:  # pragma: no cover - defensive guard
        print(f"Unexpected error: {exc}", file=sys.stderr)
        return EXIT_UNEXPECTED_ERROR
    if result.aborted:
        return EXIT_ABORTED
    if result.errored:
        print("One or more tests failed to execute; see the summary above.", file=sys.stderr)
        return EXIT_TEST_FAILURE
    return EXIT_SUCCESS


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
