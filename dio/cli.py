from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .batch import process_batch
from .report import print_statistics
from .results import ProcessResult
from .settings import ConvertSettings


LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def _bounded_int(low: int, high: int | None, name: str):
    def parse(text: str) -> int:
        try:
            v = int(text)
        except ValueError:
            raise argparse.ArgumentTypeError(f"{name} must be an integer")
        if v < low or (high is not None and v > high):
            bound = f"between {low} and {high}" if high is not None else f"at least {low}"
            raise argparse.ArgumentTypeError(f"{name} must be {bound}")
        return v

    return parse


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="dio",
        description="Optimize images to WebP with content-hash deduplication",
    )

    p.add_argument("--input", required=True, help="Input directory (scanned recursively)")
    p.add_argument("--output", required=True, help="Output directory for <digest>.webp files")
    p.add_argument(
        "--quality",
        type=_bounded_int(0, 100, "quality"),
        default=75,
        help="WebP quality (0-100), default 75",
    )

    # Encoder knobs
    p.add_argument(
        "--method",
        type=_bounded_int(0, 6, "method"),
        default=4,
        help="WebP method (0-6, higher = smaller but slower), default 4",
    )
    p.add_argument("--lossless", action="store_true", help="WebP lossless mode")

    p.add_argument(
        "--workers",
        type=_bounded_int(1, None, "workers"),
        default=None,
        help="Worker threads (default: CPU count)",
    )

    verbosity = p.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")

    return p


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.WARNING if quiet else (logging.DEBUG if verbose else logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)


def _print_progress(done: int, total: int, r: ProcessResult) -> None:
    line = f"[{done}/{total}] {r.status}: {r.src_path}"
    if r.error:
        line += f" ({r.error})"
    print(line)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose, args.quiet)

    input_dir = Path(args.input)
    if not input_dir.is_dir():
        print(f"error: input directory not found: {input_dir}", file=sys.stderr)
        return 1

    settings = ConvertSettings(
        input_dir=input_dir,
        output_dir=Path(args.output),
        quality=int(args.quality),
        webp_method=int(args.method),
        webp_lossless=bool(args.lossless),
        workers=args.workers,
    )

    try:
        _, summary = process_batch(settings, progress_callback=_print_progress)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted, pending files were not processed.", file=sys.stderr)
        return 130

    print_statistics(summary)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
