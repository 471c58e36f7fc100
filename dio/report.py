from __future__ import annotations

from typing import List

from .batch import BatchSummary


SIZE_UNITS = ["B", "kB", "MB", "GB", "TB", "PB"]


def format_size(n: int) -> str:
    """Decimal (1000-based) human readable size, e.g. 1.50 MB."""
    size = float(max(0, n))
    i = 0
    while size >= 1000 and i < len(SIZE_UNITS) - 1:
        size /= 1000.0
        i += 1
    if i == 0:
        return f"{int(size)} {SIZE_UNITS[i]}"
    return f"{size:.2f} {SIZE_UNITS[i]}"


def format_statistics(summary: BatchSummary) -> List[str]:
    return [
        "--- Statistics ---",
        (
            f"Files:          {summary.total_files} "
            f"(converted {summary.converted}, declined {summary.declined}, "
            f"existing {summary.existing}, failed {summary.failed})"
        ),
        f"Original total: {format_size(summary.total_src_bytes)}",
        f"WebP total:     {format_size(summary.total_out_bytes)}",
        f"Bytes saved:    {format_size(summary.saved_bytes)} ({summary.saved_percent:.2f}%)",
    ]


def print_statistics(summary: BatchSummary) -> None:
    print()
    for line in format_statistics(summary):
        print(line)
