from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class ConvertSettings:
    """
    All user-configurable knobs for a dedup-and-convert run.

    Pure data: range checks live in engine.validate_settings so the CLI
    and library callers get the same errors.
    """

    # ----- Paths -----
    input_dir: Path
    output_dir: Path

    # ----- WebP encoding -----
    quality: int = 75  # 0-100
    webp_method: int = 4  # 0-6, higher = smaller but slower
    webp_lossless: bool = False

    # ----- Concurrency -----
    # None means os.cpu_count()
    workers: Optional[int] = None
