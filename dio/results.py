from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional


# converted: a smaller WebP was written by this run
# declined:  the WebP was not smaller, a zero-length marker was written
# existing:  the output was already there (earlier run or same-digest file)
# failed:    read/decode/encode/write error, file left alone
Status = Literal["converted", "declined", "existing", "failed"]


def savings(src_bytes: int, out_bytes: int) -> tuple[int, float]:
    """Bytes saved (floor 0) and that amount as a percent of src_bytes."""
    saved = max(0, src_bytes - out_bytes)
    if src_bytes <= 0:
        return saved, 0.0
    return saved, (saved / src_bytes) * 100.0


@dataclass(frozen=True)
class ProcessResult:
    """
    Output of processing a single source file.

    out_bytes is what the file contributes to the output total, which is
    the source size whenever no smaller artifact exists.
    """
    src_path: Path
    digest: Optional[str]  # None if the file could not be read
    out_path: Optional[Path]  # None on failure
    status: Status
    src_bytes: int
    out_bytes: int
    error: Optional[str] = None

    @property
    def saved_bytes(self) -> int:
        return savings(self.src_bytes, self.out_bytes)[0]

    @property
    def saved_percent(self) -> float:
        return savings(self.src_bytes, self.out_bytes)[1]
