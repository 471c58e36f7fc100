from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional
import logging
import os
import threading

from .engine import process_file, validate_settings
from .results import ProcessResult, savings
from .settings import ConvertSettings
from .shared import DigestLocks, RunTotals


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, ProcessResult], None]


@dataclass(frozen=True)
class BatchSummary:
    total_files: int
    converted: int
    declined: int
    existing: int
    failed: int
    total_src_bytes: int
    total_out_bytes: int

    @property
    def saved_bytes(self) -> int:
        return savings(self.total_src_bytes, self.total_out_bytes)[0]

    @property
    def saved_percent(self) -> float:
        return savings(self.total_src_bytes, self.total_out_bytes)[1]


def iter_files(root: Path, exclude_dir: Optional[Path] = None) -> Iterable[Path]:
    """
    Yield every regular file under root, recursively, in sorted order.

    exclude_dir:
        If provided, any files inside this directory will be skipped.
        (Prevents hashing our own outputs when output_dir is inside root.)
    """
    exclude_resolved = exclude_dir.resolve() if exclude_dir else None

    for f in sorted(Path(root).rglob("*")):
        if not f.is_file():
            continue
        if exclude_resolved and f.resolve().is_relative_to(exclude_resolved):
            continue
        yield f


def process_batch(
    settings: ConvertSettings,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> tuple[List[ProcessResult], BatchSummary]:
    """
    Run the whole walk -> hash -> convert pipeline over settings.input_dir.

    Raises ValueError for bad settings and OSError when the output
    directory cannot be created. Everything that goes wrong with a single
    file is reported in its ProcessResult instead.
    """
    validate_settings(settings)

    output_dir = Path(settings.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    files = list(iter_files(Path(settings.input_dir), exclude_dir=output_dir))
    total = len(files)
    workers = settings.workers or os.cpu_count() or 1
    logger.info("Found %d files in %s, using %d workers", total, settings.input_dir, workers)

    totals = RunTotals()
    locks = DigestLocks()

    def work(path: Path) -> ProcessResult:
        r = process_file(path, settings, locks)
        totals.add(r.src_bytes, r.out_bytes)
        return r

    results: List[ProcessResult] = []
    with ThreadPoolExecutor(max_workers=workers) as ex:
        future_map = {ex.submit(work, p): p for p in files}
        try:
            for done, fut in enumerate(as_completed(future_map), start=1):
                if cancel_event and cancel_event.is_set():
                    # Running futures finish, pending ones are dropped
                    _cancel_pending(future_map)
                    break

                r = fut.result()
                results.append(r)

                if progress_callback:
                    progress_callback(done, total, r)
        except KeyboardInterrupt:
            _cancel_pending(future_map)
            raise

    # Collect whatever finished after a cancel so totals and results agree.
    seen = {id(r) for r in results}
    for fut in future_map:
        if fut.done() and not fut.cancelled():
            r = fut.result()
            if id(r) not in seen:
                results.append(r)

    results.sort(key=lambda r: str(r.src_path))
    summary = _summarize(results, totals)
    return results, summary


def _cancel_pending(futures: Iterable[Future]) -> None:
    for fut in futures:
        fut.cancel()


def _summarize(results: List[ProcessResult], totals: RunTotals) -> BatchSummary:
    counts = {"converted": 0, "declined": 0, "existing": 0, "failed": 0}
    for r in results:
        counts[r.status] += 1

    total_src, total_out = totals.snapshot()

    return BatchSummary(
        total_files=len(results),
        converted=counts["converted"],
        declined=counts["declined"],
        existing=counts["existing"],
        failed=counts["failed"],
        total_src_bytes=total_src,
        total_out_bytes=total_out,
    )
