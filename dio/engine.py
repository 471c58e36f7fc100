from __future__ import annotations

from contextlib import nullcontext
from pathlib import Path
from typing import Optional
import hashlib
import io
import logging
import os
import tempfile

from PIL import Image

from .results import ProcessResult
from .settings import ConvertSettings
from .shared import DigestLocks


logger = logging.getLogger(__name__)

# BLAKE2b-256 -> 64 hex chars per output name
DIGEST_SIZE = 32

# Grayscale modes map straight to their colour equivalents.
GRAY_TO_COLOR = {
    "1": "RGB",
    "L": "RGB",
    "LA": "RGBA",
}

OUTPUT_EXTENSION = "webp"


def content_digest(data: bytes) -> str:
    return hashlib.blake2b(data, digest_size=DIGEST_SIZE).hexdigest()


def output_path_for(digest: str, s: ConvertSettings) -> Path:
    return Path(s.output_dir) / f"{digest}.{OUTPUT_EXTENSION}"


def validate_settings(s: ConvertSettings) -> None:
    if not 0 <= s.quality <= 100:
        raise ValueError(f"quality must be between 0 and 100, got {s.quality}")
    if not 0 <= s.webp_method <= 6:
        raise ValueError(f"webp_method must be between 0 and 6, got {s.webp_method}")
    if s.workers is not None and s.workers < 1:
        raise ValueError(f"workers must be at least 1, got {s.workers}")


def process_file(
    src_path: Path,
    s: ConvertSettings,
    locks: Optional[DigestLocks] = None,
) -> ProcessResult:
    """
    Hash one file and make sure its <digest>.webp exists.

    Per-file problems never raise: they are logged and come back as a
    "failed" result whose bytes count the same on both sides of the totals.
    When locks is given, check-exists and write happen under the digest's
    lock so identical files are encoded only once.
    """
    src_path = Path(src_path)
    validate_settings(s)

    try:
        data = src_path.read_bytes()
    except OSError as exc:
        logger.warning("Failed to read %s: %s", src_path, exc)
        return _failed(src_path, None, _file_size(src_path), f"read: {exc}")

    digest = content_digest(data)
    out_path = output_path_for(digest, s)
    logger.debug("%s -> %s", src_path, digest)

    guard = locks.lock_for(digest) if locks is not None else nullcontext()
    with guard:
        if out_path.exists():
            return _count_existing(src_path, digest, out_path, len(data))
        return _convert(src_path, digest, out_path, data, s)


def normalize_mode(im: Image.Image) -> Image.Image:
    """Bring grayscale/palette images to RGB or RGBA before encoding."""
    if im.mode in ("RGB", "RGBA"):
        return im

    target = GRAY_TO_COLOR.get(im.mode)
    if target is None:
        target = "RGBA" if _has_alpha(im) else "RGB"
    return im.convert(target)


def _count_existing(src_path: Path, digest: str, out_path: Path, src_bytes: int) -> ProcessResult:
    try:
        out_size = out_path.stat().st_size
    except OSError as exc:
        logger.warning("Failed to stat %s: %s", out_path, exc)
        return _failed(src_path, digest, src_bytes, f"stat: {exc}")

    # Zero length = marker, the source was kept as-is.
    counted = src_bytes if out_size == 0 else out_size
    logger.debug("Already processed %s (%s)", src_path, out_path.name)

    return ProcessResult(
        src_path=src_path,
        digest=digest,
        out_path=out_path,
        status="existing",
        src_bytes=src_bytes,
        out_bytes=counted,
    )


def _convert(src_path: Path, digest: str, out_path: Path, data: bytes, s: ConvertSettings) -> ProcessResult:
    src_bytes = len(data)

    try:
        im = _decode(data)
    except Exception as exc:
        # Pillow plugins raise anything from OSError to NotImplementedError on corrupt input
        logger.warning("Failed to decode %s: %s", src_path, exc)
        return _failed(src_path, digest, src_bytes, f"decode: {exc}")

    try:
        encoded = _encode_webp(im, s)
    except Exception as exc:
        logger.warning("Failed to encode %s: %s", src_path, exc)
        return _failed(src_path, digest, src_bytes, f"encode: {exc}")

    if len(encoded) < src_bytes:
        payload = encoded
        status = "converted"
        out_bytes = len(encoded)
    else:
        logger.debug("Not smaller (%d >= %d), writing marker for %s", len(encoded), src_bytes, src_path)
        payload = b""
        status = "declined"
        out_bytes = src_bytes

    try:
        _write_atomic(out_path, payload)
    except OSError as exc:
        logger.warning("Failed to write %s: %s", out_path, exc)
        return _failed(src_path, digest, src_bytes, f"write: {exc}")

    return ProcessResult(
        src_path=src_path,
        digest=digest,
        out_path=out_path,
        status=status,
        src_bytes=src_bytes,
        out_bytes=out_bytes,
    )


def _decode(data: bytes) -> Image.Image:
    im = Image.open(io.BytesIO(data))
    im.load()
    return normalize_mode(im)


def _encode_webp(im: Image.Image, s: ConvertSettings) -> bytes:
    buf = io.BytesIO()
    # Pillow chooses encoder by format=..., there is no filename here
    im.save(buf, format="WEBP", **_build_save_kwargs(s))
    return buf.getvalue()


def _build_save_kwargs(s: ConvertSettings) -> dict:
    return {
        "quality": int(s.quality),
        "method": int(s.webp_method),
        "lossless": bool(s.webp_lossless),
    }


def _write_atomic(out_path: Path, payload: bytes) -> None:
    # Temp file next to the destination so the rename stays on one filesystem
    fd, tmp_name = tempfile.mkstemp(prefix="dio_", suffix=".tmp", dir=str(out_path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
        tmp_path.replace(out_path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def _failed(src_path: Path, digest: Optional[str], src_bytes: int, error: str) -> ProcessResult:
    return ProcessResult(
        src_path=src_path,
        digest=digest,
        out_path=None,
        status="failed",
        src_bytes=src_bytes,
        out_bytes=src_bytes,
        error=error,
    )


def _has_alpha(im: Image.Image) -> bool:
    if im.mode in ("RGBA", "LA", "PA", "RGBa", "La"):
        return True
    if im.mode == "P" and "transparency" in im.info:
        return True
    return False


def _file_size(p: Path) -> int:
    try:
        return p.stat().st_size
    except OSError:
        return 0
