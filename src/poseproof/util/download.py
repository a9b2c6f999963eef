from __future__ import annotations

from pathlib import Path
import logging
import os
import time
import urllib.request

logger = logging.getLogger(__name__)


def fetch_model(url: str, dst: Path, *, poll_seconds: float = 0.25, timeout_seconds: float = 120.0) -> Path:
    """Return dst, downloading url into it first if it is missing or empty.

    Concurrent callers coordinate through a sibling ``.lock`` directory; only
    the holder downloads, the others wait for the file to appear.
    """
    dst.parent.mkdir(parents=True, exist_ok=True)
    if dst.exists() and dst.stat().st_size > 0:
        return dst

    lock_dir = dst.with_suffix(dst.suffix + ".lock")
    deadline = time.monotonic() + timeout_seconds
    while True:
        try:
            lock_dir.mkdir()
            break
        except FileExistsError:
            if dst.exists() and dst.stat().st_size > 0:
                return dst
            if time.monotonic() > deadline:
                raise TimeoutError(f"Timed out waiting for model lock: {lock_dir}")
            time.sleep(poll_seconds)

    try:
        if dst.exists() and dst.stat().st_size > 0:
            return dst

        logger.info("Downloading pose model %s -> %s", url, dst)
        part = dst.with_suffix(dst.suffix + f".{os.getpid()}.part")
        if part.exists():
            part.unlink()
        try:
            with urllib.request.urlopen(url) as r, open(part, "wb") as f:
                f.write(r.read())
            if part.stat().st_size == 0:
                raise RuntimeError(f"Model download produced an empty file: {url}")
            os.replace(part, dst)
        except Exception:
            part.unlink(missing_ok=True)
            raise
        logger.info("Pose model ready (%d bytes)", dst.stat().st_size)
        return dst
    finally:
        try:
            lock_dir.rmdir()
        except OSError:
            logger.warning("Could not remove model lock %s", lock_dir)
