from __future__ import annotations
from pathlib import Path
import os

MODELS_DIR_ENV = "POSEPROOF_MODELS_DIR"


def find_repo_root(start: Path | None = None) -> Path | None:
    """Walk upwards from start (or CWD) looking for pyproject.toml."""
    cur = (start or Path.cwd()).resolve()
    for _ in range(12):
        if (cur / "pyproject.toml").exists():
            return cur
        if cur.parent == cur:
            break
        cur = cur.parent
    return None


def default_models_dir(start: Path | None = None) -> Path:
    """Where pose model files live.

    ``$POSEPROOF_MODELS_DIR`` wins; inside a checkout it is
    ``inputs/models/mediapipe``; otherwise a per-user cache directory.
    """
    env = os.environ.get(MODELS_DIR_ENV)
    if env:
        return Path(env).expanduser()
    root = find_repo_root(start)
    if root is not None:
        return root / "inputs" / "models" / "mediapipe"
    return Path.home() / ".cache" / "poseproof" / "models"
