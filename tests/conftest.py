import sys
import types
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = (ROOT / "src").resolve()

if SRC not in (Path(p).resolve() for p in sys.path):
    sys.path.insert(0, str(SRC))

from poseproof.schemas.landmarks import Landmark  # noqa: E402


def _filler() -> list[Landmark]:
    return [Landmark(x=0.5, y=0.5, z=0.0, visibility=0.3) for _ in range(33)]


@pytest.fixture
def before_landmarks() -> list[Landmark]:
    """Square 2048x2048 before photo."""
    lms = _filler()
    lms[0] = Landmark(x=0.50, y=0.15, visibility=0.99)   # nose
    lms[11] = Landmark(x=0.35, y=0.26, visibility=0.95)  # left shoulder
    lms[12] = Landmark(x=0.65, y=0.26, visibility=0.95)  # right shoulder
    lms[23] = Landmark(x=0.42, y=0.48, visibility=0.90)  # left hip
    lms[24] = Landmark(x=0.58, y=0.48, visibility=0.90)  # right hip
    return lms


@pytest.fixture
def after_landmarks() -> list[Landmark]:
    """1536x2048 (3:4) after photo."""
    lms = _filler()
    lms[0] = Landmark(x=0.50, y=0.13, visibility=0.99)
    lms[11] = Landmark(x=0.32, y=0.23, visibility=0.95)
    lms[12] = Landmark(x=0.68, y=0.23, visibility=0.95)
    lms[23] = Landmark(x=0.38, y=0.46, visibility=0.90)
    lms[24] = Landmark(x=0.62, y=0.46, visibility=0.90)
    return lms


@pytest.fixture
def make_landmarks():
    """Build a 33-entry set from {index: (x, y)} with full visibility; others hidden."""
    def _make(points: dict[int, tuple[float, float]], visibility: float = 1.0) -> list[Landmark | None]:
        lms: list[Landmark | None] = [None] * 33
        for i, (x, y) in points.items():
            lms[i] = Landmark(x=x, y=y, visibility=visibility)
        return lms
    return _make


class FakePoseLandmarker:
    """Stands in for mediapipe's PoseLandmarker; records calls."""

    def __init__(self, options):
        self.options = options
        self.images = []
        self.closed = False
        self.result = SimpleNamespace(pose_landmarks=[
            [SimpleNamespace(x=0.5, y=0.01 * i, z=0.0, visibility=0.9) for i in range(33)]
        ])
        self.error: Exception | None = None

    def detect(self, image):
        self.images.append(image)
        if self.error is not None:
            raise self.error
        return self.result

    def close(self):
        self.closed = True


@pytest.fixture
def fake_mediapipe(monkeypatch, tmp_path):
    """Install a minimal `mediapipe` module and skip the model download.

    Set ``state.create_error`` to make landmarker creation fail.
    ``state.result`` overrides what new landmarkers return from ``detect``.
    """
    state = SimpleNamespace(create_error=None, result=None, landmarkers=[], fetched=[])

    def create_from_options(options):
        if state.create_error is not None:
            raise state.create_error
        lm = FakePoseLandmarker(options)
        if state.result is not None:
            lm.result = state.result
        state.landmarkers.append(lm)
        return lm

    mp = types.ModuleType("mediapipe")
    mp.Image = lambda image_format, data: SimpleNamespace(image_format=image_format, data=data)
    mp.ImageFormat = SimpleNamespace(SRGB="srgb")
    mp.tasks = SimpleNamespace(
        BaseOptions=lambda model_asset_path: SimpleNamespace(model_asset_path=model_asset_path),
        vision=SimpleNamespace(
            PoseLandmarkerOptions=lambda **kw: SimpleNamespace(**kw),
            RunningMode=SimpleNamespace(IMAGE="image"),
            PoseLandmarker=SimpleNamespace(create_from_options=create_from_options),
        ),
    )
    monkeypatch.setitem(sys.modules, "mediapipe", mp)

    def fetch_model(url, dst):
        state.fetched.append((url, dst))
        return dst

    monkeypatch.setattr("poseproof.detectors.mediapipe_tasks_backend.fetch_model", fetch_model)
    monkeypatch.setenv("POSEPROOF_MODELS_DIR", str(tmp_path / "models"))
    return state
