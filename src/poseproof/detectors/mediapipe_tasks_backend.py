from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
import logging

import numpy as np

from ..schemas.landmarks import Landmark, PoseLandmarks
from ..util.download import fetch_model
from ..util.repo import default_models_dir

logger = logging.getLogger(__name__)

POSE_LANDMARK_NAMES = [
    "nose",
    "left_eye_inner","left_eye","left_eye_outer",
    "right_eye_inner","right_eye","right_eye_outer",
    "left_ear","right_ear",
    "mouth_left","mouth_right",
    "left_shoulder","right_shoulder",
    "left_elbow","right_elbow",
    "left_wrist","right_wrist",
    "left_pinky","right_pinky",
    "left_index","right_index",
    "left_thumb","right_thumb",
    "left_hip","right_hip",
    "left_knee","right_knee",
    "left_ankle","right_ankle",
    "left_heel","right_heel",
    "left_foot_index","right_foot_index",
]

_MODEL_URL = "https://storage.googleapis.com/mediapipe-models/pose_landmarker/pose_landmarker_{size}/float16/latest/pose_landmarker_{size}.task"

POSE_MODEL_FILES = {
    "lite": "pose_landmarker_lite.task",
    "full": "pose_landmarker_full.task",
    "heavy": "pose_landmarker_heavy.task",
}


class PoseDetectionErrorType(str, Enum):
    INITIALIZATION_FAILED = "initialization_failed"
    NO_POSE_DETECTED = "no_pose_detected"
    DETECTION_FAILED = "detection_failed"
    INVALID_IMAGE = "invalid_image"


class PoseDetectionError(RuntimeError):
    """Raised when landmarks cannot be produced for an image."""

    def __init__(self, kind: PoseDetectionErrorType, message: str):
        super().__init__(message)
        self.kind = kind


@dataclass(frozen=True)
class MediaPipeTasksConfig:
    POSE_PROFILE_PRESETS = {
        "balanced": {
            "min_pose_detection_confidence": 0.50,
            "min_pose_presence_confidence": 0.50,
            "min_tracking_confidence": 0.50,
        },
        "strict": {
            "min_pose_detection_confidence": 0.70,
            "min_pose_presence_confidence": 0.70,
            "min_tracking_confidence": 0.70,
        },
    }

    pose_profile: str | None = None
    pose_model: str = "lite"
    models_dir: Path | None = None

    # Before/after photos hold a single subject.
    num_poses: int = 1
    min_pose_detection_confidence: float = 0.50
    min_pose_presence_confidence: float = 0.50
    min_tracking_confidence: float = 0.50

    def __post_init__(self):
        model_key = self.pose_model.strip().lower()
        if model_key not in POSE_MODEL_FILES:
            raise ValueError(f"Unknown pose model '{self.pose_model}' (expected one of: {', '.join(POSE_MODEL_FILES)})")
        object.__setattr__(self, "pose_model", model_key)
        if self.pose_profile is None:
            return
        thresholds = self.apply_pose_profile(self.pose_profile)
        object.__setattr__(self, "pose_profile", self.pose_profile.strip().lower())
        for k, v in thresholds.items():
            object.__setattr__(self, k, v)

    @classmethod
    def apply_pose_profile(cls, pose_profile: str) -> dict[str, float]:
        profile_key = pose_profile.strip().lower()
        if profile_key not in cls.POSE_PROFILE_PRESETS:
            raise ValueError(
                f"Unknown pose profile '{pose_profile}' (expected one of: {', '.join(cls.POSE_PROFILE_PRESETS)})"
            )
        return cls.POSE_PROFILE_PRESETS[profile_key]

    @property
    def model_path(self) -> Path:
        return (self.models_dir or default_models_dir()) / POSE_MODEL_FILES[self.pose_model]

    @property
    def model_url(self) -> str:
        return _MODEL_URL.format(size=self.pose_model)


def landmarks_from_result(pose_res) -> list[Landmark]:
    """First detected pose of a PoseLandmarkerResult as Landmarks."""
    poses = getattr(pose_res, "pose_landmarks", None) or []
    if not poses or not poses[0]:
        raise PoseDetectionError(
            PoseDetectionErrorType.NO_POSE_DETECTED,
            "No pose detected in the image. Make sure a person is visible in the photo.",
        )
    return [
        Landmark(
            x=float(lm.x),
            y=float(lm.y),
            z=float(getattr(lm, "z", 0.0) or 0.0),
            visibility=float(getattr(lm, "visibility", None) or 0.0),
        )
        for lm in poses[0]
    ]


class MediaPipeTasksBackend:
    def __init__(self, cfg: MediaPipeTasksConfig | None = None):
        self.cfg = cfg or MediaPipeTasksConfig()
        try:
            import mediapipe as mp

            model_path = fetch_model(self.cfg.model_url, self.cfg.model_path)
            vision = mp.tasks.vision
            pose_opts = vision.PoseLandmarkerOptions(
                base_options=mp.tasks.BaseOptions(model_asset_path=str(model_path)),
                running_mode=vision.RunningMode.IMAGE,
                num_poses=self.cfg.num_poses,
                min_pose_detection_confidence=self.cfg.min_pose_detection_confidence,
                min_pose_presence_confidence=self.cfg.min_pose_presence_confidence,
                min_tracking_confidence=self.cfg.min_tracking_confidence,
            )
            self._pose = vision.PoseLandmarker.create_from_options(pose_opts)
        except Exception as exc:
            raise PoseDetectionError(
                PoseDetectionErrorType.INITIALIZATION_FAILED,
                f"Failed to initialize pose detector: {exc}",
            ) from exc
        self._mp = mp
        logger.info("Pose detector ready (model=%s)", self.cfg.pose_model)

    def detect_pose(self, rgb: np.ndarray) -> list[Landmark]:
        if rgb is None or rgb.ndim != 3 or rgb.shape[2] != 3 or rgb.size == 0:
            raise PoseDetectionError(PoseDetectionErrorType.INVALID_IMAGE, "Expected an HxWx3 RGB image.")
        try:
            image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=np.ascontiguousarray(rgb))
            res = self._pose.detect(image)
        except Exception as exc:
            raise PoseDetectionError(
                PoseDetectionErrorType.DETECTION_FAILED,
                f"Failed to detect pose in the image: {exc}",
            ) from exc
        return landmarks_from_result(res)

    def detect_pose_landmarks(self, rgb: np.ndarray) -> PoseLandmarks:
        landmarks = self.detect_pose(rgb)
        h, w = rgb.shape[:2]
        return PoseLandmarks(width=w, height=h, landmarks=landmarks)

    def close(self) -> None:
        self._pose.close()

    def __enter__(self) -> "MediaPipeTasksBackend":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
