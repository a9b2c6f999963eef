from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, PositiveInt

# Pose landmark indices (BlazePose, 33 landmarks)
NOSE = 0
LEFT_SHOULDER = 11
RIGHT_SHOULDER = 12
LEFT_HIP = 23
RIGHT_HIP = 24

NUM_POSE_LANDMARKS = 33


class AnchorType(str, Enum):
    HEAD = "head"
    SHOULDERS = "shoulders"
    HIPS = "hips"
    FULL = "full"


ANCHOR_INDICES: dict[AnchorType, tuple[int, ...]] = {
    AnchorType.HEAD: (NOSE,),
    AnchorType.SHOULDERS: (LEFT_SHOULDER, RIGHT_SHOULDER),
    AnchorType.HIPS: (LEFT_HIP, RIGHT_HIP),
    AnchorType.FULL: (NOSE, LEFT_HIP, RIGHT_HIP),
}

# Body-height reference used for the scale term, independent of the anchor.
SCALE_INDICES: tuple[int, int, int] = (NOSE, LEFT_HIP, RIGHT_HIP)


class Landmark(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    z: float = 0.0
    visibility: float = 0.0


class ImageDimensions(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: PositiveInt
    height: PositiveInt


class ExportTarget(ImageDimensions):
    """Pixel size of one panel of the before/after composite."""


class CoverFit(BaseModel):
    model_config = ConfigDict(frozen=True)

    draw_x: float
    draw_y: float
    draw_width: float
    draw_height: float


class AlignmentResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    scale: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0

    @property
    def is_identity(self) -> bool:
        return self.scale == 1.0 and self.offset_x == 0.0 and self.offset_y == 0.0


class PoseLandmarks(BaseModel):
    """Landmarks of one detected subject plus the size of the image they were detected on."""

    schema_version: str = "1.0"
    width: PositiveInt
    height: PositiveInt
    landmarks: list[Landmark | None] = Field(default_factory=list)

    @property
    def dims(self) -> ImageDimensions:
        return ImageDimensions(width=self.width, height=self.height)
