from __future__ import annotations

import math

from ..schemas.landmarks import CoverFit


class InvalidDimensionsError(ValueError):
    """Raised when an image or panel dimension is zero, negative or not finite."""


def _check_dims(**dims: float) -> None:
    for name, v in dims.items():
        if not math.isfinite(v) or v <= 0:
            raise InvalidDimensionsError(f"{name} must be a finite positive number, got {v!r}")


def compute_cover_fit(source_width: float, source_height: float, target_width: float, target_height: float) -> CoverFit:
    """Rectangle an aspect-fill ("cover") renderer draws the source into.

    The returned rectangle always covers the target. The overflowing axis is
    centered, so its offset is <= 0 while the other offset is exactly 0.
    """
    _check_dims(
        source_width=source_width, source_height=source_height,
        target_width=target_width, target_height=target_height,
    )
    source_aspect = source_width / source_height
    target_aspect = target_width / target_height

    if source_aspect > target_aspect:
        # Source is wider: fit to height, crop left/right.
        draw_height = float(target_height)
        draw_width = target_height * source_aspect
        draw_x = (target_width - draw_width) / 2
        draw_y = 0.0
    else:
        # Source is taller (or same aspect): fit to width, crop top/bottom.
        draw_width = float(target_width)
        draw_height = target_width / source_aspect
        draw_x = 0.0
        draw_y = (target_height - draw_height) / 2

    return CoverFit(draw_x=draw_x, draw_y=draw_y, draw_width=draw_width, draw_height=draw_height)


def map_landmark_to_export(
    landmark,
    source_width: float,
    source_height: float,
    target_width: float,
    target_height: float,
) -> tuple[float, float]:
    """Project a source-normalized landmark into export-panel pixels.

    Goes through the same cover-fit the renderer applies to the pixels, so the
    point lands on the subject as drawn, not on a naive rescale.
    """
    fit = compute_cover_fit(source_width, source_height, target_width, target_height)
    return (
        fit.draw_x + float(landmark.x) * fit.draw_width,
        fit.draw_y + float(landmark.y) * fit.draw_height,
    )
