from __future__ import annotations

import logging
import math
from typing import Any, Sequence

from ..schemas.landmarks import ANCHOR_INDICES, SCALE_INDICES, AlignmentResult, AnchorType
from .cover_fit import map_landmark_to_export

logger = logging.getLogger(__name__)

VISIBILITY_THRESHOLD = 0.5
MIN_SCALE = 0.5
MAX_SCALE = 2.0


def _wh(dims) -> tuple[float, float]:
    if isinstance(dims, (tuple, list)):
        w, h = dims
        return float(w), float(h)
    return float(dims.width), float(dims.height)


def usable_landmark(lms: Sequence[Any] | None, i: int, thr: float):
    """Landmark at index i if present and visible enough, else None."""
    if lms is None or i < 0 or i >= len(lms):
        return None
    lm = lms[i]
    if lm is None:
        return None
    v = float(getattr(lm, "visibility", 0.0) or 0.0)
    # NaN visibility fails this comparison too.
    if not v >= thr:
        return None
    return lm


def _to_export(lm, dims, export_target) -> tuple[float, float]:
    sw, sh = _wh(dims)
    tw, th = _wh(export_target)
    return map_landmark_to_export(lm, sw, sh, tw, th)


def anchor_centroid(
    landmarks: Sequence[Any] | None,
    dims,
    export_target,
    anchor: AnchorType | str,
    *,
    visibility_threshold: float = VISIBILITY_THRESHOLD,
) -> tuple[float, float] | None:
    """Mean export-space position of the usable anchor landmarks, or None if there are none."""
    xs: list[float] = []
    ys: list[float] = []
    for i in ANCHOR_INDICES[AnchorType(anchor)]:
        lm = usable_landmark(landmarks, i, visibility_threshold)
        if lm is None:
            continue
        x, y = _to_export(lm, dims, export_target)
        xs.append(x)
        ys.append(y)
    if not xs:
        return None
    return sum(xs) / len(xs), sum(ys) / len(ys)


def body_height(
    landmarks: Sequence[Any] | None,
    dims,
    export_target,
    *,
    visibility_threshold: float = VISIBILITY_THRESHOLD,
) -> float | None:
    """Vertical nose to hip-center span in export pixels, or None if any of the three is unusable."""
    pts = [usable_landmark(landmarks, i, visibility_threshold) for i in SCALE_INDICES]
    if any(p is None for p in pts):
        return None
    nose, lhip, rhip = (_to_export(p, dims, export_target) for p in pts)
    hip_center_y = (lhip[1] + rhip[1]) / 2
    return abs(hip_center_y - nose[1])


def compute_alignment(
    before_landmarks: Sequence[Any] | None,
    after_landmarks: Sequence[Any] | None,
    before_dims,
    after_dims,
    export_target,
    anchor: AnchorType | str,
    *,
    visibility_threshold: float = VISIBILITY_THRESHOLD,
    min_scale: float = MIN_SCALE,
    max_scale: float = MAX_SCALE,
) -> AlignmentResult:
    """Scale and offset that put the after anchor onto the before anchor.

    The renderer cover-fits the after image into the panel, scales that
    rectangle about the panel center by ``scale`` and then translates it by
    ``(offset_x, offset_y)``. The offset is solved for exactly that order.

    Landmark problems never raise: no usable anchor on either side gives the
    identity result, and an incomplete nose/hip triple only drops the scale
    term. Dimensions are validated by the cover-fit and raise
    ``InvalidDimensionsError``.
    """
    anchor = AnchorType(anchor)

    before_c = anchor_centroid(before_landmarks, before_dims, export_target, anchor, visibility_threshold=visibility_threshold)
    after_c = anchor_centroid(after_landmarks, after_dims, export_target, anchor, visibility_threshold=visibility_threshold)
    if before_c is None or after_c is None:
        logger.debug(
            "No usable %s landmarks (before=%s, after=%s); using identity alignment",
            anchor.value, before_c is not None, after_c is not None,
        )
        return AlignmentResult()

    # Scale always comes from the nose/hip span, whatever the anchor.
    scale = 1.0
    before_h = body_height(before_landmarks, before_dims, export_target, visibility_threshold=visibility_threshold)
    after_h = body_height(after_landmarks, after_dims, export_target, visibility_threshold=visibility_threshold)
    if before_h is None or after_h is None:
        logger.debug("Nose/hip landmarks incomplete; skipping scale correction")
    elif after_h > 0:
        raw = before_h / after_h
        scale = max(min_scale, min(max_scale, raw))
        if scale != raw:
            logger.debug("Clamped scale %.4f to %.4f", raw, scale)
    else:
        logger.debug("Degenerate after body height; skipping scale correction")

    tw, th = _wh(export_target)
    cx, cy = tw / 2, th / 2
    scaled_after_x = cx + (after_c[0] - cx) * scale
    scaled_after_y = cy + (after_c[1] - cy) * scale

    return AlignmentResult(
        scale=scale,
        offset_x=before_c[0] - scaled_after_x,
        offset_y=before_c[1] - scaled_after_y,
    )


def apply_alignment(point: tuple[float, float], result: AlignmentResult, export_target) -> tuple[float, float]:
    """Where an after-image export point ends up once the alignment is rendered."""
    tw, th = _wh(export_target)
    cx, cy = tw / 2, th / 2
    return (
        cx + (point[0] - cx) * result.scale + result.offset_x,
        cy + (point[1] - cy) * result.scale + result.offset_y,
    )


def alignment_error(
    before_landmarks: Sequence[Any] | None,
    after_landmarks: Sequence[Any] | None,
    before_dims,
    after_dims,
    export_target,
    anchor: AnchorType | str,
    result: AlignmentResult,
    *,
    visibility_threshold: float = VISIBILITY_THRESHOLD,
) -> dict[int, dict[str, float]]:
    """Per-landmark residual between the before anchor and the aligned after anchor.

    Only indices usable on both sides are reported. ``error_pct`` is relative
    to the panel height.
    """
    _, th = _wh(export_target)
    out: dict[int, dict[str, float]] = {}
    for i in ANCHOR_INDICES[AnchorType(anchor)]:
        b = usable_landmark(before_landmarks, i, visibility_threshold)
        a = usable_landmark(after_landmarks, i, visibility_threshold)
        if b is None or a is None:
            continue
        bx, by = _to_export(b, before_dims, export_target)
        ax, ay = apply_alignment(_to_export(a, after_dims, export_target), result, export_target)
        err = math.hypot(ax - bx, ay - by)
        out[i] = {"error_px": err, "error_pct": err / th * 100.0}
    return out
