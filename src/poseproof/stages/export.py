from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

import cv2
import numpy as np

from ..schemas.landmarks import ANCHOR_INDICES, AlignmentResult, AnchorType, CoverFit, ExportTarget
from .alignment import VISIBILITY_THRESHOLD, usable_landmark, apply_alignment
from .cover_fit import compute_cover_fit, map_landmark_to_export

DEFAULT_RESOLUTION = 1080

# Panel height as a multiple of the panel width.
EXPORT_FORMATS: dict[str, float] = {
    "1:1": 1.0,
    "4:5": 1.25,
    "9:16": 16 / 9,
}

BEFORE_MARKER_BGR = (0, 0, 255)
AFTER_MARKER_BGR = (0, 255, 0)

IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".tif", ".tiff"}


def export_target_for_format(fmt: str, resolution: int = DEFAULT_RESOLUTION) -> ExportTarget:
    """Panel size for one side of the composite."""
    key = fmt.strip()
    if key not in EXPORT_FORMATS:
        raise ValueError(f"Unknown export format '{fmt}' (expected one of: {', '.join(EXPORT_FORMATS)})")
    height = resolution if key == "1:1" else int(round(resolution * EXPORT_FORMATS[key]))
    return ExportTarget(width=resolution, height=height)


def _draw_into_panel(img: np.ndarray, rect: CoverFit, panel: ExportTarget) -> np.ndarray:
    """Resample img so it fills rect, clipped to the panel."""
    h, w = img.shape[:2]
    sx = rect.draw_width / w
    sy = rect.draw_height / h
    # Canvas coordinates address pixel edges, OpenCV addresses pixel centers.
    m = np.array([
        [sx, 0.0, rect.draw_x + 0.5 * sx - 0.5],
        [0.0, sy, rect.draw_y + 0.5 * sy - 0.5],
    ], dtype=np.float64)
    return cv2.warpAffine(
        img, m, (panel.width, panel.height),
        flags=cv2.INTER_LINEAR, borderMode=cv2.BORDER_CONSTANT, borderValue=(255, 255, 255),
    )


def aligned_rect(fit: CoverFit, result: AlignmentResult, panel: ExportTarget) -> CoverFit:
    """After-image draw rectangle: cover-fit, scaled about the panel center, then offset."""
    cx, cy = panel.width / 2, panel.height / 2
    return CoverFit(
        draw_x=cx + (fit.draw_x - cx) * result.scale + result.offset_x,
        draw_y=cy + (fit.draw_y - cy) * result.scale + result.offset_y,
        draw_width=fit.draw_width * result.scale,
        draw_height=fit.draw_height * result.scale,
    )


def _put_label(img: np.ndarray, text: str, center_x: int, y: int) -> None:
    scale, thick = 1.6, 3
    (tw, _), _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, scale, thick)
    org = (int(center_x - tw / 2), y)
    cv2.putText(img, text, org, cv2.FONT_HERSHEY_SIMPLEX, scale, (0, 0, 0), thick + 4, cv2.LINE_AA)
    cv2.putText(img, text, org, cv2.FONT_HERSHEY_SIMPLEX, scale, (255, 255, 255), thick, cv2.LINE_AA)


def _draw_legend(img: np.ndarray) -> None:
    h = img.shape[0]
    for text, color, y in (
        ("Before anchor", BEFORE_MARKER_BGR, h - 60),
        ("After anchor (aligned)", AFTER_MARKER_BGR, h - 30),
    ):
        cv2.circle(img, (28, y - 8), 8, color, -1, cv2.LINE_AA)
        cv2.putText(img, text, (44, y), cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, 2, cv2.LINE_AA)


def render_composite(
    before_bgr: np.ndarray,
    after_bgr: np.ndarray,
    panel: ExportTarget,
    result: AlignmentResult,
    *,
    labels: bool = True,
    debug_markers: bool = False,
    before_landmarks: Sequence[Any] | None = None,
    after_landmarks: Sequence[Any] | None = None,
    anchor: AnchorType | str = AnchorType.SHOULDERS,
    visibility_threshold: float = VISIBILITY_THRESHOLD,
) -> np.ndarray:
    """Side-by-side before/after image, 2 * panel.width wide.

    The before photo is cover-fit into the left panel. The after photo is
    cover-fit, scaled about the right panel's center and offset by ``result``.
    With ``debug_markers`` the before anchor landmarks are drawn as red
    crosshairs and the aligned after anchor landmarks as green circles, each
    in its own panel, with a legend in the bottom-left corner.
    """
    bh, bw = before_bgr.shape[:2]
    ah, aw = after_bgr.shape[:2]

    before_fit = compute_cover_fit(bw, bh, panel.width, panel.height)
    after_fit = compute_cover_fit(aw, ah, panel.width, panel.height)

    left = _draw_into_panel(before_bgr, before_fit, panel)
    right = _draw_into_panel(after_bgr, aligned_rect(after_fit, result, panel), panel)

    if debug_markers:
        idxs = ANCHOR_INDICES[AnchorType(anchor)]
        for i in idxs:
            lm = usable_landmark(before_landmarks, i, visibility_threshold)
            if lm is None:
                continue
            x, y = map_landmark_to_export(lm, bw, bh, panel.width, panel.height)
            p = (int(round(x)), int(round(y)))
            cv2.circle(left, p, 15, BEFORE_MARKER_BGR, 4, cv2.LINE_AA)
            cv2.line(left, (p[0] - 25, p[1]), (p[0] + 25, p[1]), BEFORE_MARKER_BGR, 4, cv2.LINE_AA)
            cv2.line(left, (p[0], p[1] - 25), (p[0], p[1] + 25), BEFORE_MARKER_BGR, 4, cv2.LINE_AA)
        for i in idxs:
            lm = usable_landmark(after_landmarks, i, visibility_threshold)
            if lm is None:
                continue
            pt = map_landmark_to_export(lm, aw, ah, panel.width, panel.height)
            x, y = apply_alignment(pt, result, panel)
            cv2.circle(right, (int(round(x)), int(round(y))), 12, AFTER_MARKER_BGR, 4, cv2.LINE_AA)
        _draw_legend(left)

    if labels:
        _put_label(left, "Before", panel.width // 2, 60)
        _put_label(right, "After", panel.width // 2, 60)

    return np.hstack([left, right])


def write_composite(out_path: Path, composite_bgr: np.ndarray) -> Path:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        ok = cv2.imwrite(str(out_path), composite_bgr)
    except cv2.error as exc:
        raise RuntimeError(f"Failed to write composite image: {out_path}: {exc}") from exc
    if not ok:
        raise RuntimeError(f"Failed to write composite image: {out_path}")
    return out_path
