from __future__ import annotations

from pathlib import Path
import json
import logging

import cv2
from pydantic import ValidationError
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from .detectors.mediapipe_tasks_backend import (
    POSE_MODEL_FILES,
    MediaPipeTasksBackend,
    MediaPipeTasksConfig,
    PoseDetectionError,
)
from .schemas.landmarks import AnchorType, ImageDimensions, PoseLandmarks
from .stages.alignment import alignment_error, compute_alignment
from .stages.cover_fit import InvalidDimensionsError
from .stages.export import (
    DEFAULT_RESOLUTION,
    EXPORT_FORMATS,
    IMAGE_EXTS,
    export_target_for_format,
    render_composite,
    write_composite,
)
from .util.image import ImageLoadError, load_rgb

app = typer.Typer(add_completion=False, help="Align before/after photos on a body anchor.")
console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _mp_config(pose_model: str, pose_profile: str | None) -> MediaPipeTasksConfig:
    pose_model = pose_model.strip().lower()
    if pose_model not in POSE_MODEL_FILES:
        raise typer.BadParameter("--pose-model must be one of: lite, full, heavy")
    pose_profile = pose_profile.strip().lower() if pose_profile else None
    if pose_profile is not None and pose_profile not in MediaPipeTasksConfig.POSE_PROFILE_PRESETS:
        raise typer.BadParameter("--pose-profile must be one of: balanced, strict")
    return MediaPipeTasksConfig(pose_profile=pose_profile, pose_model=pose_model)


class LandmarkFileError(RuntimeError):
    """A saved landmark file could not be read or does not hold PoseLandmarks."""


def _load_landmarks(path: Path) -> PoseLandmarks:
    try:
        return PoseLandmarks.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        raise LandmarkFileError(f"Cannot read landmark file {path}: {exc}") from exc
    except ValidationError as exc:
        raise LandmarkFileError(f"Invalid landmark file {path}: {exc}") from exc


def _landmarks_for(
    label: str,
    rgb,
    landmarks_path: Path | None,
    backend_factory,
) -> PoseLandmarks:
    h, w = rgb.shape[:2]
    if landmarks_path is not None:
        pose = _load_landmarks(landmarks_path)
        if (pose.width, pose.height) != (w, h):
            console.print(
                f"[yellow]{label}: landmarks are for {pose.width}x{pose.height}, "
                f"photo is {w}x{h}; using photo size[/yellow]"
            )
            pose = PoseLandmarks(width=w, height=h, landmarks=pose.landmarks)
        return pose
    return backend_factory().detect_pose_landmarks(rgb)


@app.command()
def detect(
    image: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Photo to run pose detection on."),
    out: Path = typer.Option(..., "--out", help="Landmark JSON file to write."),
    pose_model: str = typer.Option("lite", "--pose-model", help="Pose model size: lite|full|heavy"),
    pose_profile: str | None = typer.Option(None, "--pose-profile", help="Pose threshold preset: balanced|strict"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
):
    """Detect pose landmarks in one photo and save them for reuse with `align`."""
    _setup_logging(verbose)
    cfg = _mp_config(pose_model, pose_profile)
    try:
        rgb = load_rgb(image)
        with MediaPipeTasksBackend(cfg) as backend:
            pose = backend.detect_pose_landmarks(rgb)
    except (ImageLoadError, PoseDetectionError) as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1)

    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(pose.model_dump_json(indent=2), encoding="utf-8")
    console.print(f"Saved {len(pose.landmarks)} landmarks ({pose.width}x{pose.height}) to {out}")


@app.command()
def align(
    before: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Before photo."),
    after: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="After photo."),
    anchor: AnchorType = typer.Option(AnchorType.SHOULDERS, "--anchor", case_sensitive=False, help="Body anchor to align on."),
    fmt: str = typer.Option("1:1", "--format", help="Output aspect ratio per panel: 1:1|4:5|9:16"),
    resolution: int = typer.Option(DEFAULT_RESOLUTION, "--resolution", min=16, help="Panel width in pixels."),
    before_landmarks: Path | None = typer.Option(None, "--before-landmarks", exists=True, dir_okay=False, help="Use saved landmarks instead of detecting on the before photo."),
    after_landmarks: Path | None = typer.Option(None, "--after-landmarks", exists=True, dir_okay=False, help="Use saved landmarks instead of detecting on the after photo."),
    out: Path | None = typer.Option(None, "--out", help="Write the side-by-side composite here."),
    debug_markers: bool = typer.Option(False, "--debug-markers", help="Draw anchor markers on the composite."),
    labels: bool = typer.Option(True, "--labels/--no-labels", help="Draw Before/After labels on the composite."),
    json_out: Path | None = typer.Option(None, "--json-out", help="Write the alignment result as JSON."),
    pose_model: str = typer.Option("lite", "--pose-model", help="Pose model size: lite|full|heavy"),
    pose_profile: str | None = typer.Option(None, "--pose-profile", help="Pose threshold preset: balanced|strict"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
):
    """Compute the scale/offset that aligns AFTER onto BEFORE and optionally render it."""
    _setup_logging(verbose)
    if fmt.strip() not in EXPORT_FORMATS:
        raise typer.BadParameter(f"--format must be one of: {', '.join(EXPORT_FORMATS)}")
    if out is not None and out.suffix.lower() not in IMAGE_EXTS:
        raise typer.BadParameter(f"--out must end in one of: {', '.join(sorted(IMAGE_EXTS))}")
    panel = export_target_for_format(fmt, resolution)

    backend: MediaPipeTasksBackend | None = None

    def backend_factory() -> MediaPipeTasksBackend:
        nonlocal backend
        if backend is None:
            backend = MediaPipeTasksBackend(_mp_config(pose_model, pose_profile))
        return backend

    try:
        before_rgb = load_rgb(before)
        after_rgb = load_rgb(after)
        before_pose = _landmarks_for("before", before_rgb, before_landmarks, backend_factory)
        after_pose = _landmarks_for("after", after_rgb, after_landmarks, backend_factory)
    except (ImageLoadError, LandmarkFileError, PoseDetectionError) as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1)
    finally:
        if backend is not None:
            backend.close()

    before_dims = ImageDimensions(width=before_pose.width, height=before_pose.height)
    after_dims = ImageDimensions(width=after_pose.width, height=after_pose.height)

    console.print(f"[bold]Anchor:[/bold] {anchor.value}")
    console.print(f"Before: {before_dims.width}x{before_dims.height}")
    console.print(f"After: {after_dims.width}x{after_dims.height}")
    console.print(f"Export size per panel: {panel.width}x{panel.height}")

    try:
        result = compute_alignment(
            before_pose.landmarks, after_pose.landmarks, before_dims, after_dims, panel, anchor,
        )
    except InvalidDimensionsError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1)

    if result.is_identity:
        console.print("[yellow]Anchor landmarks not visible in both photos; no alignment applied[/yellow]")
    console.print("\nAlignment (in export coordinates):")
    console.print(f"  Scale: {result.scale:.3f}")
    console.print(f"  OffsetX: {result.offset_x:.1f}px")
    console.print(f"  OffsetY: {result.offset_y:.1f}px")

    errors = alignment_error(
        before_pose.landmarks, after_pose.landmarks, before_dims, after_dims, panel, anchor, result,
    )
    if errors:
        console.print("\nAlignment verification:")
        for idx, e in errors.items():
            console.print(f"  Landmark {idx}: error = {e['error_px']:.1f}px ({e['error_pct']:.2f}%)")

    if out is not None:
        composite = render_composite(
            cv2.cvtColor(before_rgb, cv2.COLOR_RGB2BGR),
            cv2.cvtColor(after_rgb, cv2.COLOR_RGB2BGR),
            panel,
            result,
            labels=labels,
            debug_markers=debug_markers,
            before_landmarks=before_pose.landmarks,
            after_landmarks=after_pose.landmarks,
            anchor=anchor,
        )
        try:
            write_composite(out, composite)
        except (OSError, RuntimeError) as exc:
            console.print(f"[red]{escape(str(exc))}[/red]")
            raise typer.Exit(code=1)
        console.print(f"\nSaved: {out}")

    if json_out is not None:
        payload = {
            "anchor": anchor.value,
            "format": fmt.strip(),
            "export_target": panel.model_dump(),
            "result": result.model_dump(),
            "errors": {str(k): v for k, v in errors.items()},
        }
        json_out.parent.mkdir(parents=True, exist_ok=True)
        json_out.write_text(json.dumps(payload, indent=2), encoding="utf-8")


if __name__ == "__main__":
    app()
