from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError


class ImageLoadError(RuntimeError):
    pass


def load_rgb(path: Path) -> np.ndarray:
    """Decode an image as an HxWx3 uint8 RGB array, EXIF orientation applied.

    Landmarks are normalized to the upright image, so its dimensions must be
    taken after the EXIF transpose.
    """
    try:
        with Image.open(str(path)) as im:
            im = ImageOps.exif_transpose(im)
            rgb = np.array(im.convert("RGB"))
    except (OSError, UnidentifiedImageError) as exc:
        raise ImageLoadError(f"Cannot read image {path}: {exc}") from exc
    if rgb.size == 0:
        raise ImageLoadError(f"Image decode produced empty array: {path}")
    return rgb
